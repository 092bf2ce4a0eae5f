"""Follow-up chat about the latest radar results.

There is no server-side session: every turn resends the scan context plus
the conversation so far. Sends are serialised so turns always alternate,
and the history sent upstream is capped, with older turns folded into one
summary turn.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger

from .errors import ErrorSink
from .models import ChatRole, ChatSessionState, ChatTurn, InsightStatus, KeywordMatch


APOLOGY_MESSAGE = "I'm having trouble connecting right now. Please check your internet connection."
SUMMARY_PREFIX = "Summary of the earlier conversation:"


class ChatAgent(Protocol):
    async def chat_with_agent(self, message: str, history: List[Dict[str, str]],
                              context: Dict[str, Any]) -> str: ...


def build_context(status: Optional[InsightStatus],
                  matches: Optional[List[KeywordMatch]] = None) -> Dict[str, Any]:
    """Bounded context for one chat request."""
    return {
        "updates": [u.model_dump(by_alias=True) for u in status.updates] if status else [],
        "matches": [m.to_wire() for m in matches or []],
        "summary": status.message if status else "",
    }


def summarize_turns(turns: List[ChatTurn], turn_chars: int = 120, max_chars: int = 1500) -> str:
    """Condense turns into one line per turn, keeping the most recent ones."""
    lines: List[str] = []
    total = 0
    for turn in reversed(turns):
        content = " ".join(turn.content.split())
        if len(content) > turn_chars:
            content = content[:turn_chars].rstrip() + "..."
        line = f"- {turn.role.value}: {content}"
        if total + len(line) > max_chars:
            break
        lines.append(line)
        total += len(line)
    lines.reverse()
    return "\n".join([SUMMARY_PREFIX, *lines])


class ChatSession:
    """One chat modal's worth of turns. Cleared on close, never persisted."""

    def __init__(self, agent: ChatAgent, max_history_turns: int = 20,
                 error_sink: Optional[ErrorSink] = None):
        if max_history_turns < 2:
            raise ValueError("max_history_turns must be at least 2")
        self.agent = agent
        self.max_history_turns = max_history_turns
        self.error_sink = error_sink or ErrorSink()
        self.state = ChatSessionState()
        self._send_lock = asyncio.Lock()

    @property
    def turns(self) -> List[ChatTurn]:
        return list(self.state.turns)

    @property
    def is_thinking(self) -> bool:
        return self.state.is_thinking

    def history_for_request(self, turns: Optional[List[ChatTurn]] = None) -> List[Dict[str, str]]:
        """Role/content pairs to send upstream, capped to ``max_history_turns``."""
        turns = self.state.turns if turns is None else turns
        if len(turns) <= self.max_history_turns:
            return [t.to_message() for t in turns]

        keep = self.max_history_turns - 1
        older, recent = turns[:-keep], turns[-keep:]
        summary = ChatTurn(role=ChatRole.ASSISTANT, content=summarize_turns(older))
        return [summary.to_message(), *(t.to_message() for t in recent)]

    async def send(self, message: str,
                   status: Optional[InsightStatus] = None,
                   matches: Optional[List[KeywordMatch]] = None) -> ChatTurn:
        """Send one user message and return the assistant turn for it.

        Sends queue behind each other: a message sent while an earlier one
        is awaiting its reply only gets its user turn once that reply has
        been appended. A reply that arrives after ``close()`` is returned
        but not appended to the cleared session.
        """
        if not message or not message.strip():
            raise ValueError("message must not be empty")

        async with self._send_lock:
            state = self.state
            history = self.history_for_request(state.turns)
            logger.debug(f"Chat turn {len(state.turns) + 1} with {len(history)} history messages")
            state.turns.append(ChatTurn(role=ChatRole.USER, content=message))
            state.is_thinking = True
            try:
                reply = await self.agent.chat_with_agent(message, history, build_context(status, matches))
            except Exception as e:
                self.error_sink.record("chat", e)
                reply = APOLOGY_MESSAGE
            finally:
                state.is_thinking = False

            turn = ChatTurn(role=ChatRole.ASSISTANT, content=reply)
            if state is self.state:
                state.turns.append(turn)
            else:
                logger.debug("Chat session closed while waiting, dropping reply")
            return turn

    def close(self) -> None:
        self.state = ChatSessionState()
