"""Insight agent: detects notes made stale by recently published articles.

Staleness detection is best-effort enrichment. ``check_note_status`` never
raises and never reports a failure to the user; every failure path folds
into an ``ok`` status with a fixed message, and the failure itself goes to
the error sink.
"""

import json
import re
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger
from pydantic import ValidationError

from .config import InsightConfig
from .errors import (
    EmptyInputCorpus,
    ErrorSink,
    MalformedUpstreamResponse,
    ServiceMisconfigured,
    TransientNetworkError,
)
from .models import ArticleSummary, InsightState, InsightStatus, NoteSummary


ONBOARDING_MESSAGE = "Ready to analyze. Start taking notes to activate your Knowledge Radar."
NO_ARTICLES_MESSAGE = "Daily Affairs Scan: No new conflicting updates found in the latest news cycle."
NO_CREDENTIAL_MESSAGE = "Everything is fine. Keep studying!"
FALLBACK_MESSAGE = "Knowledge Radar active. No critical mismatches found in this scan."

_FENCE_RE = re.compile(r"^\s*```(?:json)?[ \t]*\n?|\n?[ \t]*```\s*$", re.IGNORECASE)

SCAN_SYSTEM_PROMPT = """You are the UPSC Knowledge Radar agent.
Cross-reference the user's notes against the latest news articles and flag any
note that a news article makes outdated or should update.

Match notes and articles on:
- Shared keywords (Note: "Monetary Policy" <-> News: "RBI Hike")
- Entity matches (Note: "Modi" <-> News: "PM visits France")
- Thematic overlap (Note: "Agriculture" <-> News: "MSP Prices")

OUTPUT RULES:
- If any match is found, status MUST be "updates_available", otherwise "ok".
- "message" is one or two sentences, e.g. "I found 3 relevant news updates for your notes."
- "reason" explains the link simply, e.g. "News mentions RBI, relevant to your Economy note."
- Use only ids that appear in the input.

Output ONLY valid JSON:
{
  "status": "ok" | "updates_available",
  "message": "Summary string",
  "updates": [
    {"noteId": "id", "noteTitle": "title", "articleId": "id", "articleTitle": "title", "reason": "Why this matches"}
  ]
}"""

CHAT_SYSTEM_PROMPT = """You are PrepAssist AI, the user's personal Knowledge Radar and daily news analyst.

The CONTEXT below holds the latest cross-reference between the user's notes and
the latest news.

If the context has no updates, say the user is up to date: the daily news was
scanned and nothing conflicts with or adds to their current notes.

If there are updates, name the exact news article and the exact note it
impacts, in the form: "Update Required: the new article '[Article Title]'
suggests a change to your note '[Note Title]'."

CONTEXT (live scan results):
{context}

Be professional and precise, like a news anchor giving a personalized briefing."""


class ContentSource(Protocol):
    async def fetch_recent_notes(self, limit: int) -> List[NoteSummary]: ...

    async def fetch_recent_articles(self, limit: int) -> List[ArticleSummary]: ...


class ReasoningService(Protocol):
    @property
    def has_credential(self) -> bool: ...

    async def complete(self, system_prompt: str, messages: List[Dict[str, str]],
                       response_format: Optional[str] = "json") -> str: ...


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapped around a reply body."""
    return _FENCE_RE.sub("", text).strip()


def parse_insight_response(text: str) -> InsightStatus:
    """Decode a reasoning reply into an ``InsightStatus``.

    Raises:
        MalformedUpstreamResponse: The reply is not a valid status object
    """
    body = strip_code_fences(text or "")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedUpstreamResponse(f"Reply is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedUpstreamResponse("Reply is not a JSON object")
    try:
        return InsightStatus.model_validate(data)
    except ValidationError as e:
        raise MalformedUpstreamResponse(f"Reply does not match the status contract: {e}") from e


class InsightAgent:
    """Compares the note corpus with recent articles via the reasoning service."""

    def __init__(self,
                 content: ContentSource,
                 reasoning: ReasoningService,
                 config: Optional[InsightConfig] = None,
                 error_sink: Optional[ErrorSink] = None):
        self.content = content
        self.reasoning = reasoning
        self.config = config or InsightConfig()
        self.error_sink = error_sink or ErrorSink()
        self.scanning = False

    def _build_scan_request(self, notes: List[NoteSummary],
                            articles: List[ArticleSummary]) -> List[Dict[str, str]]:
        notes_payload = [
            {"id": n.id, "title": n.title, "content": n.content_excerpt[:self.config.note_excerpt_chars]}
            for n in notes
        ]
        news_payload = [
            {"id": a.id, "title": a.title, "text": a.summary_or_excerpt[:self.config.article_excerpt_chars]}
            for a in articles
        ]
        return [{
            "role": "user",
            "content": (
                f"USER NOTES LIBRARY:\n{json.dumps(notes_payload)}\n\n"
                f"NEWS CORPUS:\n{json.dumps(news_payload)}"
            )
        }]

    def _verify(self, status: InsightStatus, notes: List[NoteSummary],
                articles: List[ArticleSummary]) -> InsightStatus:
        """Drop updates that reference ids outside the scanned corpora."""
        note_ids = {n.id for n in notes}
        article_ids = {a.id for a in articles}
        kept = [u for u in status.updates if u.note_id in note_ids and u.article_id in article_ids]
        dropped = len(status.updates) - len(kept)
        if dropped:
            logger.warning(f"Dropped {dropped} update(s) referencing unknown notes or articles")
        state = status.state
        if state == InsightState.UPDATES_AVAILABLE and not kept:
            state = InsightState.OK
        return InsightStatus(state=state, message=status.message, updates=kept)

    async def check_note_status(self) -> InsightStatus:
        """Scan recent notes against recent articles. Never raises."""
        self.scanning = True
        try:
            return await self._scan()
        except EmptyInputCorpus as e:
            self.error_sink.record("insight_agent", e)
            return InsightStatus.ok(ONBOARDING_MESSAGE)
        except ServiceMisconfigured as e:
            self.error_sink.record("insight_agent", e)
            return InsightStatus.ok(NO_CREDENTIAL_MESSAGE)
        except Exception as e:
            self.error_sink.record("insight_agent", e)
            return InsightStatus.ok(FALLBACK_MESSAGE)
        finally:
            self.scanning = False

    async def _scan(self) -> InsightStatus:
        notes = await self.content.fetch_recent_notes(self.config.max_notes)
        notes = notes[:self.config.max_notes]
        if not notes:
            raise EmptyInputCorpus("No notes to scan")

        try:
            articles = await self.content.fetch_recent_articles(self.config.max_articles)
        except (TransientNetworkError, MalformedUpstreamResponse) as e:
            self.error_sink.record("insight_agent", e, stage="articles")
            articles = []
        articles = articles[:self.config.max_articles]
        if not articles:
            logger.info("No recent articles found")
            return InsightStatus.ok(NO_ARTICLES_MESSAGE)

        if not self.reasoning.has_credential:
            raise ServiceMisconfigured("No reasoning credential configured")

        logger.info(f"Sending {len(notes)} notes and {len(articles)} articles for analysis")
        reply = await self.reasoning.complete(
            SCAN_SYSTEM_PROMPT,
            self._build_scan_request(notes, articles),
            response_format="json"
        )
        status = parse_insight_response(reply)

        if self.config.verify_matches:
            status = self._verify(status, notes, articles)

        self.error_sink.record_success("insight_agent")
        logger.info(f"Analysis result: {status.state.value} with {len(status.updates)} updates")
        return status

    async def chat_with_agent(self, message: str, history: List[Dict[str, str]],
                              context: Dict[str, Any]) -> str:
        """Answer a follow-up question about the latest scan.

        Raises:
            ServiceMisconfigured: No reasoning credential
            TransientNetworkError: The reasoning call failed
            MalformedUpstreamResponse: The reply carried no content
        """
        if not self.reasoning.has_credential:
            raise ServiceMisconfigured("Reasoning service API key is missing")

        system_prompt = CHAT_SYSTEM_PROMPT.format(context=json.dumps(context, default=str))
        messages = [*history, {"role": "user", "content": message}]
        logger.debug(f"Sending chat turn with {len(history)} history messages")
        return await self.reasoning.complete(system_prompt, messages, response_format=None)
