"""Wires the radar services together for one client session."""

from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from .bus import EventBus
from .cache import CategoryCache
from .chat import ChatSession
from .client import ReasoningClient, RemoteContentClient
from .config import Config
from .errors import ErrorSink
from .fallback import FallbackStore
from .heartbeat import build_radar_heartbeat
from .insight import InsightAgent
from .news_match import NewsMatchService


class RadarRuntime:
    """Owns every radar service and their shared error sink."""

    def __init__(self, config: Config,
                 content: Optional[RemoteContentClient] = None,
                 reasoning: Optional[ReasoningClient] = None):
        self.config = config
        self.start_time = datetime.now()
        self.error_sink = ErrorSink()
        self.event_bus = EventBus()

        self.content = content or RemoteContentClient(config.api)
        self.reasoning = reasoning or ReasoningClient(config.reasoning)

        self.cache = CategoryCache(
            self.content,
            FallbackStore(),
            ttl_seconds=config.cache.ttl_seconds,
            error_sink=self.error_sink
        )
        self.insight_agent = InsightAgent(
            self.content,
            self.reasoning,
            config.insight,
            error_sink=self.error_sink
        )
        self.news_matcher = NewsMatchService(
            self.content,
            config.news_match,
            note_limit=config.insight.max_notes,
            error_sink=self.error_sink
        )
        self.heartbeat = build_radar_heartbeat(
            self.insight_agent,
            self.news_matcher,
            config.heartbeat,
            event_bus=self.event_bus,
            error_sink=self.error_sink
        )

    def new_chat_session(self) -> ChatSession:
        return ChatSession(
            self.insight_agent,
            max_history_turns=self.config.chat.max_history_turns,
            error_sink=self.error_sink
        )

    async def start(self) -> None:
        await self.event_bus.start()
        logger.info("Knowledge Radar runtime started")

    async def stop(self) -> None:
        await self.heartbeat.blur()
        await self.heartbeat.wait_idle()
        await self.event_bus.stop()
        await self.content.aclose()
        await self.reasoning.aclose()
        logger.info("Knowledge Radar runtime stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()

    def get_status(self) -> Dict[str, Any]:
        uptime = (datetime.now() - self.start_time).total_seconds()
        return {
            "uptime": f"{uptime:.0f}s",
            "cache": dict(self.cache.stats),
            "heartbeat": self.heartbeat.get_stats(),
            "bus": self.event_bus.get_stats(),
            "errors": self.error_sink.get_summary(),
        }
