"""Reference freshness cache, staleness radar and heartbeat scheduling."""

from .cache import CategoryCache
from .chat import ChatSession
from .client import ReasoningClient, RemoteContentClient
from .config import Config
from .errors import ErrorSink
from .fallback import FallbackStore
from .heartbeat import HeartbeatScheduler, build_radar_heartbeat
from .insight import InsightAgent
from .models import CategoryId, InsightState, InsightStatus
from .news_match import NewsMatchService

__all__ = [
    "CategoryCache",
    "CategoryId",
    "ChatSession",
    "Config",
    "ErrorSink",
    "FallbackStore",
    "HeartbeatScheduler",
    "InsightAgent",
    "InsightState",
    "InsightStatus",
    "NewsMatchService",
    "ReasoningClient",
    "RemoteContentClient",
    "build_radar_heartbeat",
]
