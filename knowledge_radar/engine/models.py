"""Data models for the Knowledge Radar engine.

Wire-facing types are pydantic models so that upstream payloads are decoded
and validated at the client boundary; internal bookkeeping uses dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CategoryId(str, Enum):
    """Reference categories served by the category cache."""
    ECONOMY = "economy"
    POLITY = "polity"
    GEOGRAPHY = "geography"
    ENVIRONMENT = "environment"
    SCIENCE_TECH = "scienceTech"
    INDIAN_HISTORY = "indianHistory"
    WORLD_HISTORY = "worldHistory"
    MAPS = "maps"

    @property
    def is_timeline(self) -> bool:
        return self in (CategoryId.INDIAN_HISTORY, CategoryId.WORLD_HISTORY)

    @classmethod
    def for_timeline(cls, kind: str) -> "CategoryId":
        """Map a history kind ('indian' or 'world') to its category."""
        if kind == "indian":
            return cls.INDIAN_HISTORY
        if kind == "world":
            return cls.WORLD_HISTORY
        raise ValueError(f"Unknown history timeline kind: {kind!r}")


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TimelineEvent(_WireModel):
    year: str
    event: str
    category: str = ""
    details: str = ""

    @field_validator('year', mode='before')
    @classmethod
    def coerce_year(cls, v: Any) -> str:
        return str(v)

    @field_validator('category', 'details', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""


class MapsPayload(_WireModel):
    sections: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    section_order: List[str] = Field(default_factory=list, alias="sectionOrder")

    @classmethod
    def empty(cls) -> "MapsPayload":
        return cls()

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def empty_maps_payload() -> Dict[str, Any]:
    """A fresh empty maps structure: 'no content', as opposed to stale content."""
    return MapsPayload.empty().to_payload()


class NoteSummary(_WireModel):
    """Read-only projection of a note used for matching."""
    id: str
    title: str = "Untitled"
    content_excerpt: str = Field(default="", alias="content")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    tags: List[str] = Field(default_factory=list)

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator('title', mode='before')
    @classmethod
    def default_title(cls, v: Any) -> str:
        return v or "Untitled"

    @field_validator('content_excerpt', mode='before')
    @classmethod
    def truncate_content(cls, v: Any) -> str:
        return (v or "")[:400]

    @field_validator('tags', mode='before')
    @classmethod
    def tag_names(cls, v: Any) -> List[str]:
        # The note store returns tags as {id, name, color} objects
        names = []
        for tag in v or []:
            name = tag.get("name") if isinstance(tag, dict) else tag
            if name:
                names.append(str(name))
        return names


class ArticleSummary(_WireModel):
    id: str
    title: str
    summary_or_excerpt: str = Field(default="", alias="summary")
    published_at: Optional[datetime] = Field(default=None, alias="publishedDate")
    source: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator('summary_or_excerpt', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return v or ""


class InsightState(str, Enum):
    OK = "ok"
    UPDATES_AVAILABLE = "updates_available"


class MatchedUpdate(_WireModel):
    note_id: str = Field(alias="noteId")
    note_title: str = Field(default="", alias="noteTitle")
    article_id: str = Field(alias="articleId")
    article_title: str = Field(default="", alias="articleTitle")
    reason: str = ""

    @field_validator('note_id', 'article_id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)


class InsightStatus(_WireModel):
    """Outcome of a staleness scan."""
    state: InsightState = Field(alias="status")
    message: str = ""
    updates: List[MatchedUpdate] = Field(default_factory=list)

    @classmethod
    def ok(cls, message: str) -> "InsightStatus":
        return cls(state=InsightState.OK, message=message, updates=[])

    @property
    def has_updates(self) -> bool:
        return self.state == InsightState.UPDATES_AVAILABLE

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class KeywordMatch(_WireModel):
    """A news article matched to a study topic by the keyword scan."""
    note_id: str = Field(alias="noteId")
    note_title: str = Field(alias="noteTitle")
    article_id: str = Field(alias="articleId")
    article_title: str = Field(alias="articleTitle")
    article_summary: str = Field(default="", alias="articleSummary")
    article_source: Optional[str] = Field(default=None, alias="articleSource")
    match_reason: str = Field(alias="matchReason")
    matched_keyword: str = Field(alias="matchedTag")
    matched_at: datetime = Field(default_factory=datetime.now, alias="matchedAt")
    is_read: bool = Field(default=False, alias="isRead")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


CategoryPayload = Union[Dict[str, Any], List[Dict[str, Any]]]


@dataclass
class CacheEntry:
    """A cached category payload."""
    category: str
    payload: CategoryPayload
    fetched_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.fetched_at < ttl_seconds


@dataclass
class ScanRun:
    """Bookkeeping for one periodic scan source."""
    started_at: Optional[datetime] = None
    in_flight: bool = False
    in_flight_generation: Optional[int] = None
    last_result: Any = None
    last_error: Optional[str] = None
    runs: int = 0
    skipped: int = 0


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ChatTurn:
    role: ChatRole
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ChatSessionState:
    """Ordered, append-only turns of one chat session."""
    turns: List[ChatTurn] = field(default_factory=list)
    is_thinking: bool = False
