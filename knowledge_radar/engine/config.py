"""Configuration management for Knowledge Radar."""

import os
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator


API_KEY_ENV_VARS = ("RADAR_REASONING_API_KEY", "OPENROUTER_API_KEY")


class ApiConfig(BaseModel):
    base_url: str = "http://localhost:3000/admin/api/mobile"
    user_id: Optional[str] = None
    timeout_seconds: float = 10.0


class ReasoningConfig(BaseModel):
    endpoint: str = "https://openrouter.ai/api/v1/chat/completions"
    model: str = "google/gemini-2.0-flash-001"
    timeout_seconds: float = 60.0
    referer: str = "https://prepassist.in"
    title: str = "PrepAssist UPSC"
    api_key: Optional[str] = Field(default=None, exclude=True)

    def resolve_api_key(self) -> Optional[str]:
        """Return the configured credential, falling back to the environment."""
        if self.api_key:
            return self.api_key
        for name in API_KEY_ENV_VARS:
            value = os.environ.get(name)
            if value:
                return value
        return None


class CacheConfig(BaseModel):
    ttl_seconds: float = 600.0

    @field_validator('ttl_seconds')
    @classmethod
    def validate_ttl(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ttl_seconds must be positive")
        return v


class InsightConfig(BaseModel):
    max_notes: int = 50
    max_articles: int = 20
    note_excerpt_chars: int = 400
    article_excerpt_chars: int = 500
    verify_matches: bool = False

    @field_validator('max_notes', 'max_articles', 'note_excerpt_chars', 'article_excerpt_chars')
    @classmethod
    def validate_limits(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("insight limits must be positive")
        return v


class HeartbeatConfig(BaseModel):
    news_match_interval_seconds: float = 30.0
    insight_interval_seconds: float = 300.0

    @field_validator('news_match_interval_seconds', 'insight_interval_seconds')
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("heartbeat intervals must be positive")
        return v


class ChatConfig(BaseModel):
    max_history_turns: int = 20

    @field_validator('max_history_turns')
    @classmethod
    def validate_turns(cls, v: int) -> int:
        if v < 2:
            raise ValueError("max_history_turns must be at least 2")
        return v


class NewsMatchConfig(BaseModel):
    article_limit: int = 100
    check_interval_seconds: float = 1800.0


class Config(BaseModel):
    """Main configuration for the Knowledge Radar engine."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    reasoning: ReasoningConfig = Field(default_factory=ReasoningConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    insight: InsightConfig = Field(default_factory=InsightConfig)
    heartbeat: HeartbeatConfig = Field(default_factory=HeartbeatConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    news_match: NewsMatchConfig = Field(default_factory=NewsMatchConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from YAML file.

        Without an explicit path the default locations are searched; when
        none exists the built-in defaults are used.
        """
        if config_path is None:
            candidates = [
                Path("knowledge_radar.yaml"),
                Path.home() / ".config" / "knowledge_radar" / "config.yaml",
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = candidate
                    break
            else:
                logger.debug("No config file found, using defaults")
                return cls()

        logger.info(f"Loading config from: {config_path}")
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False)
