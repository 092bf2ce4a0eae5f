"""Shared fixtures: fake upstream services and a controllable clock."""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from knowledge_radar.engine.models import ArticleSummary, NoteSummary


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeReasoning:
    """Records every completion request and replies with a canned text."""

    def __init__(self, reply: str = '{"status": "ok", "message": "All good.", "updates": []}'):
        self.reply = reply
        self.error: Optional[Exception] = None
        self.has_credential = True
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Dict] = []

    async def complete(self, system_prompt, messages, response_format="json"):
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": messages,
            "response_format": response_format,
        })
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notes():
    now = datetime(2026, 10, 1, 12, 0)
    return [
        NoteSummary(id="n1", title="Monetary Policy", content_excerpt="Repo rate is 6.5%. RBI MPC meets bi-monthly.",
                    updated_at=now, tags=["economy", "rbi"]),
        NoteSummary(id="n2", title="Fundamental Rights", content_excerpt="Articles 12-35 of the Constitution.",
                    updated_at=now - timedelta(days=1), tags=["polity"]),
    ]


@pytest.fixture
def articles():
    return [
        ArticleSummary(id="a1", title="RBI hikes repo rate by 25 bps",
                       summary_or_excerpt="The Reserve Bank of India raised the repo rate to 6.75%.", source="TH"),
        ArticleSummary(id="a2", title="Monsoon arrives early in Kerala",
                       summary_or_excerpt="IMD declares onset of the southwest monsoon.", source="ET"),
    ]


@pytest.fixture
def content(notes, articles):
    client = Mock()
    client.fetch_recent_notes = AsyncMock(return_value=notes)
    client.fetch_recent_articles = AsyncMock(return_value=articles)
    return client


@pytest.fixture
def fake_reasoning():
    return FakeReasoning()
