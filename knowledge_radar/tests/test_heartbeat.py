"""Tests for the heartbeat scheduler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from knowledge_radar.engine.bus import EventBus
from knowledge_radar.engine.config import HeartbeatConfig
from knowledge_radar.engine.errors import ErrorSink
from knowledge_radar.engine.heartbeat import (
    INSIGHT_SOURCE,
    NEWS_MATCH_SOURCE,
    HeartbeatScheduler,
    build_radar_heartbeat,
)
from knowledge_radar.engine.insight import InsightAgent


async def settle(rounds: int = 5):
    """Let pending tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class GatedRun:
    """A scan that blocks until released and counts its invocations."""

    def __init__(self, result="done"):
        self.result = result
        self.calls = 0
        self.gate = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        await self.gate.wait()
        return self.result


@pytest.fixture
def scheduler():
    return HeartbeatScheduler(error_sink=ErrorSink())


class TestNonOverlap:

    @pytest.mark.asyncio
    async def test_overlapping_triggers_call_reasoning_once(self, content, fake_reasoning):
        """Two ticks while the first scan is pending produce one reasoning call."""
        fake_reasoning.gate = asyncio.Event()
        agent = InsightAgent(content, fake_reasoning)
        scheduler = HeartbeatScheduler()
        scheduler.register(INSIGHT_SOURCE, agent.check_note_status, 300)

        first = asyncio.create_task(scheduler.trigger(INSIGHT_SOURCE))
        await settle()
        second = await scheduler.trigger(INSIGHT_SOURCE)

        assert second is None
        assert len(fake_reasoning.calls) == 1

        fake_reasoning.gate.set()
        status = await first

        assert status.message == "All good."
        assert len(fake_reasoning.calls) == 1
        assert scheduler.sources[INSIGHT_SOURCE].state.skipped == 1
        assert scheduler.sources[INSIGHT_SOURCE].state.runs == 1

    @pytest.mark.asyncio
    async def test_sources_do_not_block_each_other(self, scheduler):
        slow = GatedRun()
        fast = AsyncMock(return_value=["match"])
        scheduler.register("slow", slow, 60)
        scheduler.register("fast", fast, 60)

        pending = asyncio.create_task(scheduler.trigger("slow"))
        await settle()

        assert await scheduler.trigger("fast") == ["match"]

        slow.gate.set()
        assert await pending == "done"

    @pytest.mark.asyncio
    async def test_next_trigger_runs_after_completion(self, scheduler):
        run = AsyncMock(side_effect=["first", "second"])
        scheduler.register("scan", run, 60)

        assert await scheduler.trigger("scan") == "first"
        assert await scheduler.trigger("scan") == "second"
        assert scheduler.sources["scan"].state.skipped == 0


class TestFocusAndBlur:

    @pytest.mark.asyncio
    async def test_focus_runs_every_source_immediately(self, scheduler):
        insight = AsyncMock(return_value="status")
        matches = AsyncMock(return_value=[])
        scheduler.register(INSIGHT_SOURCE, insight, 300)
        scheduler.register(NEWS_MATCH_SOURCE, matches, 30)

        await scheduler.focus()
        await settle()

        insight.assert_awaited_once()
        matches.assert_awaited_once()
        assert scheduler.latest(INSIGHT_SOURCE) == "status"
        await scheduler.blur()

    @pytest.mark.asyncio
    async def test_timer_fires_on_interval(self, scheduler):
        run = AsyncMock(return_value=1)
        scheduler.register("scan", run, 0.02)

        await scheduler.focus()
        await asyncio.sleep(0.15)
        await scheduler.blur()

        assert run.await_count >= 3

    @pytest.mark.asyncio
    async def test_blur_stops_timers(self, scheduler):
        run = AsyncMock(return_value=1)
        scheduler.register("scan", run, 0.02)

        await scheduler.focus()
        await asyncio.sleep(0.05)
        await scheduler.blur()
        await scheduler.wait_idle()
        calls = run.await_count
        await asyncio.sleep(0.08)

        assert run.await_count == calls
        assert scheduler.sources["scan"].timer is None

    @pytest.mark.asyncio
    async def test_result_after_blur_is_discarded(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe("heartbeat.*", handler)
        await bus.start()
        scheduler = HeartbeatScheduler(event_bus=bus)
        run = GatedRun(result="late")
        scheduler.register("scan", run, 60)

        await scheduler.focus()
        await settle()
        await scheduler.blur()
        run.gate.set()
        await scheduler.wait_idle()
        await asyncio.sleep(0.05)
        await bus.stop()

        assert run.calls == 1
        assert scheduler.latest("scan") is None
        assert scheduler.sources["scan"].state.runs == 0
        assert received == []

    @pytest.mark.asyncio
    async def test_refocus_after_blur_runs_again(self, scheduler):
        run = AsyncMock(return_value=1)
        scheduler.register("scan", run, 60)

        await scheduler.focus()
        await settle()
        await scheduler.blur()
        await scheduler.focus()
        await settle()
        await scheduler.blur()

        assert run.await_count == 2

    @pytest.mark.asyncio
    async def test_refocus_runs_while_previous_session_run_is_pending(self, scheduler):
        """A run left over from before blur must not swallow the next focus run."""
        run = GatedRun(result="fresh")
        scheduler.register(INSIGHT_SOURCE, run, 300)

        await scheduler.focus()
        await settle()
        await scheduler.blur()
        await scheduler.focus()
        await settle()

        assert run.calls == 2

        run.gate.set()
        await scheduler.wait_idle()
        await scheduler.blur()

        state = scheduler.sources[INSIGHT_SOURCE].state
        assert scheduler.latest(INSIGHT_SOURCE) == "fresh"
        assert state.runs == 1
        assert state.skipped == 0
        assert state.in_flight is False

    @pytest.mark.asyncio
    async def test_tick_during_current_session_run_is_still_skipped(self, scheduler):
        run = GatedRun()
        scheduler.register("scan", run, 300)

        await scheduler.focus()
        await settle()
        assert await scheduler.trigger("scan") is None

        run.gate.set()
        await scheduler.wait_idle()
        await scheduler.blur()

        assert run.calls == 1
        assert scheduler.sources["scan"].state.skipped == 1

    @pytest.mark.asyncio
    async def test_focus_is_idempotent(self, scheduler):
        run = AsyncMock(return_value=1)
        scheduler.register("scan", run, 60)

        await scheduler.focus()
        await scheduler.focus()
        await settle()
        await scheduler.blur()

        run.assert_awaited_once()


class TestFailures:

    @pytest.mark.asyncio
    async def test_failure_keeps_timer_alive(self):
        sink = ErrorSink()
        scheduler = HeartbeatScheduler(error_sink=sink)
        run = AsyncMock(side_effect=RuntimeError("scan exploded"))
        scheduler.register("scan", run, 0.02)

        await scheduler.focus()
        await asyncio.sleep(0.15)
        await scheduler.blur()
        await scheduler.wait_idle()

        assert run.await_count >= 3
        assert sink.error_counts["heartbeat.scan:RuntimeError"] == run.await_count

    @pytest.mark.asyncio
    async def test_failed_trigger_records_last_error(self, scheduler):
        scheduler.register("scan", AsyncMock(side_effect=ValueError("bad")), 60)

        assert await scheduler.trigger("scan") is None

        stats = scheduler.get_stats()["scan"]
        assert stats["last_error"] == "ValueError"
        assert stats["in_flight"] is False
        assert stats["runs"] == 0


class TestRegistration:

    def test_rejects_non_positive_interval(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.register("scan", AsyncMock(), 0)

    def test_rejects_duplicate_name(self, scheduler):
        scheduler.register("scan", AsyncMock(), 10)
        with pytest.raises(ValueError):
            scheduler.register("scan", AsyncMock(), 10)

    def test_radar_heartbeat_intervals(self, content, fake_reasoning):
        agent = InsightAgent(content, fake_reasoning)
        matcher = AsyncMock()
        scheduler = build_radar_heartbeat(
            agent, matcher, HeartbeatConfig(news_match_interval_seconds=15, insight_interval_seconds=120)
        )

        assert scheduler.sources[INSIGHT_SOURCE].interval_seconds == 120
        assert scheduler.sources[NEWS_MATCH_SOURCE].interval_seconds == 15


class TestPublishing:

    @pytest.mark.asyncio
    async def test_results_are_published_on_the_bus(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe(f"heartbeat.{NEWS_MATCH_SOURCE}", handler)
        await bus.start()
        scheduler = HeartbeatScheduler(event_bus=bus)
        scheduler.register(NEWS_MATCH_SOURCE, AsyncMock(return_value=["m1", "m2"]), 60)

        await scheduler.trigger(NEWS_MATCH_SOURCE)
        await asyncio.sleep(0.05)
        await bus.stop()

        assert len(received) == 1
        assert received[0].data == {"result": ["m1", "m2"]}
        assert received[0].source == "heartbeat"
