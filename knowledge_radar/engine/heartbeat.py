"""
Heartbeat scheduler for periodic radar scans.

Each registered source runs on its own fixed interval while the owning
screen is focused. A tick that fires while the previous run of the same
source is still in flight is skipped, not queued. Blurring cancels every
timer at once; runs already in flight are left to finish, but their
results are discarded instead of published.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from loguru import logger

from .bus import Event, EventBus
from .config import HeartbeatConfig
from .errors import ErrorSink
from .models import ScanRun


INSIGHT_SOURCE = "insight"
NEWS_MATCH_SOURCE = "news_matches"


@dataclass
class ScanSource:
    """A named periodic scan and its bookkeeping."""
    name: str
    run: Callable[[], Awaitable[Any]]
    interval_seconds: float
    state: ScanRun = field(default_factory=ScanRun)
    timer: Optional[asyncio.Task] = None


class HeartbeatScheduler:
    """Drives periodic scans with per-source non-overlap."""

    def __init__(self,
                 event_bus: Optional[EventBus] = None,
                 error_sink: Optional[ErrorSink] = None):
        self.event_bus = event_bus
        self.error_sink = error_sink or ErrorSink()
        self.sources: Dict[str, ScanSource] = {}
        self.focused = False

        self._generation = 0
        self._runs: Set[asyncio.Task] = set()

    def register(self, name: str, run: Callable[[], Awaitable[Any]],
                 interval_seconds: float) -> ScanSource:
        """Register a scan source. Sources are independent of each other."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if name in self.sources:
            raise ValueError(f"Scan source already registered: {name}")
        source = ScanSource(name=name, run=run, interval_seconds=interval_seconds)
        self.sources[name] = source
        return source

    async def trigger(self, name: str) -> Optional[Any]:
        """Run ``name`` once unless a run of it is already in flight.

        Returns the run's result, or None when the run was skipped, failed,
        or finished after the scheduler was blurred.
        """
        source = self.sources[name]
        state = source.state
        generation = self._generation
        # A run left over from before the last blur does not block this session
        if state.in_flight and state.in_flight_generation == generation:
            state.skipped += 1
            logger.debug(f"[Heartbeat] {name} still running, skipping tick")
            return None

        state.in_flight = True
        state.in_flight_generation = generation
        state.started_at = datetime.now()
        try:
            result = await source.run()
        except Exception as e:
            self.error_sink.record(f"heartbeat.{name}", e)
            if generation == self._generation:
                state.last_error = type(e).__name__
            return None
        finally:
            if state.in_flight_generation == generation:
                state.in_flight = False
                state.in_flight_generation = None

        if generation != self._generation:
            logger.debug(f"[Heartbeat] discarding {name} result from a torn-down session")
            return None

        state.runs += 1
        state.last_result = result
        state.last_error = None
        if self.event_bus is not None:
            await self.event_bus.emit(Event(
                type=f"heartbeat.{name}",
                data={"result": result},
                source="heartbeat"
            ))
        return result

    def _spawn(self, name: str) -> asyncio.Task:
        task = asyncio.create_task(self.trigger(name))
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _timer_loop(self, source: ScanSource, generation: int) -> None:
        while self.focused and generation == self._generation:
            await asyncio.sleep(source.interval_seconds)
            logger.debug(f"[Heartbeat] {source.name} tick")
            self._spawn(source.name)

    async def focus(self) -> None:
        """Start scanning: one immediate run per source, then the timers."""
        if self.focused:
            return

        self.focused = True
        self._generation += 1
        generation = self._generation
        for source in self.sources.values():
            self._spawn(source.name)
            source.timer = asyncio.create_task(self._timer_loop(source, generation))
        logger.info(f"Heartbeat started for {len(self.sources)} source(s)")

    async def blur(self) -> None:
        """Stop every timer immediately. In-flight results are discarded."""
        if not self.focused:
            return

        self.focused = False
        self._generation += 1
        timers = [s.timer for s in self.sources.values() if s.timer is not None]
        for timer in timers:
            timer.cancel()
        for timer in timers:
            try:
                await timer
            except asyncio.CancelledError:
                pass
        for source in self.sources.values():
            source.timer = None
        logger.info("Heartbeat stopped")

    async def wait_idle(self) -> None:
        """Wait for every run currently in flight to finish."""
        if self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)

    def latest(self, name: str) -> Any:
        return self.sources[name].state.last_result

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {
                "runs": s.state.runs,
                "skipped": s.state.skipped,
                "in_flight": s.state.in_flight,
                "last_error": s.state.last_error,
                "started_at": s.state.started_at.isoformat() if s.state.started_at else None,
            }
            for name, s in self.sources.items()
        }


def build_radar_heartbeat(insight_agent, news_matcher,
                          config: Optional[HeartbeatConfig] = None,
                          event_bus: Optional[EventBus] = None,
                          error_sink: Optional[ErrorSink] = None) -> HeartbeatScheduler:
    """Wire the AI staleness scan and the keyword scan into one scheduler."""
    config = config or HeartbeatConfig()
    scheduler = HeartbeatScheduler(event_bus=event_bus, error_sink=error_sink)
    scheduler.register(INSIGHT_SOURCE, insight_agent.check_note_status,
                       config.insight_interval_seconds)
    scheduler.register(NEWS_MATCH_SOURCE, news_matcher.check_matches,
                       config.news_match_interval_seconds)
    return scheduler
