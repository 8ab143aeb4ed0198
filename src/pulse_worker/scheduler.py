"""
Scheduler - Decides when runs happen and guarantees only one is active.

Two ways to start a run:
1. Timer: run_forever() calls tick() every interval. A tick waits for an
   active run to finish, then runs; the next sleep starts only after the
   tick completes, so timer runs never overlap.
2. Manual: trigger() runs immediately, or raises RunInProgressError if a
   run is active or a timer tick is waiting for the lock. A manual run
   never waits behind another run.

Health:
    never_run  - no run has ever been recorded
    healthy    - last run is at most STALE_AFTER_INTERVALS intervals old
    stale      - last run is older than that

Usage:
    scheduler = Scheduler(deps, interval=timedelta(minutes=15))
    scheduler.start()          # background timer loop
    stats = await scheduler.trigger()
    await scheduler.stop()
"""

import asyncio
from datetime import UTC, datetime, timedelta

import structlog
from pydantic import BaseModel, Field

from pulse_worker.errors import RunInProgressError
from pulse_worker.graph.orchestrator import PipelineDeps, run_once
from pulse_worker.run_state import RunState, RunStats

logger = structlog.get_logger()

STALE_AFTER_INTERVALS = 3


class HealthReport(BaseModel):
    status: str = Field(description="never_run, healthy or stale")
    running: bool = Field(description="Whether a run is in progress")
    last_run_at: datetime | None = Field(default=None, description="When the last run completed")
    horizon_size: int = Field(default=0, description="Identities currently remembered for dedup")
    last_stats: RunStats | None = Field(default=None, description="Stats of the last completed run")
    last_error: str | None = Field(default=None, description="Error of the last failed run, if any")


def health_status(state: RunState, now: datetime, interval: timedelta) -> str:
    if state.last_run_at is None:
        return "never_run"
    if now - state.last_run_at > interval * STALE_AFTER_INTERVALS:
        return "stale"
    return "healthy"


class Scheduler:
    def __init__(self, deps: PipelineDeps, interval: timedelta):
        self.deps = deps
        self.interval = interval
        self.last_error: str | None = None
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._queued_ticks = 0

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def _run_locked(self, trigger: str) -> RunStats:
        try:
            stats = await run_once(self.deps, trigger=trigger)
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            raise
        self.last_error = None
        return stats

    async def trigger(self) -> RunStats:
        """
        Run now.

        Raises:
            RunInProgressError: If another run is active or a tick is queued
            RunTimeout: If the run exceeded its time budget
        """
        if self._lock.locked() or self._queued_ticks:
            raise RunInProgressError("a run is already in progress")

        async with self._lock:
            logger.info("Manual run triggered")
            return await self._run_locked("manual")

    async def tick(self) -> RunStats | None:
        """One timer-driven run, after any active run. Failures are logged, never raised."""
        self._queued_ticks += 1
        try:
            await self._lock.acquire()
        finally:
            self._queued_ticks -= 1

        try:
            return await self._run_locked("timer")
        except Exception as e:
            logger.error("Scheduled run failed", error=str(e), error_type=type(e).__name__)
            return None
        finally:
            self._lock.release()

    async def run_forever(self) -> None:
        logger.info("Scheduler started", interval_seconds=self.interval.total_seconds())
        while not self._stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval.total_seconds())
            except TimeoutError:
                continue
        logger.info("Scheduler stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        """Stop the timer loop, cancelling a run in progress."""
        self._stop.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def state(self) -> RunState:
        return await self.deps.run_state_store.load()

    async def health(self, now: datetime | None = None) -> HealthReport:
        state = await self.state()
        now = now or datetime.now(UTC)
        return HealthReport(
            status=health_status(state, now, self.interval),
            running=self.running,
            last_run_at=state.last_run_at,
            horizon_size=len(state.live_horizon(now, self.deps.horizon_window)),
            last_stats=state.last_stats,
            last_error=self.last_error,
        )
