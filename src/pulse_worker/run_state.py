"""
Run bookkeeping: per-run statistics and the persisted cross-run record.

RunState is one versioned record. A run reads it once at start and writes
a whole new version once at the end, so a run that dies midway leaves the
previous version in place.

Dedup horizon:
    The horizon maps article identity -> first time it was settled (saved
    or found already present). It is bounded two ways:
    1. Entries older than the time window expire
    2. If still over max_entries, only the newest entries are kept
"""

from datetime import datetime, timedelta
from typing import Protocol

from pydantic import BaseModel, Field


class RunStats(BaseModel):
    """Counters for one pipeline execution."""

    run_id: str = ""
    trigger: str = "timer"
    source_articles: dict[str, int] = Field(
        default_factory=dict,
        description="Pre-dedup candidate count per source kind",
    )
    unique_articles: int = 0
    ai_processed: int = 0
    saved_articles: int = 0
    skipped_articles: int = 0
    errors: int = Field(default=0, description="All failures: sources, enrichment and persistence")
    source_errors: int = Field(default=0, description="Failed sources, also included in errors")
    execution_time_ms: int = 0


class RunState(BaseModel):
    """Process-wide record that survives across runs."""

    last_run_at: datetime | None = None
    last_stats: RunStats | None = None
    horizon: dict[str, datetime] = Field(default_factory=dict)
    total_saved: int = 0
    version: int = 0

    def live_horizon(self, now: datetime, window: timedelta) -> set[str]:
        """Identities that still suppress re-ingestion at `now`."""
        cutoff = now - window
        return {identity for identity, seen_at in self.horizon.items() if seen_at >= cutoff}

    def advance(
        self,
        *,
        stats: RunStats,
        settled_identities: list[str],
        now: datetime,
        window: timedelta,
        max_entries: int,
    ) -> "RunState":
        """
        Build the next version of the record after a completed run.

        Does not modify self.
        """
        cutoff = now - window
        horizon = {identity: seen_at for identity, seen_at in self.horizon.items() if seen_at >= cutoff}
        for identity in settled_identities:
            horizon.setdefault(identity, now)

        if len(horizon) > max_entries:
            newest = sorted(horizon.items(), key=lambda kv: kv[1], reverse=True)[:max_entries]
            horizon = dict(newest)

        return RunState(
            last_run_at=now,
            last_stats=stats,
            horizon=horizon,
            total_saved=self.total_saved + stats.saved_articles,
            version=self.version + 1,
        )


class RunStateStore(Protocol):
    """Durable key-value storage for the RunState blob."""

    async def load(self) -> RunState:
        """Return the stored state, or a fresh RunState if none exists."""
        ...

    async def save(self, state: RunState, expected_version: int) -> None:
        """
        Replace the stored state in one write.

        Raises:
            RunStateConflict: If the stored version is not expected_version
        """
        ...
