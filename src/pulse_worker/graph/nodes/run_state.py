"""
Run-State Nodes - Read the cross-run record at the start, write it at the end.

load_run_state is the first node and record_run the last. Nothing in
between touches the store, so a run that is abandoned midway (timeout,
crash) leaves the stored record exactly as it was.
"""

import time
from datetime import timedelta

import structlog

from pulse_worker.graph.state import PipelineState
from pulse_worker.run_state import RunStateStore, RunStats

logger = structlog.get_logger()


def create_load_run_state_node(store: RunStateStore):
    async def load_run_state(state: PipelineState) -> dict:
        previous = await store.load()
        logger.info(
            "Run state loaded",
            run_id=state.get("run_id"),
            version=previous.version,
            last_run_at=previous.last_run_at.isoformat() if previous.last_run_at else None,
            horizon_size=len(previous.horizon),
        )
        return {"previous_state": previous}

    return load_run_state


def build_run_stats(state: PipelineState) -> RunStats:
    """Fold the per-stage counters into one RunStats."""
    source_errors = state.get("source_errors", [])
    persist_result = state.get("persist_result") or {}
    started = state.get("started_monotonic", time.monotonic())

    return RunStats(
        run_id=state.get("run_id", ""),
        trigger=state.get("trigger", "timer"),
        source_articles=dict(state.get("source_counts", {})),
        unique_articles=len(state.get("unique_candidates", [])),
        ai_processed=state.get("ai_processed", 0),
        saved_articles=persist_result.get("saved", 0),
        skipped_articles=persist_result.get("skipped", 0),
        errors=len(source_errors) + state.get("enrichment_errors", 0) + persist_result.get("errors", 0),
        source_errors=len(source_errors),
        execution_time_ms=int((time.monotonic() - started) * 1000),
    )


def create_record_run_node(store: RunStateStore, horizon_window: timedelta, horizon_max_entries: int):
    """
    Factory for the final node.

    Args:
        store: Where the RunState lives
        horizon_window: How long a settled identity stays in the horizon
        horizon_max_entries: Size cap on the horizon
    """

    async def record_run(state: PipelineState) -> dict:
        previous = state["previous_state"]
        stats = build_run_stats(state)
        persist_result = state.get("persist_result") or {}

        new_state = previous.advance(
            stats=stats,
            settled_identities=persist_result.get("settled_identities", []),
            now=state["run_date"],
            window=horizon_window,
            max_entries=horizon_max_entries,
        )

        # Single write; raises RunStateConflict if another writer got there first
        await store.save(new_state, expected_version=previous.version)

        logger.info("Run recorded", **stats.model_dump(exclude={"source_articles"}))
        return {"run_stats": stats, "new_state": new_state}

    return record_run
