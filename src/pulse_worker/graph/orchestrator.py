"""
LangGraph Orchestrator - Wires all nodes into a complete pipeline.

This module:
1. Bundles a run's collaborators into PipelineDeps
2. Creates the StateGraph with all nodes
3. Provides run_once() to execute one full run

Pipeline Flow:
    START
      ↓
    Load Run State
      ↓
    Collect (all sources concurrently)
      ↓
    Deduplicate
      ↓
    Enrich
      ↓
    Persist
      ↓
    Record Run
      ↓
    END

run_once() knows nothing about timers or HTTP triggers; the scheduler
decides when to call it and makes sure only one run is active.

Usage:
    from pulse_worker.graph.orchestrator import PipelineDeps, run_once

    deps = PipelineDeps.from_settings(settings, sources=..., article_store=..., run_state_store=..., llm=...)
    stats = await run_once(deps, trigger="manual")
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import httpx
import structlog
from langchain_core.runnables import Runnable
from langgraph.graph import END, START, StateGraph

from pulse_worker.config import Settings
from pulse_worker.db.articles import ArticleStore, PostgresArticleStore
from pulse_worker.db.connection import get_db_pool
from pulse_worker.db.run_state import PostgresRunStateStore
from pulse_worker.errors import RunTimeout
from pulse_worker.graph.nodes import (
    build_chat_model,
    create_collect_node,
    create_deduplicate_node,
    create_enrich_node,
    create_load_run_state_node,
    create_persist_node,
    create_record_run_node,
)
from pulse_worker.graph.nodes.enrich import MALFORMED_OUTPUT_ERRORS
from pulse_worker.graph.state import PipelineState
from pulse_worker.policy import CallPolicy
from pulse_worker.run_state import RunStateStore, RunStats
from pulse_worker.sources import SourceClient, build_source_clients

logger = structlog.get_logger()


@dataclass
class PipelineDeps:
    """Everything one run needs, injected so tests can swap any piece."""

    sources: list[SourceClient]
    article_store: ArticleStore
    run_state_store: RunStateStore
    llm: Runnable | None = None

    source_policy: CallPolicy = field(default_factory=lambda: CallPolicy(timeout=20.0))
    enrich_policy: CallPolicy = field(
        default_factory=lambda: CallPolicy(timeout=30.0, retries=1, retry_on=MALFORMED_OUTPUT_ERRORS)
    )
    persist_policy: CallPolicy = field(default_factory=lambda: CallPolicy(timeout=10.0))

    enrich_concurrency: int = 3
    horizon_window: timedelta = timedelta(hours=72)
    horizon_max_entries: int = 5000
    run_timeout: float | None = 600.0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        sources: list[SourceClient],
        article_store: ArticleStore,
        run_state_store: RunStateStore,
        llm: Runnable | None,
    ) -> "PipelineDeps":
        return cls(
            sources=sources,
            article_store=article_store,
            run_state_store=run_state_store,
            llm=llm,
            source_policy=CallPolicy(timeout=settings.source_timeout_seconds),
            enrich_policy=CallPolicy(
                timeout=settings.enrich_timeout_seconds,
                retries=settings.enrich_retries,
                retry_on=MALFORMED_OUTPUT_ERRORS,
            ),
            persist_policy=CallPolicy(timeout=settings.persist_timeout_seconds),
            enrich_concurrency=settings.enrich_concurrency,
            horizon_window=timedelta(hours=settings.dedup_horizon_hours),
            horizon_max_entries=settings.dedup_horizon_max_entries,
            run_timeout=settings.run_timeout_seconds,
        )


def create_graph(deps: PipelineDeps):
    """
    Create and compile the ingestion graph for a set of collaborators.

    Returns:
        Compiled StateGraph ready for execution
    """
    builder = StateGraph(PipelineState)

    builder.add_node("load_run_state", create_load_run_state_node(deps.run_state_store))
    builder.add_node("collect", create_collect_node(deps.sources, deps.source_policy))
    builder.add_node("deduplicate", create_deduplicate_node(deps.horizon_window))
    builder.add_node(
        "enrich",
        create_enrich_node(deps.llm, deps.enrich_policy, max_concurrent=deps.enrich_concurrency),
    )
    builder.add_node("persist", create_persist_node(deps.article_store, deps.persist_policy))
    builder.add_node(
        "record_run",
        create_record_run_node(deps.run_state_store, deps.horizon_window, deps.horizon_max_entries),
    )

    builder.add_edge(START, "load_run_state")
    builder.add_edge("load_run_state", "collect")
    builder.add_edge("collect", "deduplicate")
    builder.add_edge("deduplicate", "enrich")
    builder.add_edge("enrich", "persist")
    builder.add_edge("persist", "record_run")
    builder.add_edge("record_run", END)

    return builder.compile()


def new_run_id() -> str:
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    return f"run_{timestamp}_{uuid.uuid4().hex[:8]}"


async def run_once(deps: PipelineDeps, trigger: str = "timer", run_id: str | None = None) -> RunStats:
    """
    Execute one complete ingestion run.

    Args:
        deps: Collaborators and limits for this run
        trigger: "timer" or "manual", recorded in the stats
        run_id: Optional unique ID for this run (auto-generated if None)

    Returns:
        RunStats for the run

    Raises:
        RunTimeout: If the run exceeded deps.run_timeout; the stored
            RunState is left untouched
        RunStateConflict: If another writer updated the RunState meanwhile
    """
    if run_id is None:
        run_id = new_run_id()

    log = logger.bind(run_id=run_id, trigger=trigger)
    log.info("Starting pipeline run", source_count=len(deps.sources))

    initial_state: PipelineState = {
        "run_id": run_id,
        "run_date": datetime.now(UTC),
        "trigger": trigger,
        "started_monotonic": time.monotonic(),
    }

    graph = create_graph(deps)

    try:
        async with asyncio.timeout(deps.run_timeout):
            final_state = await graph.ainvoke(initial_state)
    except TimeoutError as e:
        log.error("Pipeline run timed out", timeout=deps.run_timeout)
        raise RunTimeout(f"run {run_id} exceeded {deps.run_timeout}s") from e

    stats: RunStats = final_state["run_stats"]

    log.info(
        "Pipeline run complete",
        unique_articles=stats.unique_articles,
        saved=stats.saved_articles,
        skipped=stats.skipped_articles,
        errors=stats.errors,
        source_errors=stats.source_errors,
        execution_time_ms=stats.execution_time_ms,
    )
    return stats


async def build_default_deps(settings: Settings, http_client: httpx.AsyncClient) -> PipelineDeps:
    """
    Wire the production collaborators: configured sources, PostgreSQL
    stores and the chat model selected in settings.
    """
    pool = await get_db_pool()
    return PipelineDeps.from_settings(
        settings,
        sources=build_source_clients(settings, http_client),
        article_store=PostgresArticleStore(pool),
        run_state_store=PostgresRunStateStore(pool, key=settings.run_state_key),
        llm=build_chat_model(settings),
    )
