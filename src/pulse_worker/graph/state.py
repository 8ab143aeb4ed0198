"""
LangGraph state schema for the ingestion worker.

The article shapes that flow through it live in pulse_worker.models;
run bookkeeping lives in pulse_worker.run_state.
"""

from datetime import datetime
from typing import TypedDict

from pulse_worker.models import CandidateArticle, EnrichedArticle, PersistResult
from pulse_worker.run_state import RunState, RunStats


class PipelineState(TypedDict, total=False):
    """
    Main state for the ingestion graph.

    START -> load_run_state -> collect -> deduplicate -> enrich -> persist -> record_run -> END

    Key patterns:
    1. `total=False` means all fields are optional (nodes return partial updates)
    2. previous_state is read once by load_run_state; new_state is written
       once by record_run, so an interrupted run never half-updates it
    3. Counters are kept per stage and folded into RunStats at the end

    Example flow:
    - START sets: run_id, run_date, trigger, started_monotonic
    - load_run_state sets: previous_state
    - collect sets: candidates, source_errors, source_counts
    - deduplicate sets: unique_candidates
    - enrich sets: enriched_articles, enrichment_errors, ai_processed
    - persist sets: persist_result
    - record_run sets: run_stats, new_state
    """

    # === Input (set at pipeline start) ===
    run_id: str
    run_date: datetime
    trigger: str  # "timer" or "manual"
    started_monotonic: float

    # === Run state ===
    previous_state: RunState
    new_state: RunState

    # === Collection ===
    candidates: list[CandidateArticle]
    source_errors: list[dict]
    source_counts: dict[str, int]

    # === Processing ===
    unique_candidates: list[CandidateArticle]
    enriched_articles: list[EnrichedArticle]
    enrichment_errors: int
    ai_processed: int

    # === Output ===
    persist_result: PersistResult
    run_stats: RunStats
