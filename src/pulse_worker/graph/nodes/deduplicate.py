"""
Deduplicate Node - Removes candidates already seen in this batch or recently.

Two passes:
1. Intra-batch: candidates with the same identity collapse into one. The
   one with the longer raw summary wins (more to work with for the AI);
   on a tie the first one encountered is kept.
2. Cross-run: candidates whose identity is in the live Run-State horizon
   are dropped.

The output identities are unique and disjoint from the live horizon.

LangGraph Integration:
- Input: PipelineState with candidates, previous_state, run_date
- Output: {"unique_candidates": [...]}
"""

from datetime import timedelta

import structlog

from pulse_worker.graph.state import PipelineState
from pulse_worker.models import CandidateArticle

logger = structlog.get_logger()


def _summary_length(candidate: CandidateArticle) -> int:
    return len((candidate.get("summary_raw") or "").strip())


def deduplicate_batch(candidates: list[CandidateArticle]) -> list[CandidateArticle]:
    """
    Collapse candidates sharing an identity.

    First-seen order of identities is preserved.
    """
    kept: dict[str, CandidateArticle] = {}
    for candidate in candidates:
        identity = candidate["identity"]
        current = kept.get(identity)
        if current is None or _summary_length(candidate) > _summary_length(current):
            kept[identity] = candidate
    return list(kept.values())


def filter_horizon(candidates: list[CandidateArticle], horizon: set[str]) -> list[CandidateArticle]:
    """Drop candidates whose identity was settled by a recent run."""
    return [candidate for candidate in candidates if candidate["identity"] not in horizon]


def deduplicate_candidates(candidates: list[CandidateArticle], horizon: set[str]) -> list[CandidateArticle]:
    batch_unique = deduplicate_batch(candidates)
    unique = filter_horizon(batch_unique, horizon)

    logger.info(
        "Deduplication complete",
        input_count=len(candidates),
        batch_duplicates=len(candidates) - len(batch_unique),
        seen_before=len(batch_unique) - len(unique),
        output_count=len(unique),
    )
    return unique


def create_deduplicate_node(horizon_window: timedelta):
    async def deduplicate(state: PipelineState) -> dict:
        candidates = state.get("candidates", [])
        if not candidates:
            logger.warning("No candidates to deduplicate")
            return {"unique_candidates": []}

        previous = state["previous_state"]
        live = previous.live_horizon(state["run_date"], horizon_window)
        unique = deduplicate_candidates(candidates, live)
        return {"unique_candidates": unique}

    return deduplicate
