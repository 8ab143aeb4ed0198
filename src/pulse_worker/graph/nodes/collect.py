"""
Collect Node - Fetches candidates from every configured source.

LangGraph Integration:
- Input: PipelineState (only run_id is read)
- Output: {"candidates": [...], "source_errors": [...], "source_counts": {...}}

Source failures never fail the node. They come back as SourceError
records and are counted in the run stats.
"""

import structlog

from pulse_worker.graph.state import PipelineState
from pulse_worker.policy import CallPolicy
from pulse_worker.sources import SourceClient, aggregate_sources

logger = structlog.get_logger()


def create_collect_node(clients: list[SourceClient], policy: CallPolicy):
    """
    Factory function to create the collect node.

    Args:
        clients: Source clients to fan out to
        policy: Per-source timeout
    """

    async def collect(state: PipelineState) -> dict:
        logger.info("Starting collection", run_id=state.get("run_id"), source_count=len(clients))

        result = await aggregate_sources(clients, policy)

        for error in result.errors:
            logger.warning("Source error recorded", **error.as_dict())

        return {
            "candidates": result.candidates,
            "source_errors": [error.as_dict() for error in result.errors],
            "source_counts": result.counts_by_kind,
        }

    return collect
