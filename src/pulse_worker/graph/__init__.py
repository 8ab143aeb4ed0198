"""
LangGraph pipeline for the ingestion worker.

This package contains:
- state.py: PipelineState schema
- nodes/: Individual pipeline nodes
- orchestrator.py: Graph wiring and execution

Usage:
    from pulse_worker.graph import PipelineDeps, run_once

    stats = await run_once(deps)
"""

from pulse_worker.graph.orchestrator import PipelineDeps, create_graph, run_once
from pulse_worker.graph.state import PipelineState

__all__ = [
    "PipelineDeps",
    "create_graph",
    "run_once",
    "PipelineState",
]
