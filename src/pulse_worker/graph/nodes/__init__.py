"""
LangGraph nodes for the ingestion pipeline.

Each node is built by a factory that closes over its collaborators and
returns an async function that:
- Takes PipelineState as input
- Returns a dict with partial state updates
- Absorbs per-item failures (logs and counts them)

Nodes:
- load_run_state / record_run: Read and write the cross-run record
- collect: Fetch from all sources
- deduplicate: Drop batch and cross-run duplicates
- enrich: Categorise and summarise with the chat model
- persist: Save to storage
"""

from pulse_worker.graph.nodes.collect import create_collect_node
from pulse_worker.graph.nodes.deduplicate import create_deduplicate_node
from pulse_worker.graph.nodes.enrich import build_chat_model, create_enrich_node
from pulse_worker.graph.nodes.persist import create_persist_node
from pulse_worker.graph.nodes.run_state import create_load_run_state_node, create_record_run_node

__all__ = [
    "create_load_run_state_node",
    "create_collect_node",
    "create_deduplicate_node",
    "create_enrich_node",
    "create_persist_node",
    "create_record_run_node",
    "build_chat_model",
]
