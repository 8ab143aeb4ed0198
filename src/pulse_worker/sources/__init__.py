"""
Upstream source clients and the aggregator that fans out to them.

- base.py: SourceClient contract and shared helpers
- rss.py: RSS/Atom feed client
- search_api.py: GNews search client
- aggregator.py: Concurrent collection with per-source timeouts
"""

from pulse_worker.sources.aggregator import AggregateResult, aggregate_sources, build_source_clients
from pulse_worker.sources.base import SourceClient
from pulse_worker.sources.rss import RssFeedClient
from pulse_worker.sources.search_api import GNewsClient

__all__ = [
    "AggregateResult",
    "aggregate_sources",
    "build_source_clients",
    "SourceClient",
    "RssFeedClient",
    "GNewsClient",
]
