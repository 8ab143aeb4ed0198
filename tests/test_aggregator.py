"""
Tests for concurrent source aggregation.
"""

import asyncio

import httpx
from fakes import FakeSource, make_candidate

from pulse_worker.config import RssFeedConfig, Settings
from pulse_worker.errors import SourceError, SourceErrorKind
from pulse_worker.models import SourceKind
from pulse_worker.policy import CallPolicy
from pulse_worker.sources import GNewsClient, RssFeedClient, aggregate_sources, build_source_clients


class TestAggregateSources:
    async def test_merges_all_sources(self):
        rss = FakeSource([make_candidate("A", "https://x.co.ke/a"), make_candidate("B", "https://x.co.ke/b")])
        search = FakeSource(
            [make_candidate("C", "https://x.co.ke/c", source_kind=SourceKind.SEARCH_API)],
            kind=SourceKind.SEARCH_API,
            source_id="gnews",
        )

        result = await aggregate_sources([rss, search], CallPolicy(timeout=1.0))

        assert len(result.candidates) == 3
        assert result.errors == []
        assert result.counts_by_kind == {"rss": 2, "search_api": 1}

    async def test_failing_source_does_not_affect_others(self):
        good = FakeSource([make_candidate("A", "https://x.co.ke/a")])
        bad = FakeSource(
            error=SourceError(SourceErrorKind.BLOCKED, "https://bad.co.ke/feed", "HTTP 403"),
            source_id="https://bad.co.ke/feed",
        )

        result = await aggregate_sources([good, bad], CallPolicy(timeout=1.0))

        assert len(result.candidates) == 1
        assert len(result.errors) == 1
        assert result.errors[0].kind == SourceErrorKind.BLOCKED
        assert result.errors[0].source_id == "https://bad.co.ke/feed"

    async def test_slow_source_times_out(self):
        fast = FakeSource([make_candidate("A", "https://x.co.ke/a")])
        slow = FakeSource([make_candidate("B", "https://x.co.ke/b")], source_id="slow", delay=5)

        result = await asyncio.wait_for(aggregate_sources([fast, slow], CallPolicy(timeout=0.05)), timeout=2)

        assert [c["title"] for c in result.candidates] == ["A"]
        assert result.errors[0].kind == SourceErrorKind.TIMEOUT
        assert result.errors[0].source_id == "slow"

    async def test_unexpected_exception_is_recorded(self):
        broken = FakeSource(error=KeyError("entries"), source_id="broken")

        result = await aggregate_sources([broken], CallPolicy(timeout=1.0))

        assert result.candidates == []
        assert result.errors[0].kind == SourceErrorKind.PARSE_ERROR
        assert result.counts_by_kind == {"rss": 0}

    async def test_all_sources_failing(self):
        sources = [
            FakeSource(error=SourceError(SourceErrorKind.HTTP_ERROR, f"feed-{i}"), source_id=f"feed-{i}")
            for i in range(3)
        ]

        result = await aggregate_sources(sources, CallPolicy(timeout=1.0))

        assert result.candidates == []
        assert len(result.errors) == 3


class TestBuildSourceClients:
    async def test_one_client_per_feed_plus_search(self):
        settings = Settings(
            rss_feeds=[
                RssFeedConfig(name="One", url="https://one.co.ke/feed"),
                RssFeedConfig(name="Two", url="https://two.co.ke/feed"),
            ],
            gnews_api_key=None,
        )

        async with httpx.AsyncClient() as http_client:
            clients = build_source_clients(settings, http_client)

        assert [type(c) for c in clients] == [RssFeedClient, RssFeedClient, GNewsClient]
        assert clients[-1].enabled is False
