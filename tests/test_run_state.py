"""
Tests for RunState bookkeeping and the PostgreSQL run-state store.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from pulse_worker.db.run_state import PostgresRunStateStore
from pulse_worker.errors import RunStateConflict
from pulse_worker.graph.nodes.run_state import build_run_stats
from pulse_worker.run_state import RunState, RunStats

NOW = datetime(2024, 12, 23, 12, 0, 0, tzinfo=UTC)
WINDOW = timedelta(hours=72)


def advance(state: RunState, identities: list[str], stats: RunStats | None = None, **kwargs) -> RunState:
    return state.advance(
        stats=stats or RunStats(),
        settled_identities=identities,
        now=kwargs.get("now", NOW),
        window=kwargs.get("window", WINDOW),
        max_entries=kwargs.get("max_entries", 100),
    )


class TestAdvance:
    def test_adds_identities_and_bumps_version(self):
        new = advance(RunState(), ["a", "b"])

        assert set(new.horizon) == {"a", "b"}
        assert new.version == 1
        assert new.last_run_at == NOW

    def test_does_not_modify_original(self):
        original = RunState()
        advance(original, ["a"])
        assert original.horizon == {}
        assert original.version == 0

    def test_keeps_first_seen_time(self):
        first_seen = NOW - timedelta(hours=5)
        new = advance(RunState(horizon={"a": first_seen}), ["a"])
        assert new.horizon["a"] == first_seen

    def test_prunes_expired(self):
        state = RunState(horizon={"old": NOW - timedelta(hours=100), "recent": NOW - timedelta(hours=1)})
        new = advance(state, [])
        assert set(new.horizon) == {"recent"}

    def test_caps_size_keeping_newest(self):
        state = RunState(horizon={f"id-{i}": NOW - timedelta(minutes=i) for i in range(10)})
        new = advance(state, ["fresh"], max_entries=3)
        assert set(new.horizon) == {"fresh", "id-0", "id-1"}

    def test_accumulates_total_saved(self):
        state = RunState(total_saved=10)
        new = advance(state, [], stats=RunStats(saved_articles=4))
        assert new.total_saved == 14
        assert new.last_stats.saved_articles == 4


class TestLiveHorizon:
    def test_excludes_expired(self):
        state = RunState(horizon={"old": NOW - timedelta(hours=73), "recent": NOW - timedelta(hours=71)})
        assert state.live_horizon(NOW, WINDOW) == {"recent"}


class TestBuildRunStats:
    def test_folds_stage_counters(self):
        state = {
            "run_id": "run_1",
            "trigger": "manual",
            "source_counts": {"rss": 5, "search_api": 2},
            "unique_candidates": [{}, {}, {}],
            "ai_processed": 2,
            "enrichment_errors": 1,
            "source_errors": [{"kind": "timeout"}],
            "persist_result": {"saved": 2, "skipped": 1, "errors": 0, "settled_identities": []},
        }

        stats = build_run_stats(state)

        assert stats.run_id == "run_1"
        assert stats.trigger == "manual"
        assert stats.source_articles == {"rss": 5, "search_api": 2}
        assert stats.unique_articles == 3
        assert stats.saved_articles == 2
        assert stats.skipped_articles == 1
        # One failed source plus one failed enrichment
        assert stats.errors == 2
        assert stats.source_errors == 1
        assert stats.execution_time_ms >= 0


@pytest.fixture
def mock_connection():
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=1)
    return conn


@pytest.fixture
def mock_pool(mock_connection):
    pool = MagicMock()

    @asynccontextmanager
    async def mock_acquire():
        yield mock_connection

    pool.acquire = mock_acquire
    return pool


class TestPostgresRunStateStore:
    async def test_load_missing_returns_fresh_state(self, mock_pool):
        state = await PostgresRunStateStore(mock_pool).load()
        assert state == RunState()

    async def test_load_uses_column_version(self, mock_pool, mock_connection):
        stored = RunState(last_run_at=NOW, horizon={"a": NOW}, total_saved=3, version=1)
        mock_connection.fetchrow = AsyncMock(return_value={"value": stored.model_dump_json(), "version": 4})

        state = await PostgresRunStateStore(mock_pool).load()

        assert state.version == 4
        assert state.horizon == {"a": NOW}
        assert state.total_saved == 3

    async def test_save_passes_expected_version(self, mock_pool, mock_connection):
        store = PostgresRunStateStore(mock_pool, key="test")

        await store.save(RunState(version=3), expected_version=2)

        args = mock_connection.fetchval.call_args[0]
        assert args[1] == "test"
        assert args[3] == 3
        assert args[4] == 2

    async def test_save_conflict(self, mock_pool, mock_connection):
        mock_connection.fetchval = AsyncMock(return_value=None)

        with pytest.raises(RunStateConflict):
            await PostgresRunStateStore(mock_pool).save(RunState(version=2), expected_version=1)
