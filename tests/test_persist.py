"""
Tests for the persist node and the PostgreSQL article store.

Key testing strategies:
1. In-memory ArticleStore for the node's counting and slug logic
2. Mock asyncpg pool and connections for PostgresArticleStore
3. Test that conflicts count as skips and other failures as errors

Note on mocking asyncpg:
- pool.acquire() returns an async context manager
- We mock both the pool and the connection it returns
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest
from fakes import FakeArticleStore, make_candidate, make_enriched

from pulse_worker.db.articles import InsertResult, PostgresArticleStore
from pulse_worker.errors import PersistenceConflict, PersistenceError
from pulse_worker.graph.nodes.persist import (
    PersistOutcome,
    create_persist_node,
    persist_article,
    persist_articles,
)
from pulse_worker.models import SourceKind
from pulse_worker.policy import CallPolicy

POLICY = CallPolicy(timeout=1.0)


@pytest.fixture
def mock_connection():
    conn = MagicMock()
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


class TestPersistArticle:
    async def test_saves_new_article(self):
        store = FakeArticleStore()
        article = make_enriched()

        outcome = await persist_article(article, store, POLICY)

        assert outcome == PersistOutcome.SAVED
        assert article["slug"] in store.rows

    async def test_taken_slug_is_disambiguated(self):
        store = FakeArticleStore()
        await persist_article(make_enriched(make_candidate("Fuel prices rise", "https://a.co.ke/fuel")), store, POLICY)
        other = make_enriched(make_candidate("Fuel prices rise", "https://b.co.ke/fuel"))

        outcome = await persist_article(other, store, POLICY)

        assert outcome == PersistOutcome.SAVED
        assert f"fuel-prices-rise-{other['identity'][:6]}" in store.rows
        assert len(store.rows) == 2

    async def test_same_canonical_url_is_skipped(self):
        store = FakeArticleStore()
        await persist_article(make_enriched(make_candidate("Story", "https://a.co.ke/story")), store, POLICY)
        repeat = make_enriched(make_candidate("Story (updated)", "https://a.co.ke/story?utm_source=x"))

        outcome = await persist_article(repeat, store, POLICY)

        assert outcome == PersistOutcome.SKIPPED
        assert len(store.rows) == 1

    async def test_conflict_counts_as_skip(self):
        article = make_enriched()
        store = FakeArticleStore(errors={article["identity"]: PersistenceConflict("duplicate key")})

        assert await persist_article(article, store, POLICY) == PersistOutcome.SKIPPED

    async def test_storage_error_counts_as_failure(self):
        article = make_enriched()
        store = FakeArticleStore(errors={article["identity"]: PersistenceError("connection reset")})

        assert await persist_article(article, store, POLICY) == PersistOutcome.FAILED

    async def test_timeout_counts_as_failure(self):
        store = FakeArticleStore(delay=5)

        outcome = await persist_article(make_enriched(), store, CallPolicy(timeout=0.05))

        assert outcome == PersistOutcome.FAILED

    async def test_does_not_mutate_input(self):
        store = FakeArticleStore()
        await persist_article(make_enriched(make_candidate("Same", "https://a.co.ke/1")), store, POLICY)
        article = make_enriched(make_candidate("Same", "https://a.co.ke/2"))

        await persist_article(article, store, POLICY)

        assert article["slug"] == "same"


class TestPersistArticles:
    async def test_counts_and_settled_identities(self):
        saved = make_enriched(make_candidate("Saved", "https://a.co.ke/saved"))
        conflict = make_enriched(make_candidate("Conflict", "https://a.co.ke/conflict"))
        broken = make_enriched(make_candidate("Broken", "https://a.co.ke/broken"))
        store = FakeArticleStore(
            errors={
                conflict["identity"]: PersistenceConflict("duplicate"),
                broken["identity"]: PersistenceError("permission denied"),
            }
        )

        result = await persist_articles([saved, conflict, broken], store, POLICY)

        assert result["saved"] == 1
        assert result["skipped"] == 1
        assert result["errors"] == 1
        # Failed articles stay out of the horizon so the next run retries them
        assert result["settled_identities"] == [saved["identity"], conflict["identity"]]

    async def test_node_returns_persist_result(self):
        node = create_persist_node(FakeArticleStore(), POLICY)

        result = await node({"enriched_articles": [make_enriched()]})

        assert result["persist_result"]["saved"] == 1

    async def test_node_empty_state(self):
        node = create_persist_node(FakeArticleStore(), POLICY)

        result = await node({})

        assert result["persist_result"] == {"saved": 0, "skipped": 0, "errors": 0, "settled_identities": []}


class TestPostgresArticleStore:
    async def test_insert_returns_inserted(self, mock_pool, mock_connection):
        store = PostgresArticleStore(mock_pool)
        article = make_enriched(make_candidate("Story", "https://A.co.ke/story?utm_source=x"))

        assert await store.insert(article) == InsertResult.INSERTED

        args = mock_connection.fetchval.call_args[0]
        assert "ON CONFLICT DO NOTHING" in args[0]
        assert args[1] == article["slug"]
        assert args[5] == "https://A.co.ke/story?utm_source=x"
        assert args[6] == "https://a.co.ke/story"
        assert args[8] == SourceKind.RSS.value
        assert args[12] is None
        assert args[13] is None

    async def test_insert_carries_content_and_image(self, mock_pool, mock_connection):
        article = make_enriched(
            make_candidate(content="Full body text.", image_url="https://cdn.co.ke/lead.jpg"),
        )

        await PostgresArticleStore(mock_pool).insert(article)

        args = mock_connection.fetchval.call_args[0]
        assert args[12] == "Full body text."
        assert args[13] == "https://cdn.co.ke/lead.jpg"

    async def test_insert_existing_row(self, mock_pool, mock_connection):
        mock_connection.fetchval = AsyncMock(return_value=None)
        store = PostgresArticleStore(mock_pool)

        assert await store.insert(make_enriched()) == InsertResult.ALREADY_EXISTS

    async def test_unique_violation_is_conflict(self, mock_pool, mock_connection):
        mock_connection.fetchval = AsyncMock(side_effect=asyncpg.UniqueViolationError("duplicate key"))
        store = PostgresArticleStore(mock_pool)

        with pytest.raises(PersistenceConflict):
            await store.insert(make_enriched())

    async def test_other_database_error(self, mock_pool, mock_connection):
        mock_connection.fetchval = AsyncMock(side_effect=asyncpg.InsufficientPrivilegeError("denied"))
        store = PostgresArticleStore(mock_pool)

        with pytest.raises(PersistenceError):
            await store.insert(make_enriched())

    async def test_network_error(self, mock_pool, mock_connection):
        mock_connection.fetchval = AsyncMock(side_effect=ConnectionResetError("reset"))
        store = PostgresArticleStore(mock_pool)

        with pytest.raises(PersistenceError):
            await store.insert(make_enriched())

    async def test_exists(self, mock_pool, mock_connection):
        mock_connection.fetchval = AsyncMock(return_value=True)
        store = PostgresArticleStore(mock_pool)

        assert await store.exists("fuel-prices-rise") is True
        assert mock_connection.fetchval.call_args[0][1] == "fuel-prices-rise"
