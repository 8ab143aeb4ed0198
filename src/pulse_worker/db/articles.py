"""
Article storage backed by PostgreSQL.

The worker only ever inserts. "Already there" is an expected outcome, not
an error: INSERT ... ON CONFLICT DO NOTHING returns no row when the slug
or the canonical URL is taken, and a unique violation that slips through
(e.g. a concurrent writer) is raised as PersistenceConflict.
"""

from enum import StrEnum
from typing import Protocol

import asyncpg
import structlog

from pulse_worker.errors import PersistenceConflict, PersistenceError
from pulse_worker.identity import canonicalize_url
from pulse_worker.models import EnrichedArticle

logger = structlog.get_logger()


class InsertResult(StrEnum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


class ArticleStore(Protocol):
    async def exists(self, slug: str) -> bool: ...

    async def insert(self, article: EnrichedArticle) -> InsertResult:
        """
        Raises:
            PersistenceConflict: A uniqueness constraint rejected the row
            PersistenceError: Any other storage failure
        """
        ...


# ON CONFLICT without a target covers both the slug and canonical_url constraints
INSERT_ARTICLE_SQL = """
INSERT INTO articles (
    slug, title, summary, category,
    source_url, canonical_url, identity, source_kind, source_id,
    ai_enriched, published_at, content, image_url
) VALUES (
    $1, $2, $3, $4,
    $5, $6, $7, $8, $9,
    $10, $11, $12, $13
)
ON CONFLICT DO NOTHING
RETURNING id;
"""

SLUG_EXISTS_SQL = "SELECT EXISTS(SELECT 1 FROM articles WHERE slug = $1)"


class PostgresArticleStore:
    """ArticleStore over an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def exists(self, slug: str) -> bool:
        try:
            async with self.pool.acquire() as conn:
                return bool(await conn.fetchval(SLUG_EXISTS_SQL, slug))
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceError(f"slug lookup failed: {e}") from e

    async def insert(self, article: EnrichedArticle) -> InsertResult:
        try:
            async with self.pool.acquire() as conn:
                row_id = await conn.fetchval(
                    INSERT_ARTICLE_SQL,
                    article["slug"],
                    article["title"],
                    article["ai_summary"],
                    article["category"],
                    article["link"],
                    canonicalize_url(article["link"]),
                    article["identity"],
                    article["source_kind"].value,
                    article["source_id"],
                    article["enriched"],
                    article["published_at"],
                    article.get("content"),
                    article.get("image_url"),
                )
        except asyncpg.UniqueViolationError as e:
            raise PersistenceConflict(str(e)) from e
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceError(f"{type(e).__name__}: {e}") from e

        return InsertResult.INSERTED if row_id is not None else InsertResult.ALREADY_EXISTS
