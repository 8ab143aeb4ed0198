"""
Database schema setup script.

This script:
1. Creates the articles table the site reads from
2. Creates the run_state table holding the worker's single state record
3. Creates indexes for efficient querying

Run with:
    python -m pulse_worker.db.setup_db
"""

import asyncio

import structlog

from pulse_worker.db.connection import close_db_pool, get_db_pool

logger = structlog.get_logger()


# ============================================================
# SQL SCHEMA DEFINITIONS
# ============================================================

CREATE_ARTICLES_SQL = """
CREATE TABLE IF NOT EXISTS articles (
    id BIGSERIAL PRIMARY KEY,

    -- Public identity of the article page; disambiguated by the worker
    slug VARCHAR(120) NOT NULL UNIQUE,

    title TEXT NOT NULL,
    summary TEXT NOT NULL,
    content TEXT,
    image_url TEXT,
    category VARCHAR(32) NOT NULL,

    source_url TEXT NOT NULL,
    -- Second uniqueness guard: one row per story whatever its slug
    canonical_url TEXT NOT NULL UNIQUE,
    identity VARCHAR(64) NOT NULL,
    source_kind VARCHAR(20) NOT NULL,
    source_id TEXT NOT NULL,
    ai_enriched BOOLEAN NOT NULL DEFAULT FALSE,

    published_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- For "latest news" queries on the site
CREATE INDEX IF NOT EXISTS idx_articles_published_at
    ON articles(published_at DESC);

-- For category pages
CREATE INDEX IF NOT EXISTS idx_articles_category
    ON articles(category, published_at DESC);
"""

CREATE_RUN_STATE_SQL = """
CREATE TABLE IF NOT EXISTS run_state (
    key VARCHAR(64) PRIMARY KEY,
    value JSONB NOT NULL,
    version BIGINT NOT NULL,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
"""


# ============================================================
# SETUP FUNCTIONS
# ============================================================


async def setup_database() -> None:
    """
    Set up the database schema.

    Creates all tables and indexes if they don't exist.
    Safe to run multiple times (uses IF NOT EXISTS).
    """
    logger.info("Setting up database schema")

    pool = await get_db_pool()

    async with pool.acquire() as conn:
        logger.info("Creating articles table")
        await conn.execute(CREATE_ARTICLES_SQL)

        logger.info("Creating run_state table")
        await conn.execute(CREATE_RUN_STATE_SQL)

    logger.info("Database schema setup complete")


async def get_table_stats() -> dict:
    """
    Get basic statistics about the database.

    Returns:
        Dict with table row counts
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        articles_count = await conn.fetchval("SELECT COUNT(*) FROM articles")
        state_count = await conn.fetchval("SELECT COUNT(*) FROM run_state")

    return {
        "articles": articles_count,
        "run_state": state_count,
    }


async def main() -> None:
    """Main entry point for running schema setup."""
    try:
        await setup_database()
        stats = await get_table_stats()
        logger.info("Database ready", **stats)
    finally:
        await close_db_pool()


if __name__ == "__main__":
    asyncio.run(main())
