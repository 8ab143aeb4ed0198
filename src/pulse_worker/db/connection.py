"""
Shared asyncpg pool for the article and run-state stores.

The pool is opened on first use and closed by whoever owns the process
lifetime (the API lifespan or a one-shot CLI command). Credentials in
DATABASE_URL should be write-scoped to the articles and run_state tables.
"""

from urllib.parse import urlsplit, urlunsplit

import asyncpg
import structlog

from pulse_worker.config import get_settings

logger = structlog.get_logger()

_pool: asyncpg.Pool | None = None


def redact_dsn(dsn: str) -> str:
    """Drop the password from a connection string so it can be logged."""
    parts = urlsplit(dsn)
    if parts.password is None:
        return dsn
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{parts.username}:***@{host}" if parts.username else f"***@{host}"
    return urlunsplit(parts._replace(netloc=netloc))


async def get_db_pool() -> asyncpg.Pool:
    """
    Return the process-wide pool, creating it on first call.

    Raises:
        asyncpg.PostgresError, OSError: If the database is unreachable
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        log = logger.bind(
            database=redact_dsn(settings.database_url),
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        log.info("Opening database pool")
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=max(settings.db_pool_min_size, settings.db_pool_max_size),
            command_timeout=settings.persist_timeout_seconds * 3,
        )
        log.info("Database pool ready")

    return _pool


async def close_db_pool() -> None:
    """Close the pool if one was opened. Safe to call more than once."""
    global _pool

    pool, _pool = _pool, None
    if pool is not None:
        await pool.close()
        logger.info("Database pool closed")
