"""Database module for the ingestion worker."""

from pulse_worker.db.articles import ArticleStore, InsertResult, PostgresArticleStore
from pulse_worker.db.connection import close_db_pool, get_db_pool
from pulse_worker.db.run_state import PostgresRunStateStore

__all__ = [
    "get_db_pool",
    "close_db_pool",
    "ArticleStore",
    "InsertResult",
    "PostgresArticleStore",
    "PostgresRunStateStore",
]
