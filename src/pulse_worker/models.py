"""
Article shapes shared by the sources and the pipeline.

This module defines:
1. CandidateArticle - Items from RSS/search before enrichment
2. EnrichedArticle - Items after AI categorisation and summarisation
3. PersistResult - Counts returned by the persister
"""

from datetime import datetime
from enum import StrEnum
from typing import Literal, TypedDict, get_args

# Fixed, closed category set the AI must choose from
Category = Literal["Politics", "Business", "Entertainment", "Sports", "Technology"]

CATEGORIES: list[str] = list(get_args(Category))

FALLBACK_CATEGORY = "Uncategorized"


class SourceKind(StrEnum):
    RSS = "rss"
    SEARCH_API = "search_api"


class CandidateArticle(TypedDict):
    """
    A news item as fetched from an upstream source.

    Created once per fetch and never mutated afterwards. Downstream stages
    build new dicts instead of editing these.
    """

    title: str
    link: str  # Absolute URL, the identity anchor
    published_at: datetime  # Best-effort, UTC
    summary_raw: str | None
    content: str | None  # Plain-text body as delivered by the source
    image_url: str | None
    source_kind: SourceKind
    source_id: str  # Feed URL or provider name
    identity: str  # article_identity(title, link)


class EnrichedArticle(TypedDict):
    """A candidate after enrichment, ready for persistence."""

    title: str
    link: str
    published_at: datetime
    summary_raw: str | None
    content: str | None
    image_url: str | None
    source_kind: SourceKind
    source_id: str
    identity: str
    category: str  # One of CATEGORIES, or FALLBACK_CATEGORY
    ai_summary: str
    slug: str
    enriched: bool  # False when the fallback was used


class PersistResult(TypedDict):
    saved: int
    skipped: int
    errors: int
    settled_identities: list[str]  # Saved or already present
