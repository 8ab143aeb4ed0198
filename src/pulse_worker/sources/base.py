"""
Common contract for upstream source clients.

Every client exposes `fetch()`, an async generator of CandidateArticle.
The generator is finite and single-use. A client that cannot produce a
clean batch raises SourceError before yielding anything.
"""

import html
import random
import re
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Protocol

from pulse_worker.identity import article_identity
from pulse_worker.models import CandidateArticle, SourceKind

# Desktop browser strings, one picked per request
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

BROWSER_HEADERS = {
    "Accept": "application/rss+xml, application/xml, text/xml, */*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Referer": "https://www.google.com/",
}

SUMMARY_MAX_LENGTH = 1000
CONTENT_MAX_LENGTH = 20000

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


class SourceClient(Protocol):
    kind: SourceKind
    source_id: str

    def fetch(self) -> AsyncIterator[CandidateArticle]: ...


def browser_headers() -> dict[str, str]:
    """Browser-like headers with a freshly picked User-Agent."""
    return {"User-Agent": random.choice(USER_AGENTS), **BROWSER_HEADERS}


def clean_text(text: str | None, limit: int | None = None) -> str:
    """Strip HTML tags and entities, collapse whitespace, optionally truncate."""
    if not text:
        return ""
    cleaned = _WHITESPACE_RE.sub(" ", html.unescape(_TAG_RE.sub(" ", text))).strip()
    if limit is not None and len(cleaned) > limit:
        cleaned = cleaned[: limit - 3].rstrip() + "..."
    return cleaned


def normalize_image_url(url: str | None) -> str | None:
    """Keep absolute http(s) image URLs only; protocol-relative ones get https."""
    url = (url or "").strip()
    if url.startswith("//"):
        url = "https:" + url
    if not url.startswith(("http://", "https://")):
        return None
    return url


def build_candidate(
    *,
    title: str,
    link: str,
    published_at: datetime,
    summary_raw: str | None,
    source_kind: SourceKind,
    source_id: str,
    content: str | None = None,
    image_url: str | None = None,
) -> CandidateArticle:
    """Create a CandidateArticle with its identity computed once."""
    return CandidateArticle(
        title=title,
        link=link,
        published_at=published_at,
        summary_raw=summary_raw or None,
        content=content or None,
        image_url=normalize_image_url(image_url),
        source_kind=source_kind,
        source_id=source_id,
        identity=article_identity(title, link),
    )
