"""
GNews search API client.

One authenticated query per run. The source is optional: with no key, or
with a key the provider rejects, it yields nothing and reports no error,
so deployments without a key keep working on RSS alone.
"""

from collections.abc import AsyncIterator
from datetime import datetime, timezone

import httpx
import structlog

from pulse_worker.errors import SourceError, SourceErrorKind
from pulse_worker.models import CandidateArticle, SourceKind
from pulse_worker.sources.base import CONTENT_MAX_LENGTH, SUMMARY_MAX_LENGTH, build_candidate, clean_text

logger = structlog.get_logger()

GNEWS_SEARCH_URL = "https://gnews.io/api/v4/search"

REJECTED_KEY_STATUS_CODES = {401, 403}


def parse_iso_datetime(value: str | None) -> datetime:
    """Parse GNews' ISO-8601 timestamps ("2024-12-23T10:00:00Z"), defaulting to now."""
    if value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    return datetime.now(timezone.utc)


class GNewsClient:
    """Source client for the GNews search endpoint."""

    kind = SourceKind.SEARCH_API
    source_id = "gnews"

    def __init__(
        self,
        api_key: str | None,
        client: httpx.AsyncClient,
        query: str,
        country: str = "ke",
        lang: str = "en",
        max_results: int = 10,
    ):
        self.api_key = api_key
        self.client = client
        self.query = query
        self.country = country
        self.lang = lang
        self.max_results = max_results

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def fetch(self) -> AsyncIterator[CandidateArticle]:
        if not self.enabled:
            logger.info("Search API key not configured, skipping", source_id=self.source_id)
            return

        for article in await self._search():
            title = clean_text(article.get("title"))
            link = (article.get("url") or "").strip()
            if not title or not link:
                continue
            yield build_candidate(
                title=title,
                link=link,
                published_at=parse_iso_datetime(article.get("publishedAt")),
                summary_raw=clean_text(
                    article.get("description") or article.get("content"),
                    limit=SUMMARY_MAX_LENGTH,
                ),
                content=clean_text(article.get("content"), limit=CONTENT_MAX_LENGTH),
                image_url=article.get("image"),
                source_kind=SourceKind.SEARCH_API,
                source_id=self.source_id,
            )

    async def _search(self) -> list[dict]:
        log = logger.bind(source_id=self.source_id, query=self.query)
        params = {
            "q": self.query,
            "lang": self.lang,
            "country": self.country,
            "max": self.max_results,
            "apikey": self.api_key,
        }

        try:
            response = await self.client.get(
                GNEWS_SEARCH_URL,
                params=params,
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise SourceError(SourceErrorKind.TIMEOUT, self.source_id, str(e) or "request timed out") from e
        except httpx.RequestError as e:
            raise SourceError(SourceErrorKind.HTTP_ERROR, self.source_id, f"{type(e).__name__}: {e}") from e

        if response.status_code in REJECTED_KEY_STATUS_CODES:
            log.warning("Search API rejected the key, source disabled for this run", status_code=response.status_code)
            return []
        if response.status_code == 429:
            raise SourceError(SourceErrorKind.BLOCKED, self.source_id, "HTTP 429: quota exhausted")
        if response.is_error:
            raise SourceError(
                SourceErrorKind.HTTP_ERROR,
                self.source_id,
                f"HTTP {response.status_code}: {response.reason_phrase}",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceError(SourceErrorKind.PARSE_ERROR, self.source_id, "response is not JSON") from e

        articles = data.get("articles") if isinstance(data, dict) else None
        if not isinstance(articles, list):
            raise SourceError(SourceErrorKind.PARSE_ERROR, self.source_id, "missing 'articles' list")

        log.info("Search API query complete", item_count=len(articles))
        return articles
