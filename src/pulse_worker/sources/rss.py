"""
RSS Source Client - Fetches and parses RSS/Atom feeds.

This client:
1. Fetches one configured feed using httpx (async HTTP) with browser-like headers
2. Rejects HTML challenge pages and unparseable bodies as SourceError
3. Parses the feed using feedparser
4. Filters entries outside the freshness window
5. Converts feed entries to CandidateArticle, with body text and a lead image

A feed either yields a clean batch or raises before yielding anything;
partial results from a broken feed are never emitted.
"""

import re
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime

import feedparser
import httpx
import structlog

from pulse_worker.config import RssFeedConfig
from pulse_worker.errors import SourceError, SourceErrorKind
from pulse_worker.models import CandidateArticle, SourceKind
from pulse_worker.sources.base import (
    CONTENT_MAX_LENGTH,
    SUMMARY_MAX_LENGTH,
    browser_headers,
    build_candidate,
    clean_text,
)

logger = structlog.get_logger()

# Status codes that mean the outlet is refusing us rather than failing
BLOCKING_STATUS_CODES = {403, 429}

# Entries dated further ahead than this are treated as bogus
MAX_CLOCK_SKEW = timedelta(hours=1)

_IMG_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)


def parse_published_date(entry: dict) -> datetime:
    """
    Extract publication date from a feed entry.

    RSS feeds store dates in various fields and formats:
    - published_parsed: Pre-parsed tuple (most reliable)
    - published: RFC 2822 string
    - updated_parsed/updated: Fallback for Atom feeds

    Returns UTC datetime, or current time if parsing fails.
    """
    for field in ["published_parsed", "updated_parsed"]:
        if parsed := entry.get(field):
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue

    for field in ["published", "updated"]:
        if date_str := entry.get(field):
            try:
                parsed_date = parsedate_to_datetime(date_str)
            except (TypeError, ValueError):
                continue
            if parsed_date.tzinfo is None:
                parsed_date = parsed_date.replace(tzinfo=timezone.utc)
            return parsed_date.astimezone(timezone.utc)

    logger.warning("Could not parse date, using current time", entry_title=entry.get("title"))
    return datetime.now(timezone.utc)


def extract_summary(entry: dict) -> str:
    """
    Extract the short description of a feed entry.

    Prefers summary/description (what outlets intend as a teaser) and
    falls back to the first Atom content block.
    """
    for field in ["summary", "description"]:
        if value := entry.get(field):
            return value

    return extract_content(entry)


def extract_content(entry: dict) -> str:
    """The full body from content:encoded / Atom content, if the feed carries one."""
    for content_obj in entry.get("content") or []:
        if value := content_obj.get("value"):
            return value
    return ""


def extract_image(entry: dict) -> str | None:
    """
    Find a lead image for a feed entry.

    Checked in order: media:content, media:thumbnail, image enclosures,
    then the first <img> inside the entry's HTML.
    """
    for media in entry.get("media_content") or []:
        medium = media.get("medium") or media.get("type", "image")
        if media.get("url") and medium.startswith("image"):
            return media["url"]

    for thumbnail in entry.get("media_thumbnail") or []:
        if thumbnail.get("url"):
            return thumbnail["url"]

    for enclosure in entry.get("enclosures") or []:
        if enclosure.get("href") and enclosure.get("type", "").startswith("image/"):
            return enclosure["href"]

    for html_text in [extract_content(entry), entry.get("summary") or ""]:
        if match := _IMG_SRC_RE.search(html_text):
            return match.group(1)

    return None


def looks_like_html(body: str) -> bool:
    """True when a response is an HTML page rather than a feed document."""
    head = body.lstrip()[:512].lower()
    return head.startswith("<!doctype html") or "<html" in head


class RssFeedClient:
    """Source client for a single RSS or Atom feed."""

    kind = SourceKind.RSS

    def __init__(
        self,
        feed: RssFeedConfig,
        client: httpx.AsyncClient,
        max_age: timedelta = timedelta(hours=24),
    ):
        self.feed = feed
        self.client = client
        self.max_age = max_age
        self.source_id = feed.url

    async def fetch(self) -> AsyncIterator[CandidateArticle]:
        batch = await self._fetch_batch()
        for candidate in batch:
            yield candidate

    def _error(self, kind: SourceErrorKind, message: str) -> SourceError:
        return SourceError(kind, self.source_id, message)

    async def _fetch_batch(self) -> list[CandidateArticle]:
        log = logger.bind(feed_name=self.feed.name, feed_url=self.feed.url)
        log.info("Fetching RSS feed")

        try:
            response = await self.client.get(self.feed.url, headers=browser_headers())
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise self._error(SourceErrorKind.TIMEOUT, str(e) or "request timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            kind = SourceErrorKind.BLOCKED if status in BLOCKING_STATUS_CODES else SourceErrorKind.HTTP_ERROR
            raise self._error(kind, f"HTTP {status}: {e.response.reason_phrase}") from e
        except httpx.RequestError as e:
            raise self._error(SourceErrorKind.HTTP_ERROR, f"{type(e).__name__}: {e}") from e

        if looks_like_html(response.text):
            raise self._error(SourceErrorKind.BLOCKED, "received HTML instead of a feed")

        feed = feedparser.parse(response.content)
        bozo_exception = feed.get("bozo_exception")
        if feed.bozo and not isinstance(bozo_exception, feedparser.CharacterEncodingOverride):
            raise self._error(SourceErrorKind.PARSE_ERROR, str(bozo_exception))

        now = datetime.now(timezone.utc)
        cutoff = now - self.max_age
        candidates: list[CandidateArticle] = []

        for entry in feed.entries:
            title = clean_text(entry.get("title"))
            link = (entry.get("link") or "").strip()
            if not title or not link:
                log.debug("Skipping entry without title or link")
                continue

            published = parse_published_date(entry)
            if published < cutoff or published > now + MAX_CLOCK_SKEW:
                continue

            candidates.append(
                build_candidate(
                    title=title,
                    link=link,
                    published_at=published,
                    summary_raw=clean_text(extract_summary(entry), limit=SUMMARY_MAX_LENGTH),
                    content=clean_text(extract_content(entry), limit=CONTENT_MAX_LENGTH),
                    image_url=extract_image(entry),
                    source_kind=SourceKind.RSS,
                    source_id=self.source_id,
                )
            )

        log.info("Feed processed", item_count=len(candidates), entry_count=len(feed.entries))
        return candidates
