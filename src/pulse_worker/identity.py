"""Normalisation helpers for article identity and slugs."""

import hashlib
import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

TRACKING_QUERY_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    "utm_name",
    "utm_reader",
    "utm_referrer",
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
    "ref",
    "ref_src",
    "ref_url",
    "cmpid",
    "ocid",
}

SLUG_MAX_LENGTH = 100

_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASH_RE = re.compile(r"[\s-]+")


def normalize_title(title: str) -> str:
    """Lower-case and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", title or "").strip().lower()


def canonicalize_url(url: str) -> str:
    """
    Canonicalise a URL for deduplication.

    - Lower-case the whole URL
    - Remove fragments
    - Strip tracking query parameters (utm_*, gclid, fbclid, ...)
    - Sort remaining query parameters
    - Drop a trailing slash on non-root paths
    """
    if not url:
        return ""
    parsed = urlparse(url.strip().lower())
    scheme = parsed.scheme or "https"
    path = parsed.path or "/"
    if len(path) > 1:
        path = path.rstrip("/")

    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key not in TRACKING_QUERY_PARAMS and not key.startswith("utm_")
    ]
    kept.sort()

    return urlunparse((scheme, parsed.netloc, path, "", urlencode(kept), ""))


def article_identity(title: str, link: str) -> str:
    """
    Stable identity for an article.

    Two candidates with the same identity are the same real-world article,
    whichever source they came from.
    """
    key = f"{normalize_title(title)}|{canonicalize_url(link)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def slugify(title: str) -> str:
    """URL-safe slug derived from a title."""
    slug = _SLUG_STRIP_RE.sub("", (title or "").lower())
    slug = _SLUG_DASH_RE.sub("-", slug).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug or "article"


def disambiguate_slug(slug: str, identity: str) -> str:
    """Append a short identity suffix to a slug that is already taken."""
    suffix = identity[:6]
    return f"{slug[: SLUG_MAX_LENGTH - len(suffix) - 1].rstrip('-')}-{suffix}"
