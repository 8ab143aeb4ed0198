"""
Tests for article identity, URL canonicalisation and slugs.
"""

from pulse_worker.identity import (
    SLUG_MAX_LENGTH,
    article_identity,
    canonicalize_url,
    disambiguate_slug,
    normalize_title,
    slugify,
)


class TestCanonicalizeUrl:
    def test_strips_tracking_params(self):
        url = "https://example.co.ke/news/fuel?utm_source=rss&utm_medium=feed&id=7&fbclid=abc"
        assert canonicalize_url(url) == "https://example.co.ke/news/fuel?id=7"

    def test_drops_fragment_and_trailing_slash(self):
        assert canonicalize_url("https://example.co.ke/news/fuel/#comments") == "https://example.co.ke/news/fuel"

    def test_keeps_root_path(self):
        assert canonicalize_url("https://example.co.ke") == "https://example.co.ke/"

    def test_sorts_query_params(self):
        assert canonicalize_url("https://example.co.ke/a?b=2&a=1") == canonicalize_url("https://example.co.ke/a?a=1&b=2")

    def test_lowercases(self):
        assert canonicalize_url("HTTPS://Example.CO.KE/News") == "https://example.co.ke/news"

    def test_empty(self):
        assert canonicalize_url("") == ""


class TestArticleIdentity:
    """Identity must survive cosmetic differences between sources."""

    def test_title_case_and_whitespace_ignored(self):
        assert normalize_title("  Fuel  prices RISE ") == "fuel prices rise"
        assert article_identity("Fuel prices rise", "https://x.co.ke/a") == article_identity(
            "FUEL PRICES  RISE", "https://x.co.ke/a"
        )

    def test_tracking_params_ignored(self):
        assert article_identity("Fuel prices rise", "https://x.co.ke/a?utm_source=twitter") == article_identity(
            "Fuel prices rise", "https://x.co.ke/a"
        )

    def test_different_links_differ(self):
        assert article_identity("Same title", "https://x.co.ke/a") != article_identity("Same title", "https://x.co.ke/b")

    def test_different_titles_differ(self):
        assert article_identity("Title A", "https://x.co.ke/a") != article_identity("Title B", "https://x.co.ke/a")

    def test_is_stable_hex(self):
        identity = article_identity("Fuel prices rise", "https://x.co.ke/a")
        assert len(identity) == 32
        int(identity, 16)


class TestSlugify:
    def test_basic(self):
        assert slugify("Fuel Prices Rise!") == "fuel-prices-rise"

    def test_collapses_separators(self):
        assert slugify("Ruto -- meets   MPs") == "ruto-meets-mps"

    def test_truncates(self):
        slug = slugify("word " * 100)
        assert len(slug) <= SLUG_MAX_LENGTH
        assert not slug.endswith("-")

    def test_fallback_for_empty(self):
        assert slugify("!!!") == "article"
        assert slugify("") == "article"


class TestDisambiguateSlug:
    def test_appends_identity_prefix(self):
        assert disambiguate_slug("fuel-prices-rise", "abcdef0123") == "fuel-prices-rise-abcdef"

    def test_respects_max_length(self):
        slug = disambiguate_slug("a" * SLUG_MAX_LENGTH, "abcdef0123")
        assert len(slug) <= SLUG_MAX_LENGTH
        assert slug.endswith("-abcdef")
