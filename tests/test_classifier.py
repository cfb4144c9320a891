"""Tests for URL classification."""

import pytest

from focus_tracker.classifier import (
    DEFAULT_CATEGORY_MAP,
    classify,
    domain_for_url,
    normalize_category_map,
)


class TestClassify:
    def test_first_match_wins(self):
        """Earlier categories win even when a later pattern is more specific."""
        category_map = {"A": ["x.com"], "B": ["x.com/y"]}
        assert classify("https://x.com/y", category_map) == "A"

    def test_order_is_what_decides(self):
        category_map = {"B": ["x.com/y"], "A": ["x.com"]}
        assert classify("https://x.com/y", category_map) == "B"

    def test_default_map_prefers_school_for_docs(self):
        assert classify("https://docs.google.com/document/d/1", DEFAULT_CATEGORY_MAP) == "school"

    def test_path_pattern(self):
        assert classify("https://google.com/drive/u/0", DEFAULT_CATEGORY_MAP) == "school"

    def test_substring_anywhere_in_host(self):
        assert classify("https://m.youtube.com.example.net/", DEFAULT_CATEGORY_MAP) == "social"

    def test_raw_url_match(self):
        """Patterns in the query string still count."""
        assert classify("https://example.com/?ref=github.com", DEFAULT_CATEGORY_MAP) == "productive"

    @pytest.mark.parametrize(
        "url",
        ["file:///notes/github.com/x", "data:text/plain,see github.com"],
    )
    def test_url_without_hostname_still_matches(self, url):
        assert classify(url, {"productive": ["github.com"]}) == "productive"

    def test_no_match_is_other(self):
        assert classify("https://example.org/", DEFAULT_CATEGORY_MAP) == "other"

    def test_empty_patterns_are_skipped(self):
        assert classify("https://x.com/", {"blank": [""], "real": ["x.com"]}) == "real"

    @pytest.mark.parametrize("url", ["", None, "not a url", "http://[::1", "youtube.com"])
    def test_malformed_urls_are_other(self, url):
        assert classify(url, DEFAULT_CATEGORY_MAP) == "other"

    def test_deterministic(self):
        results = {classify("https://github.com/org/repo", DEFAULT_CATEGORY_MAP) for _ in range(20)}
        assert results == {"productive"}


class TestDomainForUrl:
    def test_hostname(self):
        assert domain_for_url("https://Docs.Google.com/a?b=c") == "docs.google.com"

    @pytest.mark.parametrize("url", [None, "", "about:blank", "http://[::1"])
    def test_missing_hostname(self, url):
        assert domain_for_url(url) is None


class TestNormalizeCategoryMap:
    def test_keeps_order_and_trims(self):
        cleaned = normalize_category_map({" work ": [" a.com ", ""], "fun": ["b.com"]})
        assert list(cleaned.items()) == [("work", ["a.com"]), ("fun", ["b.com"])]

    def test_drops_empty_and_invalid_entries(self):
        cleaned = normalize_category_map({"": ["a.com"], "s": "a.com", "n": [], "ok": ["c.com"]})
        assert cleaned == {"ok": ["c.com"]}

    def test_non_mapping(self):
        assert normalize_category_map(["a.com"]) == {}
