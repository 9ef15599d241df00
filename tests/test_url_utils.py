"""Tests for link URL validation and normalized comparison."""

from __future__ import annotations

import unittest

from linkshelf.core.url_utils import normalize_url, urls_equivalent, validate_url


class TestValidateUrl(unittest.TestCase):
    def test_accepts_http_and_https(self):
        assert validate_url("https://example.com/a") == "https://example.com/a"
        assert validate_url("  http://example.com ") == "http://example.com"

    def test_rejects_empty(self):
        with self.assertRaises(ValueError) as ctx:
            validate_url("   ")
        assert "empty" in str(ctx.exception)

    def test_rejects_other_schemes(self):
        for url in ("ftp://example.com", "javascript:alert(1)", "example.com"):
            with self.assertRaises(ValueError):
                validate_url(url)

    def test_rejects_missing_host(self):
        with self.assertRaises(ValueError):
            validate_url("https://")

    def test_rejects_control_characters(self):
        with self.assertRaises(ValueError):
            validate_url("https://example.com/\x07")


class TestNormalizeUrl(unittest.TestCase):
    def test_case_scheme_and_www_are_ignored(self):
        assert normalize_url("HTTPS://WWW.Example.com/Path") == "https://example.com/path"

    def test_missing_scheme_defaults_to_https(self):
        assert normalize_url("example.com/a") == "https://example.com/a"

    def test_trailing_slash_dropped_except_root(self):
        assert normalize_url("https://example.com/a/") == "https://example.com/a"
        assert normalize_url("https://example.com/") == "https://example.com/"
        assert normalize_url("https://example.com") == "https://example.com/"

    def test_query_and_fragment_kept(self):
        assert normalize_url("https://example.com/a?b=1#c") == "https://example.com/a?b=1#c"

    def test_equivalence(self):
        assert urls_equivalent("http://www.example.com/x/", "HTTP://example.com/x")
        assert not urls_equivalent("https://example.com/x", "https://example.com/y")


if __name__ == "__main__":
    unittest.main()
