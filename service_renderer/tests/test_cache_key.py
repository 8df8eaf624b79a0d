"""
Unit tests for page cache key normalization.
"""

import pytest

from service_renderer.app.caching.cache_key import CacheKeyNormalizer


class TestCacheKeyNormalizer:
    """Test cases for CacheKeyNormalizer."""

    @pytest.fixture
    def normalizer(self):
        return CacheKeyNormalizer(["learn"])

    def test_strips_params_outside_allow_list(self, normalizer):
        assert normalizer.normalize("/en/foo?x=1&learn=basics") == "/en/foo?learn=basics"

    def test_bare_path_without_query(self, normalizer):
        assert normalizer.normalize("/en/actions") == "/en/actions"
        assert normalizer.normalize("/en/actions?") == "/en/actions"

    def test_only_ignored_params_collapse_to_path(self, normalizer):
        assert normalizer.normalize("/en/actions?utm_source=x&json") == "/en/actions"

    def test_fragment_is_dropped(self, normalizer):
        assert normalizer.normalize("/en/actions?learn=a#setup") == "/en/actions?learn=a"
        assert normalizer.normalize("/en/actions#setup") == "/en/actions"

    def test_retained_params_keep_original_order(self):
        normalizer = CacheKeyNormalizer(["learn", "tool"])
        assert normalizer.normalize("/en/a?tool=cli&x=1&learn=b") == "/en/a?tool=cli&learn=b"
        assert normalizer.normalize("/en/a?learn=b&tool=cli") == "/en/a?learn=b&tool=cli"

    def test_repeated_allowed_param_kept_in_order(self, normalizer):
        assert normalizer.normalize("/en/a?learn=one&x=2&learn=two") == "/en/a?learn=one&learn=two"

    def test_blank_allowed_param_is_kept(self, normalizer):
        assert normalizer.normalize("/en/a?learn") == "/en/a?learn="

    @pytest.mark.parametrize("url", [
        "/en/foo?x=1&learn=basics",
        "/en/foo?learn=a+b&z=3",
        "/en/foo?learn=caf%C3%A9",
        "/en/foo?a=1&b=2",
        "/en/foo",
    ])
    def test_normalization_is_idempotent(self, normalizer, url):
        key = normalizer.normalize(url)
        assert normalizer.normalize(key) == key

    @pytest.mark.parametrize("noise", ["", "&x=1", "&utm_campaign=spring&ref=nav", "&json=page"])
    def test_ignored_params_never_affect_key(self, normalizer, noise):
        assert normalizer.normalize(f"/en/foo?learn=basics{noise}") == "/en/foo?learn=basics"

    def test_allowed_param_always_in_key(self, normalizer):
        assert "learn=basics" in normalizer.normalize("/en/foo?a=1&learn=basics&b=2")

    def test_normalize_parts_matches_normalize(self, normalizer):
        assert normalizer.normalize_parts("/en/foo", "x=1&learn=basics") == "/en/foo?learn=basics"
        assert normalizer.normalize_parts("", "") == "/"
