"""
Canonical page cache keys.
"""

from typing import Iterable, Tuple
from urllib.parse import parse_qsl, urlencode

# Query params that *do* alter the rendered page and therefore get their own cache entry
DEFAULT_CACHEABLE_QUERY_PARAMS: Tuple[str, ...] = ("learn",)


class CacheKeyNormalizer:
    """Reduce a request URL to the key its rendered page is cached under."""

    def __init__(self, cacheable_query_params: Iterable[str] = DEFAULT_CACHEABLE_QUERY_PARAMS):
        self.cacheable_query_params = frozenset(cacheable_query_params)

    def normalize(self, original_url: str) -> str:
        """Strip the fragment and every query param outside the allow-list.

        Retained params keep the order they had in the original query
        string, so the same logical request always maps to the same key.
        """
        without_fragment = original_url.split("#", 1)[0]
        path, _, query = without_fragment.partition("?")
        return self.normalize_parts(path, query)

    def normalize_parts(self, path: str, query_string: str) -> str:
        """Build the key from an already split path and raw query string."""
        path = path or "/"
        retained = [
            (name, value)
            for name, value in parse_qsl(query_string, keep_blank_values=True)
            if name in self.cacheable_query_params
        ]
        if not retained:
            return path
        return f"{path}?{urlencode(retained)}"
