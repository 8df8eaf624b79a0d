"""
Renderer caching package.

Provides the page cache used to avoid re-rendering identical pages. The
cache is an accelerator only: every failure degrades to a miss.
"""

from .cache_key import CacheKeyNormalizer
from .page_cache import PageCache

__all__ = [
    "CacheKeyNormalizer",
    "PageCache",
]
