"""
PerfLab caching package.

Cache-aside reads with TTLs and coarse prefix invalidation on writes. The
invalidation is deliberately racy with concurrent reads; see
``CacheAsideStore.get_or_compute``.
"""

from .cache_aside import CacheAsideStore, CacheOutcome, CacheResult
from .keys import build_cache_key, resource_prefix

__all__ = [
    "CacheAsideStore",
    "CacheOutcome",
    "CacheResult",
    "build_cache_key",
    "resource_prefix",
]
