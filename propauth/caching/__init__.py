"""
Caching components for propauth.

Provides the decision cache that sits in front of the policy evaluator.

Example:
    >>> from propauth.caching import DecisionCache, CacheConfig
    >>>
    >>> cache = DecisionCache(CacheConfig(ttl_seconds=300, max_size=50_000))
    >>> decision = cache.get(request.cache_key)
    >>>
    >>> # Drop everything cached for an identity after its scope changes
    >>> cache.invalidate_identity("u_42")
"""

from propauth.caching.decision_cache import (
    CacheEntry,
    CacheStats,
    DecisionCache,
    DecisionStore,
)
from propauth.config import CacheConfig

__all__ = [
    "DecisionCache",
    "DecisionStore",
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
]
