"""
Decision caching.

Provides a bounded, TTL-based, thread-safe memo of authorization decisions
keyed by (identity, resource kind, action, resource id), with per-identity
invalidation.

Concurrency model: callers compute decisions outside the cache and only
take the cache lock for the lookup or insert itself. A decision records
the clock reading taken when its computation started; invalidate_identity()
records a watermark, and any put() whose computation started at or before
the watermark is discarded. A put racing an invalidation therefore cannot
leave a stale entry behind, whichever of the two takes the lock first.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from propauth.config import CacheConfig
from propauth.types import Decision, DecisionKey

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@runtime_checkable
class DecisionStore(Protocol):
    """
    Interface of a decision cache.

    A substitute (for example a networked cache) must keep the same
    contract: never return a decision older than the TTL, and drop every
    entry of an identity on invalidate_identity(), including puts racing
    the invalidation.
    """

    def now(self) -> float:
        """Current reading of the clock decisions are stamped with."""
        ...

    def get(self, key: DecisionKey) -> Decision | None:
        ...

    def put(self, key: DecisionKey, decision: Decision) -> bool:
        ...

    def invalidate_identity(self, identity_id: str) -> int:
        ...

    def sweep_expired(self) -> int:
        ...


@dataclass
class CacheEntry:
    """
    A single cached decision.

    Attributes:
        key: Cache key.
        decision: The cached decision.
        expires_at: Clock reading at which the entry goes stale.
        hits: Number of times this entry was served.
    """

    key: DecisionKey
    decision: Decision
    expires_at: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired."""
        return now >= self.expires_at

    def access(self) -> None:
        """Record an access to this entry."""
        self.hits += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": list(self.key),
            "allowed": self.decision.allowed,
            "computed_at": self.decision.computed_at,
            "expires_at": self.expires_at,
            "hits": self.hits,
        }


@dataclass
class CacheStats:
    """
    Cache statistics.

    Attributes:
        hits: Number of cache hits.
        misses: Number of cache misses.
        evictions: Entries evicted to respect max_size.
        expirations: Entries removed because their TTL elapsed.
        discarded: Puts rejected as stale.
        invalidations: Entries removed by invalidate_identity().
        size: Current number of entries.

    Example:
        >>> stats = cache.get_stats()
        >>> print(f"Hit rate: {stats.hit_rate:.2%}")
    """

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    discarded: int = 0
    invalidations: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def total_requests(self) -> int:
        """Get total number of cache requests."""
        return self.hits + self.misses

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "discarded": self.discarded,
            "invalidations": self.invalidations,
            "size": self.size,
            "hit_rate": self.hit_rate,
            "total_requests": self.total_requests,
        }


class DecisionCache:
    """
    In-process decision cache.

    Example:
        >>> cache = DecisionCache(CacheConfig(ttl_seconds=300))
        >>> key = DecisionKey("u_42", "building", "read", "B123")
        >>> started = cache.now()
        >>> cache.put(key, Decision(allowed=True, computed_at=started))
        True
        >>> cache.get(key).allowed
        True
        >>> cache.invalidate_identity("u_42")
        1
        >>> cache.get(key) is None
        True
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        """
        Initialize the cache.

        Args:
            config: Cache configuration.
            clock: Monotonic clock in seconds. Injected in tests.
        """
        self.config = config or CacheConfig()
        self._clock = clock

        # OrderedDict gives LRU order for eviction
        self._entries: OrderedDict[DecisionKey, CacheEntry] = OrderedDict()
        self._by_identity: dict[str, set[DecisionKey]] = {}
        self._watermarks: dict[str, float] = {}
        self._global_watermark = float("-inf")
        self._lock = threading.RLock()
        self._stats = CacheStats()

        self._sweeper: threading.Thread | None = None
        self._stop_sweeping = threading.Event()

        if self.config.sweep_interval_seconds is not None:
            self.start_sweeper()

    @property
    def ttl(self) -> float:
        return self.config.ttl_seconds

    def now(self) -> float:
        return self._clock()

    def get(self, key: DecisionKey) -> Decision | None:
        """
        Get a cached decision.

        Args:
            key: The decision key.

        Returns:
            The decision, or None on a miss. An expired entry is a miss and
            is removed.
        """
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired(self._clock()):
                self._remove(key)
                self._stats.misses += 1
                self._stats.expirations += 1
                return None

            entry.access()
            self._stats.hits += 1
            self._entries.move_to_end(key)
            return entry.decision

    def put(self, key: DecisionKey, decision: Decision) -> bool:
        """
        Cache a decision.

        Args:
            key: The decision key.
            decision: The decision, stamped with the clock reading taken
                before it was computed.

        Returns:
            True if stored, False if discarded as stale (already past its
            TTL, or computed before the identity's last invalidation).
        """
        expires_at = decision.computed_at + self.config.ttl_seconds

        with self._lock:
            if self._clock() >= expires_at or decision.computed_at <= self._watermark(key.identity_id):
                self._stats.discarded += 1
                logger.debug(f"Discarded stale decision for {key}")
                return False

            if key in self._entries:
                self._entries.move_to_end(key)
            else:
                while len(self._entries) >= self.config.max_size:
                    self._evict_one()

            self._entries[key] = CacheEntry(key=key, decision=decision, expires_at=expires_at)
            self._by_identity.setdefault(key.identity_id, set()).add(key)
            return True

    def invalidate_identity(self, identity_id: str) -> int:
        """
        Remove every cached decision of an identity.

        Called whenever the identity's role, scope or assignments change.
        Decisions whose computation started before this call are rejected
        if they are put afterwards.

        Args:
            identity_id: The identity whose decisions to drop.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            self._prune_watermarks(now)
            # Re-insert so the dict stays ordered by watermark
            self._watermarks.pop(identity_id, None)
            self._watermarks[identity_id] = now
            keys = self._by_identity.pop(identity_id, set())
            for key in keys:
                self._entries.pop(key, None)
            self._stats.invalidations += len(keys)

        logger.info(f"Invalidated {len(keys)} cached decisions for identity={identity_id}")
        return len(keys)

    def sweep_expired(self) -> int:
        """
        Remove all expired entries.

        Also forgets invalidation watermarks older than the TTL: a put
        computed before such a watermark would be expired anyway.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                self._remove(key)
            self._stats.expirations += len(expired)

            self._prune_watermarks(now)

        if expired:
            logger.debug(f"Swept {len(expired)} expired decisions")
        return len(expired)

    def clear(self) -> int:
        """
        Clear all cache entries.

        Like invalidate_identity(), but for every identity at once.

        Returns:
            Number of entries cleared.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._by_identity.clear()
            self._watermarks.clear()
            self._global_watermark = self._clock()
            return count

    def get_stats(self) -> CacheStats:
        """
        Get cache statistics.

        Returns:
            A snapshot of the current statistics.
        """
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                expirations=self._stats.expirations,
                discarded=self._stats.discarded,
                invalidations=self._stats.invalidations,
                size=len(self._entries),
            )

    def get_entries(self, identity_id: str | None = None) -> list[CacheEntry]:
        """
        Get cache entries, optionally for one identity.

        Returns:
            List of cache entries (expired ones included until swept).
        """
        with self._lock:
            if identity_id is None:
                return list(self._entries.values())
            keys = self._by_identity.get(identity_id, set())
            return [self._entries[k] for k in keys if k in self._entries]

    def start_sweeper(self, interval: float | None = None) -> None:
        """
        Start a daemon thread that calls sweep_expired() periodically.

        Args:
            interval: Seconds between sweeps. Defaults to the configured
                sweep_interval_seconds, or a tenth of the TTL.
        """
        interval = interval or self.config.sweep_interval_seconds or self.config.ttl_seconds / 10
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop_sweeping.clear()
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(interval,),
                name="propauth-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()
        logger.info(f"Decision cache sweeper started (interval={interval}s)")

    def stop_sweeper(self, timeout: float | None = 5.0) -> None:
        """Stop the background sweeper, if running."""
        self._stop_sweeping.set()
        sweeper = self._sweeper
        if sweeper is not None:
            sweeper.join(timeout)
            self._sweeper = None
            logger.info("Decision cache sweeper stopped")

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop_sweeping.wait(interval):
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("Decision cache sweep failed")

    def _watermark(self, identity_id: str) -> float:
        return max(self._global_watermark, self._watermarks.get(identity_id, float("-inf")))

    def _prune_watermarks(self, now: float) -> None:
        horizon = now - self.config.ttl_seconds
        while self._watermarks:
            identity_id, watermark = next(iter(self._watermarks.items()))
            if watermark >= horizon:
                break
            del self._watermarks[identity_id]

    def _remove(self, key: DecisionKey) -> None:
        self._entries.pop(key, None)
        keys = self._by_identity.get(key.identity_id)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._by_identity[key.identity_id]

    def _evict_one(self) -> None:
        """Evict the least recently used entry."""
        key, _ = self._entries.popitem(last=False)
        self._remove(key)
        self._stats.evictions += 1
        logger.debug(f"Evicted cache entry: {key}")

    def __contains__(self, key: DecisionKey) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        """Get number of cached entries."""
        with self._lock:
            return len(self._entries)
