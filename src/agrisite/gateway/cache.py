"""Thread-safe LRU cache with per-entry TTL.

Two process-wide instances back the gateway: a short-lived route cache and a
long-lived overlay cache.

Example:
    >>> cache = LRUCache(max_size=2, ttl_seconds=60)
    >>> cache.set("a", 1)
    >>> cache.get("a")
    1
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

ROUTE_CACHE_TTL = 60 * 60
OVERLAY_CACHE_TTL = 24 * 60 * 60


@dataclass
class CacheEntry:
    """A cached value with insertion and access times (monotonic seconds)."""

    key: str
    value: Any
    inserted_at: float
    last_accessed_at: float

    def age(self, now: float) -> float:
        return now - self.inserted_at


class LRUCache:
    """Bounded LRU cache with TTL expiry.

    Args:
        max_size: Maximum number of entries before LRU eviction
        ttl_seconds: Entry lifetime
        update_age_on_get: Refresh an entry's age when it is read
        name: Label used in log messages and stats
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        max_size: int,
        ttl_seconds: float,
        update_age_on_get: bool = True,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.update_age_on_get = update_age_on_get
        self.name = name
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = RLock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if entry.age(now) > self.ttl_seconds:
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            entry.last_accessed_at = now
            if self.update_age_on_get:
                entry.inserted_at = now
            self._hits += 1
            logger.debug(f"{self.name} hit: {key}")
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            now = self._clock()
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = CacheEntry(
                key=key, value=value, inserted_at=now, last_accessed_at=now
            )
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"{self.name} evicted: {evicted}")

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.age(self._clock()) <= self.ttl_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "hit_rate": self._hits / lookups if lookups else 0.0,
            }
