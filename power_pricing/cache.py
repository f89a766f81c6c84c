"""In-process TTL caches for geocoder, ZIP and pricing results"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger()


@dataclass
class CacheEntry:
    """A cached value with its insertion and expiry times (epoch seconds)"""
    value: Any
    inserted_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class TTLCache:
    """Insertion-ordered cache with per-entry expiry.

    Expired entries are kept until evicted so callers can fall back to them
    with ``get_stale`` when a refresh fails. When the cache is full the entry
    inserted first is dropped.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_items: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self.clock = clock
        self.cache: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self.cache)

    def __contains__(self, key: str) -> bool:
        return key in self.cache

    def _evict_oldest(self):
        """Evict the earliest inserted entry"""
        if not self.cache:
            return
        oldest_key = min(self.cache, key=lambda k: self.cache[k].inserted_at)
        del self.cache[oldest_key]
        logger.debug("Cache entry evicted", cache=self.name, key=oldest_key)

    def get(self, key: str) -> Optional[Any]:
        """Get a fresh item from cache, or None"""
        entry = self.cache.get(key)
        if entry is None or not entry.is_fresh(self.clock()):
            self.misses += 1
            return None

        self.hits += 1
        return entry.value

    def get_stale(self, key: str) -> Optional[Any]:
        """Get an item regardless of its expiry"""
        entry = self.cache.get(key)
        return entry.value if entry is not None else None

    def put(self, key: str, value: Any, ttl_seconds: Optional[float] = None):
        """Put item in cache"""
        if key in self.cache:
            del self.cache[key]

        if self.max_items is not None:
            while len(self.cache) >= self.max_items:
                self._evict_oldest()

        now = self.clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self.cache[key] = CacheEntry(value=value, inserted_at=now, expires_at=now + ttl)

    def cleanup_expired(self) -> int:
        """Remove expired items"""
        now = self.clock()
        expired_keys = [key for key, entry in self.cache.items() if not entry.is_fresh(now)]
        for key in expired_keys:
            del self.cache[key]
        return len(expired_keys)

    def clear(self):
        """Clear all items"""
        self.cache.clear()
        self.hits = 0
        self.misses = 0

    def get_stats(self) -> Dict[str, Any]:
        """Entry counts and hit rate"""
        now = self.clock()
        fresh = sum(1 for entry in self.cache.values() if entry.is_fresh(now))
        lookups = self.hits + self.misses
        return {
            "totalEntries": len(self.cache),
            "freshEntries": fresh,
            "staleEntries": len(self.cache) - fresh,
            "hitRate": round(self.hits / lookups, 4) if lookups else 0.0,
        }
