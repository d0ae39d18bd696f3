"""
In-memory cache with Time-To-Live support.

Every engine owns its own cache instances, so nothing here is shared across
instruments. The clock is injected to keep expiry deterministic under test.
"""
import logging
import time
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class SimpleCacheManager:
    """
    Dictionary-backed TTL cache with hit/miss accounting.

    Expired entries are dropped lazily on lookup, or in bulk by
    ``cleanup_expired``.
    """

    def __init__(self, name: str = "cache", clock: Callable[[], float] = time.time):
        """
        Initializes the cache.

        Args:
            name: Label used in log messages.
            clock: Returns the current time in seconds.
        """
        self.name = name
        self._clock = clock
        self._cache: Dict[Hashable, Dict[str, Any]] = {}
        self._stats = {"hits": 0, "misses": 0, "expired": 0, "sets": 0}

    def set(self, key: Hashable, value: Any, ttl_seconds: float):
        """
        Store ``value`` for ``ttl_seconds``; a non-positive TTL stores nothing.
        """
        if ttl_seconds <= 0:
            return

        now = self._clock()
        self._cache[key] = {"value": value, "stored_at": now, "expires_at": now + ttl_seconds}
        self._stats["sets"] += 1
        logger.debug(f"{self.name} SET for key: {key} with TTL: {ttl_seconds}s")

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Look up ``key``.

        Returns:
            The stored value, or None when absent or expired.
        """
        item = self._cache.get(key)
        if item is None:
            self._stats["misses"] += 1
            logger.debug(f"{self.name} MISS for key: {key}")
            return None

        if self._clock() > item["expires_at"]:
            del self._cache[key]
            self._stats["expired"] += 1
            logger.debug(f"{self.name} EXPIRED for key: {key}")
            return None

        self._stats["hits"] += 1
        logger.debug(f"{self.name} HIT for key: {key}")
        return item["value"]

    def age_of(self, key: Hashable) -> Optional[float]:
        """Seconds since the item was stored, or None when absent."""
        item = self._cache.get(key)
        if item is None:
            return None
        return self._clock() - item["stored_at"]

    def delete(self, key: Hashable):
        self._cache.pop(key, None)

    def cleanup_expired(self) -> int:
        """Drop every expired item and return how many were removed."""
        now = self._clock()
        expired = [k for k, item in self._cache.items() if now > item["expires_at"]]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.debug(f"{self.name} cleaned up {len(expired)} expired entries")
        return len(expired)

    def clear(self):
        """Drop every entry regardless of expiry."""
        self._cache.clear()
        logger.debug(f"{self.name} cleared")

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"] + self._stats["expired"]
        return {
            **self._stats,
            "size": len(self._cache),
            "hit_rate": self._stats["hits"] / lookups if lookups else 0.0,
        }
