"""
NEUFIN — Quote & Analysis Cache Layer
In-memory TTL caches with an injectable clock. Instances are owned by the
component that uses them so tests control time and isolation.
"""
import time
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, TypeVar

from cachetools import LRUCache, TTLCache

from neufin.data.models import Quote
from neufin.utils.logger import get_logger

logger = get_logger("quote_cache")

Clock = Callable[[], float]
V = TypeVar("V")


class TimedCache(Generic[V]):
    """
    TTL map, last writer wins.

    Also remembers up to `maxsize` written keys past their expiry, evicting
    the least recently read or written one first.
    """

    def __init__(self, ttl_seconds: float, maxsize: int = 1000, clock: Optional[Clock] = None):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or time.monotonic
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=self.clock)
        self._known: LRUCache = LRUCache(maxsize=maxsize)
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[V]:
        value = self._entries.get(key)
        if key in self._known:
            self._known[key] = True
        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        return value

    def put(self, key: Hashable, value: V) -> None:
        self._entries[key] = value
        self._known[key] = True

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def known_keys(self) -> List[Hashable]:
        """Remembered keys, fresh or stale."""
        return sorted(self._known.keys(), key=str)

    def clear(self) -> None:
        self._entries.clear()
        self._known.clear()
        logger.info("cache_cleared", ttl=self.ttl_seconds)

    @property
    def stats(self) -> Dict[str, Any]:
        self._entries.expire()
        return {
            "fresh_entries": len(self._entries),
            "known_keys": len(self._known),
            "hits": self._hits,
            "misses": self._misses,
            "ttl_seconds": self.ttl_seconds,
        }


class QuoteCache(TimedCache[Quote]):
    """Quotes keyed by the symbol exactly as the caller passed it."""
