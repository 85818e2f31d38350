"""Bounded LRU cache with per-entry time-to-live.

Expired entries are not returned by get(), but are kept until evicted so
that recovery code can still serve stale data through peek().
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheStats:
    """Cache counters."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class SkillCache(Generic[V]):
    """LRU cache with time-to-live.

    Args:
        max_size: Maximum number of entries; least recently used are evicted
        ttl: Default time-to-live in seconds
        clock: Monotonic time source (injectable for tests)

    Example:
        >>> cache = SkillCache(max_size=2, ttl=60)
        >>> cache.set("a", 1)
        >>> cache.get("a")
        1
    """

    def __init__(
        self,
        max_size: int = 500,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, _Entry[V]] = OrderedDict()
        self._stats = CacheStats(max_size=max_size)

    def get(self, key: str) -> V | None:
        """Return a fresh value, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None
        if entry.expires_at <= self._clock():
            self._stats.misses += 1
            self._stats.expirations += 1
            return None
        self._entries.move_to_end(key)
        self._stats.hits += 1
        return entry.value

    def peek(self, key: str, include_expired: bool = True) -> V | None:
        """Return a value without touching LRU order or counters."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not include_expired and entry.expires_at <= self._clock():
            return None
        return entry.value

    def set(self, key: str, value: V, ttl: float | None = None) -> None:
        """Insert or replace a value, evicting the least recently used entry if full."""
        expires_at = self._clock() + (self.ttl if ttl is None else ttl)
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = _Entry(value, expires_at)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            logger.debug(f"Evicted cache entry '{evicted}'")

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_where(self, predicate: Callable[[str], bool]) -> int:
        """Delete every entry whose key matches the predicate.

        Returns:
            Number of deleted entries
        """
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock()
        return self.delete_where(lambda key: self._entries[key].expires_at <= now)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        self._stats.size = len(self._entries)
        return self._stats

    def __contains__(self, key: str) -> bool:
        return self.peek(key, include_expired=False) is not None

    def __len__(self) -> int:
        return len(self._entries)
