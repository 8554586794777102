"""
In-memory LRU cache with lazy TTL expiry.

Recency is kept structurally in an OrderedDict, so "move to most recently
used" and "evict least recently used" are both O(1). Expired entries are
only removed when they are read; there is no background sweep, so callers
bound staleness by choosing the TTL and bound memory by choosing max_size.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

from memcore.errors import ConfigurationError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    timestamp: float
    access_count: int = 1


@dataclass(frozen=True)
class CacheStats:
    """Observability snapshot. Not used for any eviction decision."""
    size: int
    max_size: int
    hit_rate: float
    oldest_entry: Optional[float]
    newest_entry: Optional[float]


class LRUCache(Generic[K, V]):
    """
    Bounded key -> value cache.

    Usage:
        cache = LRUCache(max_size=500, ttl=86400)
        cache.set("k", value)
        cache.get("k")  # value, or None once expired/evicted
    """

    def __init__(self, max_size: int = 100, ttl: float = 3600.0,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            max_size: Maximum number of entries (must be positive)
            ttl: Seconds an entry stays readable; 0 disables caching
            clock: Monotonic seconds source (injectable for tests)
        """
        if max_size <= 0:
            raise ConfigurationError(f"max_size must be positive, got {max_size}")
        if ttl < 0:
            raise ConfigurationError(f"ttl must be >= 0, got {ttl}")

        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.timestamp >= self.ttl

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default

            if self._expired(entry, self._clock()):
                del self._entries[key]
                return default

            entry.access_count += 1
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None:
                entry.value = value
                entry.timestamp = now
                entry.access_count += 1
                self._entries.move_to_end(key)
                return

            if len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)

            self._entries[key] = CacheEntry(value=value, timestamp=now)

    def has(self, key: K) -> bool:
        """Presence check with expiry; does not refresh recency."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False

            if self._expired(entry, self._clock()):
                del self._entries[key]
                return False

            return True

    def delete(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            entries = list(self._entries.values())

        if not entries:
            return CacheStats(size=0, max_size=self.max_size, hit_rate=0.0,
                              oldest_entry=None, newest_entry=None)

        stamps = [e.timestamp for e in entries]
        return CacheStats(
            size=len(entries),
            max_size=self.max_size,
            hit_rate=sum(e.access_count for e in entries) / len(entries),
            oldest_entry=min(stamps),
            newest_entry=max(stamps),
        )

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)
