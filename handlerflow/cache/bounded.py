"""Capacity-bounded, thread-safe key/value store with FIFO eviction."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from threading import RLock
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .eviction import select_fifo_victim

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Cached value plus bookkeeping used by eviction and statistics."""

    key: str
    value: V
    created_at: datetime = field(default_factory=datetime.now)
    hits: int = 0


class BoundedCache(Generic[V]):
    """Thread-safe cache holding at most ``capacity`` entries.

    Eviction Policy:
        - When a new key would exceed capacity, the first-inserted entry is evicted
        - Reads never change eviction order (this is FIFO, not LRU)
        - Overwriting an existing key keeps its original insertion position

    Attributes:
        capacity: Maximum number of entries
        name: Label used in log messages and statistics
    """

    def __init__(self, capacity: int, name: str = "cache"):
        """Initialize the cache.

        Args:
            capacity: Maximum number of entries, at least 1
            name: Label used in log messages and statistics
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.name = name
        self._cache: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[CacheEntry[V]]:
        """Return the entry for ``key`` without touching eviction order."""
        with self._lock:
            return self._cache.get(key)

    def lookup(self, key: str) -> Optional[V]:
        """Return the cached value and count a hit or miss."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None
            entry.hits += 1
            self._hits += 1
            return entry.value

    def put(self, key: str, value: V) -> Optional[str]:
        """Store ``value`` under ``key``, evicting the oldest entry on overflow.

        Returns:
            The evicted key, or None if nothing was evicted
        """
        with self._lock:
            if key in self._cache:
                self._cache[key].value = value
                return None

            evicted = None
            if len(self._cache) >= self.capacity:
                evicted = select_fifo_victim(self, self._cache.keys())
                del self._cache[evicted]
                self._evictions += 1
                logger.debug(f"{self.name}: evicted '{evicted}' (capacity {self.capacity})")

            self._cache[key] = CacheEntry(key=key, value=value)
            return evicted

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> int:
        """Clear all entries.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def keys(self) -> List[str]:
        """Keys in insertion order."""
        with self._lock:
            return list(self._cache.keys())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._cache),
                "capacity": self.capacity,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "keys": list(self._cache.keys()),
            }
