"""Bounded caches for adapter- and factory-built handlers.

Components:
    - BoundedCache: thread-safe, capacity-limited store with FIFO eviction
    - CacheEntry: cached value with creation time and hit count
    - select_fifo_victim: eviction helper choosing the first-inserted entry
"""

from .bounded import BoundedCache, CacheEntry
from .eviction import select_fifo_victim

__all__ = ["BoundedCache", "CacheEntry", "select_fifo_victim"]
