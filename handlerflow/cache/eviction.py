"""Victim selection for the bounded handler caches.

The handler caches use first-in-first-out eviction: the entry
inserted earliest is evicted regardless of how recently it was read.

Backend Requirements:
The backend parameter must implement a get(key) method that returns cache
entries with a ``created_at`` attribute. Backends that keep an insertion-ordered
``_cache`` OrderedDict get the O(1) path.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Any, Iterable


def select_fifo_victim(backend: Any, keys: Iterable[str]) -> str:
    """Select the oldest cache entry (FIFO) as eviction victim.

    For OrderedDict-based backends that never reorder on read, the first key is
    always the oldest insertion. Otherwise falls back to an O(n) scan on
    ``created_at``; ties keep the order in which ``keys`` were supplied.

    Args:
        backend: Cache backend with get(key) returning entries with created_at
        keys: Candidate cache keys. Must not be empty.

    Returns:
        The key of the first-inserted entry. If no valid entries are found,
        returns the first candidate key.
    """
    # O(1) path for insertion-ordered backends
    if hasattr(backend, '_cache') and isinstance(backend._cache, OrderedDict):
        if len(backend._cache) > 0:
            return next(iter(backend._cache.keys()))

    keys = list(keys)
    entries_with_time = []
    for position, key in enumerate(keys):
        entry = backend.get(key)
        if entry:
            entries_with_time.append((entry.created_at, position, key))

    if not entries_with_time:
        return keys[0]

    return min(entries_with_time)[2]
