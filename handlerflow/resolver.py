"""Name-to-implementation resolver used by adapters and step kinds.

Implementations are registered explicitly at start-up; nothing is ever
located by importing a module path from a string. Mutations swap in a new
immutable snapshot under a lock so readers never observe a half-applied write.
"""
from __future__ import annotations

import logging
from threading import Lock
from types import MappingProxyType
from typing import Dict, Generic, List, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ImplementationResolver(Generic[T]):
    """Concurrency-safe registry of named implementations.

    Example:
        >>> resolver = ImplementationResolver("legacy handlers")
        >>> resolver.register("AnalyzeArchitectureHandler", AnalyzeArchitectureHandler)
        >>> resolver.resolve("AnalyzeArchitectureHandler")
    """

    def __init__(self, label: str = "implementations", initial: Optional[Mapping[str, T]] = None) -> None:
        self.label = label
        self._lock = Lock()
        self._snapshot: Mapping[str, T] = MappingProxyType(dict(initial or {}))

    def register(self, name: str, implementation: T) -> None:
        """Register ``implementation`` under ``name``; the last registration wins."""
        if not name or not isinstance(name, str):
            raise ValueError(f"Invalid name for {self.label}: {name!r}")
        with self._lock:
            updated: Dict[str, T] = dict(self._snapshot)
            if name in updated and updated[name] is not implementation:
                logger.debug(f"Replacing {self.label} entry '{name}'")
            updated[name] = implementation
            self._snapshot = MappingProxyType(updated)

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._snapshot:
                return False
            updated = dict(self._snapshot)
            del updated[name]
            self._snapshot = MappingProxyType(updated)
            return True

    def resolve(self, name: str) -> Optional[T]:
        """Return the implementation registered under ``name`` or None."""
        return self._snapshot.get(name)

    def names(self) -> List[str]:
        """Registered names in registration order."""
        return list(self._snapshot.keys())

    def snapshot(self) -> Mapping[str, T]:
        """Read-only view of the current registrations."""
        return self._snapshot

    def __contains__(self, name: object) -> bool:
        return name in self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)
