"""Registry of built handlers keyed by handler type."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

from ..error_coordination import HandlerException
from ..events import EventSink, safe_emit
from .interface import Handler

logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    """A registered handler and its bookkeeping."""

    handler_type: str
    handler: Handler
    registered_at: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
    lookups: int = 0


class HandlerRegistry:
    """Thread-safe map of handler type to handler.

    A handler type is unique within the registry: registering the same type
    again replaces the previous handler (last writer wins).
    """

    def __init__(self, event_sink: Optional[EventSink] = None):
        self.event_sink = event_sink
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = Lock()
        self._replacements = 0

    @staticmethod
    def type_of(handler: Any) -> Optional[str]:
        """Registry key derived from a handler's metadata name."""
        get_metadata = getattr(handler, "get_metadata", None)
        if not callable(get_metadata):
            return None
        metadata = get_metadata()
        name = metadata.get("name") if isinstance(metadata, Mapping) else None
        return name if isinstance(name, str) and name else None

    def register(
        self,
        handler: Handler,
        handler_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Register ``handler``.

        Args:
            handler: Handler to register
            handler_type: Registry key; defaults to the handler's metadata name
            metadata: Extra bookkeeping stored with the entry

        Returns:
            The key the handler was registered under

        Raises:
            HandlerException: REGISTRY kind when no key can be determined
        """
        key = handler_type or self.type_of(handler)
        if not key:
            raise HandlerException.registry_error(
                "Handler type is required for registration",
                {"handler": repr(handler)},
            )

        entry = RegistryEntry(handler_type=key, handler=handler, metadata=dict(metadata or {}))
        with self._lock:
            replaced = key in self._entries
            self._entries[key] = entry
            if replaced:
                self._replacements += 1

        if replaced:
            logger.info(f"Replaced handler {key}")
        else:
            logger.debug(f"Registered handler {key}")
        safe_emit(self.event_sink, "handler.registered", {"handlerType": key, "replaced": replaced})
        return key

    def unregister(self, handler_type: str) -> bool:
        with self._lock:
            removed = self._entries.pop(handler_type, None) is not None
        if removed:
            safe_emit(self.event_sink, "handler.unregistered", {"handlerType": handler_type})
        return removed

    def get(self, handler_type: str) -> Optional[Handler]:
        with self._lock:
            entry = self._entries.get(handler_type)
            if entry is None:
                return None
            entry.lookups += 1
            return entry.handler

    def has(self, handler_type: str) -> bool:
        with self._lock:
            return handler_type in self._entries

    def find_handler(self, request: Mapping[str, Any]) -> Optional[Handler]:
        """First registered handler, in registration order, that accepts ``request``."""
        with self._lock:
            handlers = [entry.handler for entry in self._entries.values()]
        for handler in handlers:
            try:
                if handler.can_handle(request):
                    return handler
            except Exception as e:
                logger.warning(f"can_handle raised for {self.type_of(handler)}: {e}")
        return None

    def list_handlers(self) -> List[str]:
        """Registered handler types in registration order."""
        with self._lock:
            return list(self._entries)

    def get_entry(self, handler_type: str) -> Optional[RegistryEntry]:
        with self._lock:
            return self._entries.get(handler_type)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_handlers": len(self._entries),
                "replacements": self._replacements,
                "lookups": {key: entry.lookups for key, entry in self._entries.items()},
                "handlers": list(self._entries),
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, handler_type: object) -> bool:
        with self._lock:
            return handler_type in self._entries
