"""Lifecycle event sink.

Components publish fire-and-forget notifications keyed by event name, such as
``migration.started``, ``handler.created`` or ``validation.failed``. A sink
must never let a subscriber failure reach the publisher.
"""
from __future__ import annotations

import logging
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], Any]


class EventSink(Protocol):
    """Protocol for lifecycle event sinks."""

    def emit(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Publish an event. Must not raise."""
        ...


class NullEventSink:
    """Sink that drops every event."""

    def emit(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        return None


class InMemoryEventBus:
    """In-memory event bus with per-event and wildcard subscribers.

    Every emitted event is also kept in a bounded history so tests and
    diagnostics can inspect what happened.
    """

    def __init__(self, history_size: int = 500) -> None:
        self._subscribers: Dict[str, List[EventCallback]] = {}
        self._history: List[Dict[str, Any]] = []
        self._history_size = history_size
        self._lock = Lock()

    def subscribe(self, event_name: str, callback: EventCallback) -> None:
        """Subscribe a callback to an event name, or to every event with ``*``.

        Args:
            event_name: Event name to subscribe to
            callback: Called as ``callback(event_name, payload)``
        """
        with self._lock:
            self._subscribers.setdefault(event_name, []).append(callback)

    def unsubscribe(self, event_name: str, callback: EventCallback) -> bool:
        with self._lock:
            callbacks = self._subscribers.get(event_name, [])
            if callback in callbacks:
                callbacks.remove(callback)
                return True
            return False

    def emit(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Publish an event to all subscribers of its name and of ``*``."""
        payload = dict(payload or {})
        with self._lock:
            self._history.append({"event": event_name, "payload": payload, "timestamp": datetime.now()})
            if len(self._history) > self._history_size:
                del self._history[: len(self._history) - self._history_size]
            callbacks = list(self._subscribers.get(event_name, [])) + list(self._subscribers.get("*", []))

        for callback in callbacks:
            try:
                callback(event_name, payload)
            except Exception as e:
                logger.error(f"Event subscriber failed for '{event_name}': {e}")

    def get_history(self, event_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return recorded events, optionally filtered by name."""
        with self._lock:
            events = list(self._history)
        if event_name is None:
            return events
        return [event for event in events if event["event"] == event_name]

    def event_names(self) -> List[str]:
        """Names of recorded events in emission order."""
        with self._lock:
            return [event["event"] for event in self._history]

    def clear(self) -> None:
        with self._lock:
            self._history.clear()


def safe_emit(sink: Optional[EventSink], event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
    """Emit through ``sink`` swallowing and logging sink failures.

    Third-party sinks may not honour the no-raise contract; publishers call
    this instead of ``sink.emit`` directly.
    """
    if sink is None:
        return
    try:
        sink.emit(event_name, payload or {})
    except Exception as e:
        logger.error(f"Event sink failed for '{event_name}': {e}")
