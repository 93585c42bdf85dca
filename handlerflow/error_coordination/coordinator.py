"""Error bookkeeping for engine operations.

The coordinator never decides control flow: components capture failures into
results themselves and report them here so that error rates, per-kind counts
and a bounded history are available for statistics and health reporting.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from .exceptions import ErrorSeverity, ErrorType, HandlerException

logger = logging.getLogger(__name__)


@dataclass
class ErrorMetrics:
    """Track error metrics for one operation."""
    total_errors: int = 0
    errors_by_type: Dict[str, int] = field(default_factory=dict)
    errors_by_severity: Dict[str, int] = field(default_factory=dict)
    error_rate: float = 0.0  # errors per minute, from the last interval
    last_error: Optional[datetime] = None


class ErrorCoordinator:
    """Central error recording for factories, validators and the migration manager."""

    def __init__(self, history_size: int = 1000):
        self.error_metrics: Dict[str, ErrorMetrics] = {}
        self.error_handlers: Dict[ErrorType, List[Callable[[HandlerException], Any]]] = {}
        self._error_history = deque(maxlen=history_size)
        self._lock = Lock()

    def register_error_handler(
        self,
        error_type: ErrorType,
        handler: Callable[[HandlerException], Any]
    ):
        """Register a callback invoked for every recorded error of ``error_type``."""
        with self._lock:
            self.error_handlers.setdefault(error_type, []).append(handler)
        logger.info(f"Registered handler for {error_type.value} errors")

    def record_error(
        self,
        error: Exception,
        operation: str,
        error_type: Optional[ErrorType] = None,
    ) -> HandlerException:
        """Record an error for ``operation`` and return it as a HandlerException.

        Plain exceptions are wrapped using ``error_type`` (EXECUTION by default)
        so that every recorded error has a kind and severity.
        """
        if isinstance(error, HandlerException):
            wrapped = error
        else:
            wrapped = HandlerException(
                str(error) or type(error).__name__,
                error_type or ErrorType.EXECUTION,
                {"exception": type(error).__name__},
            )

        with self._lock:
            self._update_metrics(operation, wrapped)
            self._error_history.append({
                'timestamp': wrapped.timestamp,
                'operation': operation,
                'error': wrapped.message,
                'type': wrapped.error_type.value,
                'severity': wrapped.severity.name,
            })
            handlers = list(self.error_handlers.get(wrapped.error_type, []))

        if wrapped.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            logger.warning(f"{operation}: {wrapped.error_type.value} error: {wrapped.message}")
        else:
            logger.debug(f"{operation}: {wrapped.error_type.value} error: {wrapped.message}")

        for handler in handlers:
            try:
                handler(wrapped)
            except Exception as handler_error:
                logger.error(f"Error handler failed: {handler_error}")

        return wrapped

    def _update_metrics(self, operation: str, error: HandlerException):
        """Update error metrics for operation. Caller holds the lock."""
        metrics = self.error_metrics.setdefault(operation, ErrorMetrics())
        metrics.total_errors += 1

        kind = error.error_type.value
        metrics.errors_by_type[kind] = metrics.errors_by_type.get(kind, 0) + 1
        severity = error.severity.name
        metrics.errors_by_severity[severity] = metrics.errors_by_severity.get(severity, 0) + 1

        now = datetime.now()
        if metrics.last_error:
            time_diff = (now - metrics.last_error).total_seconds()
            if time_diff > 0:
                metrics.error_rate = 60.0 / time_diff
        metrics.last_error = now

    def get_recent_errors(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Return the most recent errors, newest last."""
        with self._lock:
            return list(self._error_history)[-limit:]

    def get_error_summary(self) -> Dict[str, Any]:
        """Summarize recorded errors per operation."""
        with self._lock:
            return {
                "total_errors": sum(m.total_errors for m in self.error_metrics.values()),
                "operations": {
                    op: {
                        "total_errors": m.total_errors,
                        "errors_by_type": dict(m.errors_by_type),
                        "errors_by_severity": dict(m.errors_by_severity),
                        "error_rate": m.error_rate,
                        "last_error": m.last_error.isoformat() if m.last_error else None,
                    }
                    for op, m in self.error_metrics.items()
                },
            }

    def reset(self) -> None:
        """Forget all recorded errors."""
        with self._lock:
            self.error_metrics.clear()
            self._error_history.clear()


# Process-wide coordinator used when components are not given their own
error_coordinator = ErrorCoordinator()
