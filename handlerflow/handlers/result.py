"""Outcome shape returned by every handler execution."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..error_coordination import HandlerException


@dataclass
class HandlerResult:
    """Result of a handler execution.

    Attributes:
        success: Whether the handler completed its work
        data: Payload produced on success
        error: Error message on failure
        metadata: Diagnostic details (handler name, adapter, duration, ...)
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def ok(cls, data: Any = None, **metadata: Any) -> "HandlerResult":
        return cls(success=True, data=data, metadata=dict(metadata))

    @classmethod
    def failure(cls, error: str, **metadata: Any) -> "HandlerResult":
        return cls(success=False, error=error, metadata=dict(metadata))

    @classmethod
    def from_exception(cls, error: Exception, **metadata: Any) -> "HandlerResult":
        """Build a failed result from an exception, keeping its kind if it has one."""
        if isinstance(error, HandlerException):
            metadata.setdefault("errorType", error.error_type.value)
            metadata.setdefault("recoverable", error.recoverable)
            message = error.message
        else:
            metadata.setdefault("errorType", type(error).__name__)
            message = str(error) or type(error).__name__
        return cls(success=False, error=message, metadata=dict(metadata))

    @classmethod
    def coerce(cls, value: Any, **metadata: Any) -> "HandlerResult":
        """Normalize whatever a handler returned into a HandlerResult.

        Dicts shaped like ``{"success": ..., "data"/"error": ...}`` are
        unpacked; any other value counts as successful data.
        """
        if isinstance(value, HandlerResult):
            value.metadata = {**metadata, **value.metadata}
            return value
        if isinstance(value, dict) and isinstance(value.get("success"), bool):
            return cls(
                success=value["success"],
                data=value.get("data", value.get("result")),
                error=value.get("error"),
                metadata={**metadata, **dict(value.get("metadata") or {})},
            )
        return cls(success=True, data=value, metadata=dict(metadata))

    def is_success(self) -> bool:
        return self.success

    def get_error_message(self) -> Optional[str]:
        return self.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }
