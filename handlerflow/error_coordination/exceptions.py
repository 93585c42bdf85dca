"""Kinded exception type shared by every engine component.

Each :class:`ErrorType` carries a fixed severity and recoverability. Expected
failures are reported through result objects; ``HandlerException`` is raised
only across internal seams (factory, registry, manager set-up) and is folded
back into a result at the public boundary.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for coordination."""
    LOW = 1      # Recoverable, retry immediately
    MEDIUM = 2   # Recoverable with backoff
    HIGH = 3     # Operation-level failure
    CRITICAL = 4  # Cascade prevention needed


class ErrorType(Enum):
    """Kinds of engine errors."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    CONTEXT = "context"
    ADAPTER = "adapter"
    REGISTRY = "registry"
    FACTORY = "factory"
    EXECUTION = "execution"
    MIGRATION = "migration"
    TIMEOUT = "timeout"
    RESOURCE = "resource"
    DEPENDENCY = "dependency"
    HEALTH_CHECK = "health_check"


# kind -> (severity, recoverable)
ERROR_PROFILES: Dict[ErrorType, tuple[ErrorSeverity, bool]] = {
    ErrorType.VALIDATION: (ErrorSeverity.LOW, True),
    ErrorType.CONFIGURATION: (ErrorSeverity.LOW, True),
    ErrorType.CONTEXT: (ErrorSeverity.MEDIUM, True),
    ErrorType.ADAPTER: (ErrorSeverity.MEDIUM, True),
    ErrorType.REGISTRY: (ErrorSeverity.MEDIUM, True),
    ErrorType.FACTORY: (ErrorSeverity.MEDIUM, True),
    ErrorType.EXECUTION: (ErrorSeverity.HIGH, False),
    ErrorType.MIGRATION: (ErrorSeverity.HIGH, False),
    ErrorType.TIMEOUT: (ErrorSeverity.HIGH, True),
    ErrorType.RESOURCE: (ErrorSeverity.HIGH, True),
    ErrorType.DEPENDENCY: (ErrorSeverity.HIGH, False),
    ErrorType.HEALTH_CHECK: (ErrorSeverity.HIGH, False),
}


class HandlerException(Exception):
    """Engine error with a kind, severity and recoverability.

    Attributes:
        error_type: The :class:`ErrorType` of this error
        severity: Severity derived from the kind
        recoverable: Whether the caller may retry the operation
        context: Free-form diagnostic details
        timestamp: When the error was created
    """

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.EXECUTION,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.severity, self.recoverable = ERROR_PROFILES[error_type]
        self.context = dict(context or {})
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for results and event payloads."""
        return {
            "message": self.message,
            "type": self.error_type.value,
            "severity": self.severity.name,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        return f"HandlerException({self.error_type.value}: {self.message!r})"

    @classmethod
    def validation_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.VALIDATION, context)

    @classmethod
    def configuration_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.CONFIGURATION, context)

    @classmethod
    def context_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.CONTEXT, context)

    @classmethod
    def adapter_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.ADAPTER, context)

    @classmethod
    def registry_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.REGISTRY, context)

    @classmethod
    def factory_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.FACTORY, context)

    @classmethod
    def execution_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.EXECUTION, context)

    @classmethod
    def migration_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.MIGRATION, context)

    @classmethod
    def timeout_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.TIMEOUT, context)

    @classmethod
    def resource_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.RESOURCE, context)

    @classmethod
    def dependency_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.DEPENDENCY, context)

    @classmethod
    def health_check_error(cls, message: str, context: Optional[Dict[str, Any]] = None) -> "HandlerException":
        return cls(message, ErrorType.HEALTH_CHECK, context)


class StepNotFoundError(HandlerException):
    """Raised by the step registry when a kind or template is not registered."""

    def __init__(self, name: str, available: Optional[list] = None) -> None:
        available = sorted(available or [])
        super().__init__(
            f"Step '{name}' not found. Available: {', '.join(available) or 'none'}",
            ErrorType.REGISTRY,
            {"step": name, "available": available},
        )
        self.step_name = name
