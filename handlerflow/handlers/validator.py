"""
Validation pipeline for requests, handlers and contexts.

Every entry point returns a :class:`ValidationResult`. Expected problems
become error or warning entries; an unexpected exception inside a validator
is folded into a single error entry instead of propagating.
"""
from __future__ import annotations

import logging
import re
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

from ..config import get_config
from ..error_coordination import HandlerException
from ..events import EventSink, safe_emit
from ..utils.deadline import maybe_await, run_with_deadline
from ..utils.serialization import SerializationError, serialized_size, strict_dumps
from ..validation import ValidationResult
from .context import HandlerContext
from .interface import missing_capabilities
from .request import RequestKind, classify_request

logger = logging.getLogger(__name__)

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?$")


class HandlerValidator:
    """Validates requests before dispatch and handlers after construction.

    Request checks, in order: presence, type tag, allow-list, serialized
    size, per-kind required fields, strict serialization.

    Handler checks, in order: required methods, metadata shape, dependency
    presence (warnings only), health check.
    """

    def __init__(
        self,
        max_request_size: Optional[int] = None,
        allowed_types: Optional[List[str]] = None,
        enable_health_checks: Optional[bool] = None,
        validation_timeout: Optional[float] = None,
        event_sink: Optional[EventSink] = None,
    ):
        """Initialize validator.

        Args:
            max_request_size: Byte limit on the serialized request; defaults to
                ``HANDLERFLOW_MAX_REQUEST_SIZE``
            allowed_types: Accepted request ``type`` values; empty accepts any
            enable_health_checks: Call ``is_healthy`` in :meth:`validate_handler`
            validation_timeout: Budget in seconds for the health check
            event_sink: Receives ``validation.failed`` events
        """
        config = get_config()
        self.max_request_size = max_request_size or config.max_request_size
        self.allowed_types = list(config.allowed_types if allowed_types is None else allowed_types)
        self.enable_health_checks = (
            config.enable_health_checks if enable_health_checks is None else enable_health_checks
        )
        self.validation_timeout = (
            config.validation_timeout if validation_timeout is None else validation_timeout
        )
        self.event_sink = event_sink
        self._lock = Lock()
        self._stats = {
            "requests_validated": 0,
            "handlers_validated": 0,
            "contexts_validated": 0,
            "failures": 0,
            "warnings": 0,
            "internal_errors": 0,
        }

    def validate_request(self, request: Optional[Mapping[str, Any]]) -> ValidationResult:
        """Validate an incoming request.

        Args:
            request: Request mapping, possibly None

        Returns:
            ValidationResult; ``None`` yields exactly one error, "Request is required"
        """
        try:
            result = self._validate_request(request)
        except Exception as e:
            logger.exception("Request validation raised")
            self._bump("internal_errors")
            result = ValidationResult.failure(f"Request validation error: {e}")
        return self._finish("request", "requests_validated", result)

    def _validate_request(self, request: Optional[Mapping[str, Any]]) -> ValidationResult:
        if request is None:
            return ValidationResult.failure("Request is required")
        if not isinstance(request, Mapping):
            return ValidationResult.failure("Request must be a mapping")

        result = ValidationResult.success()

        request_type = request.get("type")
        if "type" in request and not isinstance(request_type, str):
            result.add_error("Request type must be a string")
        elif self.allowed_types and isinstance(request_type, str) and request_type not in self.allowed_types:
            result.add_error(f"Request type not allowed: {request_type}")

        size = serialized_size(request)
        if size > self.max_request_size:
            result.add_error(f"Request size {size} bytes exceeds maximum of {self.max_request_size} bytes")

        for message in self._required_field_errors(request):
            result.add_error(message)

        try:
            strict_dumps(request)
        except SerializationError as e:
            result.add_error(f"Request is not serializable: {e}")

        return result

    @staticmethod
    def _required_field_errors(request: Mapping[str, Any]) -> List[str]:
        kind = classify_request(request)
        if kind == RequestKind.WORKFLOW and not request.get("taskId"):
            return ["Workflow request requires taskId"]
        if kind == RequestKind.COMMAND and request.get("command") is None:
            return ["Command request requires command"]
        if kind == RequestKind.SERVICE:
            errors = []
            if not (request.get("service") or request.get("serviceName")):
                errors.append("Service request requires service")
            if not request.get("serviceMethod"):
                errors.append("Service request requires serviceMethod")
            return errors
        if kind == RequestKind.LEGACY and not (request.get("handlerClass") or request.get("handlerPath")):
            return ["Legacy request requires handlerClass or handlerPath"]
        return []

    async def validate_handler(self, handler: Any, context: Optional[HandlerContext] = None) -> ValidationResult:
        """Validate a built handler.

        Args:
            handler: Handler to check
            context: When given, declared dependencies are looked up in its data

        Returns:
            ValidationResult
        """
        try:
            result = await self._validate_handler(handler, context)
        except Exception as e:
            logger.exception("Handler validation raised")
            self._bump("internal_errors")
            result = ValidationResult.failure(f"Handler validation error: {e}")
        return self._finish("handler", "handlers_validated", result)

    async def _validate_handler(self, handler: Any, context: Optional[HandlerContext]) -> ValidationResult:
        if handler is None:
            return ValidationResult.failure("Handler is required")

        result = ValidationResult.success()
        for method in missing_capabilities(handler):
            result.add_error(f"Handler missing required method: {method}")
        if not result.is_valid:
            return result

        metadata = handler.get_metadata()
        if not isinstance(metadata, Mapping):
            result.add_error("Handler metadata must be a mapping")
            return result
        if not metadata.get("name"):
            result.add_error("Handler metadata must include name")
        version = metadata.get("version")
        if not version:
            result.add_error("Handler metadata must include version")
        elif not SEMVER_PATTERN.match(str(version)):
            result.add_warning(f"Handler version does not follow semantic versioning: {version}")

        for dependency in handler.get_dependencies() or []:
            if context is not None and not context.has(dependency):
                result.add_warning(f"Dependency not available in context: {dependency}")

        if self.enable_health_checks:
            try:
                healthy = await run_with_deadline(
                    maybe_await(handler.is_healthy), self.validation_timeout, "Handler health check"
                )
                if not healthy:
                    result.add_error("Handler health check failed")
            except HandlerException as e:
                result.add_warning(f"Health check error: {e.message}")
            except Exception as e:
                result.add_warning(f"Health check error: {e}")

        return result

    def validate_context(self, context: Any) -> ValidationResult:
        """Validate a handler context before execution."""
        try:
            if not isinstance(context, HandlerContext):
                result = ValidationResult.failure("Context must be a HandlerContext")
            else:
                result = ValidationResult.success()
                if context.get_request() is None:
                    result.add_error("Context must carry a request")
                if not context.get_metadata("taskId"):
                    result.add_warning("Context has no taskId")
        except Exception as e:
            self._bump("internal_errors")
            result = ValidationResult.failure(f"Context validation error: {e}")
        return self._finish("context", "contexts_validated", result)

    def _bump(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            self._stats[counter] += amount

    def _finish(self, target: str, counter: str, result: ValidationResult) -> ValidationResult:
        with self._lock:
            self._stats[counter] += 1
            self._stats["warnings"] += len(result.warnings)
            if not result.is_valid:
                self._stats["failures"] += 1
        if not result.is_valid:
            logger.debug(f"{target} validation failed: {'; '.join(result.errors)}")
            safe_emit(self.event_sink, "validation.failed", {"target": target, "errors": list(result.errors)})
        return result

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
        total = stats["requests_validated"] + stats["handlers_validated"] + stats["contexts_validated"]
        stats["total_validations"] = total
        stats["failure_rate"] = stats["failures"] / total if total else 0.0
        return stats

    def reset_statistics(self) -> None:
        with self._lock:
            for key in self._stats:
                self._stats[key] = 0
