"""
Unified entry point: validate a request, obtain a handler, execute it.

This is the in-process surface callers use instead of talking to the
factory, registry and validator separately. Every call returns a
:class:`HandlerResult`; expected failures never raise.
"""
from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Dict, Mapping, Optional

from ..config import get_config
from ..error_coordination import ErrorCoordinator, HandlerException, error_coordinator
from ..events import EventSink, safe_emit
from ..resolver import ImplementationResolver
from ..utils.deadline import run_with_deadline
from .adapters import CommandHandlerAdapter, LegacyHandlerAdapter, ServiceHandlerAdapter
from .context import HandlerContext
from .factory import HandlerFactory
from .interface import Handler
from .registry import HandlerRegistry
from .result import HandlerResult
from .validator import HandlerValidator

logger = logging.getLogger(__name__)


class UnifiedHandler:
    """Facade over HandlerFactory, HandlerRegistry and HandlerValidator.

    Example:
        >>> unified = UnifiedHandler.with_defaults(legacy_resolver=resolver)
        >>> result = await unified.handle({"handlerClass": "AnalyzeArchitectureHandler", "taskId": "t1"})
        >>> result.is_success()
    """

    def __init__(
        self,
        factory: HandlerFactory,
        registry: Optional[HandlerRegistry] = None,
        validator: Optional[HandlerValidator] = None,
        event_sink: Optional[EventSink] = None,
        execution_timeout: Optional[float] = None,
        enable_validation: Optional[bool] = None,
        errors: Optional[ErrorCoordinator] = None,
    ):
        config = get_config()
        self.factory = factory
        self.registry = registry if registry is not None else HandlerRegistry(event_sink)
        self.validator = validator if validator is not None else HandlerValidator(event_sink=event_sink)
        self.event_sink = event_sink
        self.execution_timeout = config.execution_timeout if execution_timeout is None else execution_timeout
        self.enable_validation = config.enable_validation if enable_validation is None else enable_validation
        self.errors = errors if errors is not None else error_coordinator
        self._lock = Lock()
        self._stats = {
            "requests": 0,
            "successes": 0,
            "failures": 0,
            "validation_failures": 0,
            "total_duration": 0.0,
        }

    @classmethod
    def with_defaults(
        cls,
        legacy_resolver: Optional[ImplementationResolver[Any]] = None,
        command_resolver: Optional[ImplementationResolver[Any]] = None,
        service_container: Optional[Mapping[str, Any]] = None,
        event_sink: Optional[EventSink] = None,
        **kwargs: Any,
    ) -> "UnifiedHandler":
        """Build a facade with the legacy, command and service adapters, in that order."""
        factory = HandlerFactory(
            adapters=[
                LegacyHandlerAdapter(legacy_resolver),
                CommandHandlerAdapter(command_resolver),
                ServiceHandlerAdapter(service_container),
            ],
            event_sink=event_sink,
        )
        return cls(factory, event_sink=event_sink, **kwargs)

    async def handle(self, request: Optional[Mapping[str, Any]], response: Any = None) -> HandlerResult:
        """Validate ``request``, obtain a handler for it and execute it.

        A handler registered under ``request["handlerType"]`` is reused;
        otherwise one is built by the factory and registered.
        """
        start = time.perf_counter()
        with self._lock:
            self._stats["requests"] += 1

        if self.enable_validation:
            validation = self.validator.validate_request(request)
            if not validation.is_valid:
                with self._lock:
                    self._stats["validation_failures"] += 1
                return self._finish(
                    HandlerResult.failure(
                        f"Request validation failed: {'; '.join(validation.errors)}",
                        stage="validation",
                        errors=list(validation.errors),
                        warnings=list(validation.warnings),
                    ),
                    start,
                )

        context = HandlerContext(request=request, response=response)
        try:
            handler = await self.get_handler(request, context)
        except HandlerException as e:
            return self._finish(HandlerResult.from_exception(e, stage="creation"), start)

        return self._finish(await self.execute_handler(handler, context), start)

    async def get_handler(self, request: Mapping[str, Any], context: Optional[HandlerContext] = None) -> Handler:
        """Registered handler named by ``handlerType``, else a factory-built one.

        Raises:
            HandlerException: When the factory cannot build a handler
        """
        handler_type = request.get("handlerType")
        if isinstance(handler_type, str) and handler_type:
            registered = self.registry.get(handler_type)
            if registered is not None:
                return registered

        handler = await self.factory.create_handler(request, context)
        key = handler_type if isinstance(handler_type, str) and handler_type else self.registry.type_of(handler)
        entry = self.registry.get_entry(key) if key else None
        if entry is None or entry.handler is not handler:
            try:
                self.registry.register(handler, key)
            except HandlerException as e:
                logger.warning(f"Could not register handler: {e.message}")
        return handler

    async def execute_handler(self, handler: Handler, context: HandlerContext) -> HandlerResult:
        """Execute ``handler`` under the execution timeout.

        Emits ``handler.executing`` then ``handler.executed`` or ``handler.failed``.
        """
        name = handler.get_metadata().get("name")
        payload = {"handler": name, "handlerId": context.handler_id, "taskId": context.get_metadata("taskId")}
        safe_emit(self.event_sink, "handler.executing", payload)

        try:
            result = await run_with_deadline(
                handler.execute(context), self.execution_timeout, f"Handler {name}"
            )
            if not isinstance(result, HandlerResult):
                result = HandlerResult.coerce(result, handler=name)
        except Exception as e:
            if isinstance(e, HandlerException):
                self.errors.record_error(e, operation="unified_handler.execute")
            logger.error(f"Handler {name} failed: {e}")
            result = HandlerResult.from_exception(e, handler=name)

        result.metadata.setdefault("handlerId", context.handler_id)
        if result.success:
            safe_emit(self.event_sink, "handler.executed", {**payload, "success": True})
        else:
            safe_emit(self.event_sink, "handler.failed", {**payload, "error": result.error})
        return result

    def _finish(self, result: HandlerResult, start: float) -> HandlerResult:
        duration = time.perf_counter() - start
        with self._lock:
            self._stats["successes" if result.success else "failures"] += 1
            self._stats["total_duration"] += duration
        result.metadata.setdefault("duration", duration)
        return result

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
        stats["factory"] = self.factory.get_statistics()
        stats["registry"] = self.registry.get_statistics()
        stats["validator"] = self.validator.get_statistics()
        return stats
