"""Adapter for legacy class-style handlers exposing ``handle(request, response)``."""
from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, List, Mapping, Optional

from ...error_coordination import HandlerException
from ...resolver import ImplementationResolver
from ...utils.deadline import maybe_await
from ..context import HandlerContext
from ..interface import Handler
from ..request import RequestKind
from .base import AdaptedHandler, HandlerAdapter

logger = logging.getLogger(__name__)


def name_from_path(handler_path: str) -> str:
    """Implementation name encoded in a handler path.

    ``"analyze/AnalyzeArchitectureHandler.js"`` and
    ``"analyze.AnalyzeArchitectureHandler"`` both name
    ``AnalyzeArchitectureHandler``.
    """
    tail = handler_path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    for suffix in (".py", ".js"):
        if tail.endswith(suffix):
            tail = tail[: -len(suffix)]
    return tail.rsplit(".", 1)[-1]


class LegacyHandlerAdapter(HandlerAdapter):
    """Wraps legacy handler classes behind the unified Handler interface.

    Implementations are looked up by name in an explicit resolver, or taken
    from a class reference passed directly in ``handlerClass``. Nothing is
    imported from a path string.

    Example:
        >>> resolver = ImplementationResolver("legacy handlers")
        >>> resolver.register("AnalyzeArchitectureHandler", AnalyzeArchitectureHandler)
        >>> adapter = LegacyHandlerAdapter(resolver)
        >>> handler = await adapter.create_handler({"handlerClass": "AnalyzeArchitectureHandler"})
    """

    adapter_type = RequestKind.LEGACY.value

    def __init__(
        self,
        resolver: Optional[ImplementationResolver[Any]] = None,
        dependencies: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ):
        """Initialize legacy adapter.

        Args:
            resolver: Name to legacy implementation map
            dependencies: Keyword arguments passed to legacy constructors
            **kwargs: Forwarded to :class:`HandlerAdapter`
        """
        super().__init__(**kwargs)
        self.resolver: ImplementationResolver[Any] = (
            resolver if resolver is not None else ImplementationResolver("legacy handlers")
        )
        self.dependencies = dict(dependencies or {})

    def _lookup(self, request: Mapping[str, Any]) -> Any:
        """Return the implementation the request refers to, or None."""
        handler_class = request.get("handlerClass")
        if inspect.isclass(handler_class):
            return handler_class
        if isinstance(handler_class, str) and handler_class:
            return self.resolver.resolve(handler_class)
        handler_path = request.get("handlerPath")
        if isinstance(handler_path, str) and handler_path:
            return self.resolver.resolve(name_from_path(handler_path))
        request_type = request.get("type")
        if isinstance(request_type, str) and request_type:
            return self.resolver.resolve(request_type)
        return None

    def can_handle(self, request: Optional[Mapping[str, Any]]) -> bool:
        if not request:
            return False
        return self._lookup(request) is not None

    def resolve_name(self, request: Mapping[str, Any]) -> str:
        handler_class = request.get("handlerClass")
        if inspect.isclass(handler_class):
            return handler_class.__name__
        if isinstance(handler_class, str) and handler_class:
            return handler_class
        handler_path = request.get("handlerPath")
        if isinstance(handler_path, str) and handler_path:
            return name_from_path(handler_path)
        request_type = request.get("type")
        if isinstance(request_type, str) and request_type in self.resolver:
            return request_type
        raise HandlerException.adapter_error(
            "Legacy request needs handlerClass or handlerPath",
            {"adapter": self.name},
        )

    def instantiate(self, implementation: Any) -> Any:
        """Create a legacy instance; non-class implementations are used as-is."""
        if inspect.isclass(implementation):
            return implementation(**self.dependencies)
        return implementation

    async def build_handler(self, request: Mapping[str, Any], context: Optional[HandlerContext]) -> Handler:
        name = self.resolve_name(request)
        implementation = self._lookup(request)
        if implementation is None:
            raise HandlerException.adapter_error(
                f"Legacy handler not found: {name}",
                {"adapter": self.name, "available": self.resolver.names()},
            )

        legacy = self.instantiate(implementation)
        handle = getattr(legacy, "handle", None)
        if not callable(handle):
            raise HandlerException.adapter_error(
                f"Legacy handler {name} has no handle method",
                {"adapter": self.name},
            )

        async def invoke(handler_context: HandlerContext) -> Any:
            return await maybe_await(handle, handler_context.get_request(), handler_context.get_response())

        logger.debug(f"Wrapped legacy handler {name}")
        return AdaptedHandler(
            name=name,
            handler_type=self.adapter_type,
            invoke=invoke,
            adapter=self.name,
            version=str(getattr(legacy, "version", "1.0.0")),
            description=f"Legacy handler {name}",
            dependencies=self._legacy_dependencies(legacy),
            can_handle=self.can_handle,
            metadata={"legacy": True, "handlerPath": request.get("handlerPath")},
            target=legacy,
        )

    @staticmethod
    def _legacy_dependencies(legacy: Any) -> List[str]:
        get_deps = getattr(legacy, "get_dependencies", None)
        if callable(get_deps):
            return list(get_deps())
        return list(getattr(legacy, "dependencies", []) or [])

    def get_supported_types(self) -> List[str]:
        return [self.adapter_type, *self.resolver.names()]

    def get_capabilities(self) -> List[str]:
        return [*super().get_capabilities(), "legacy_handle", "sync_and_async"]

    async def is_healthy(self) -> bool:
        return len(self.resolver) > 0
