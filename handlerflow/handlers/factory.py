"""
Handler factory: request classification, adapter selection and caching.

Pipeline per request:
    1. classify the request into a RequestKind (ordered field precedence)
    2. pick the adapter registered for that kind; only when none is
       registered, the first adapter in registration order whose
       ``can_handle`` accepts the request
    3. delegate construction to the adapter, bypassing its own cache
    4. optionally check the produced handler's structure
    5. cache it under (implementation name, request type, options), FIFO
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

from ..cache import BoundedCache
from ..config import get_config
from ..error_coordination import ErrorCoordinator, HandlerException, error_coordinator
from ..events import EventSink, safe_emit
from .adapters.base import HandlerAdapter
from .context import HandlerContext
from .interface import Handler, missing_capabilities
from .request import RequestKind, classify_request, request_type

logger = logging.getLogger(__name__)


class HandlerFactory:
    """Builds unified handlers from heterogeneous requests.

    Example:
        >>> factory = HandlerFactory()
        >>> factory.register_adapter(LegacyHandlerAdapter(resolver))
        >>> handler = await factory.create_handler({"handlerClass": "AnalyzeArchitectureHandler"})
    """

    def __init__(
        self,
        adapters: Optional[List[HandlerAdapter]] = None,
        cache_size: Optional[int] = None,
        enable_caching: Optional[bool] = None,
        enable_validation: Optional[bool] = None,
        event_sink: Optional[EventSink] = None,
        errors: Optional[ErrorCoordinator] = None,
    ):
        """Initialize handler factory.

        Args:
            adapters: Adapters to register, in order
            cache_size: Handler cache capacity; defaults to ``HANDLERFLOW_HANDLER_CACHE_SIZE``
            enable_caching: Cache built handlers; defaults to ``ENABLE_CACHING``
            enable_validation: Structurally check built handlers; defaults to ``ENABLE_VALIDATION``
            event_sink: Receives ``handler.created`` events
            errors: Error coordinator recording construction failures
        """
        config = get_config()
        self.enable_caching = config.enable_caching if enable_caching is None else enable_caching
        self.enable_validation = config.enable_validation if enable_validation is None else enable_validation
        self.event_sink = event_sink
        self.errors = errors if errors is not None else error_coordinator

        self._adapters: "OrderedDict[str, HandlerAdapter]" = OrderedDict()
        self._cache: BoundedCache[Handler] = BoundedCache(
            cache_size or config.handler_cache_size, name="handler_factory.cache"
        )
        self._lock = Lock()
        self._stats: Dict[str, Any] = {
            "handlers_created": 0,
            "cache_hits": 0,
            "failures": 0,
            "by_kind": {},
            "by_adapter": {},
        }

        for adapter in adapters or []:
            self.register_adapter(adapter)

    # ----- adapters ------------------------------------------------------------

    def register_adapter(self, adapter: HandlerAdapter, name: Optional[str] = None) -> None:
        """Register ``adapter`` under ``name`` (default: its type).

        An adapter registered under a RequestKind value is the direct match
        for that kind. Kinds without a registered adapter are served by the
        first adapter whose ``can_handle`` accepts the request.
        """
        key = name or adapter.get_type()
        with self._lock:
            if key in self._adapters:
                logger.info(f"Replacing adapter {key}")
            self._adapters[key] = adapter
        logger.debug(f"Registered adapter {key} ({type(adapter).__name__})")

    def unregister_adapter(self, name: str) -> bool:
        with self._lock:
            return self._adapters.pop(name, None) is not None

    def get_adapter(self, name: str) -> Optional[HandlerAdapter]:
        with self._lock:
            return self._adapters.get(name)

    def list_adapters(self) -> List[str]:
        """Adapter names in registration order."""
        with self._lock:
            return list(self._adapters)

    def select_adapter(self, request: Mapping[str, Any], kind: Optional[RequestKind] = None) -> Optional[HandlerAdapter]:
        """Adapter for ``request``.

        The adapter registered for the request's kind always wins; only when
        no adapter is registered for that kind is the first accepting adapter,
        in registration order, used.

        Returns:
            The selected adapter, or None when no adapter accepts the request

        Raises:
            HandlerException: FACTORY kind when the kind's adapter rejects the request
        """
        kind = kind or classify_request(request)
        with self._lock:
            direct = self._adapters.get(kind.value)
            ordered = list(self._adapters.values())

        if direct is not None:
            if direct.can_handle(request):
                return direct
            raise HandlerException.factory_error(
                f"{direct.name} cannot handle {kind.value} request of type {request_type(request)}",
                {"kind": kind.value, "adapter": direct.name},
            )
        for adapter in ordered:
            if adapter.can_handle(request):
                return adapter
        return None

    # ----- creation ------------------------------------------------------------

    async def create_handler(
        self,
        request: Mapping[str, Any],
        context: Optional[HandlerContext] = None,
    ) -> Handler:
        """Create, or fetch from cache, a handler for ``request``.

        Raises:
            HandlerException: FACTORY kind when no adapter accepts the request or
                the built handler fails structural validation; ADAPTER kind when
                the adapter fails
        """
        if request is None:
            raise HandlerException.factory_error("Request is required")

        kind = classify_request(request)
        try:
            adapter = self.select_adapter(request, kind)
            if adapter is None:
                raise HandlerException.factory_error(
                    f"No adapter found for request type {request_type(request)}",
                    {"kind": kind.value, "adapters": self.list_adapters()},
                )

            key = adapter.cache_key(request)
            if self.enable_caching:
                cached = self._cache.lookup(key)
                if cached is not None:
                    with self._lock:
                        self._stats["cache_hits"] += 1
                    return cached

            handler = await adapter.create_handler(request, context, use_cache=False)
            if self.enable_validation:
                self._check_structure(handler, request)
        except HandlerException as e:
            self._record_failure(e)
            raise
        except Exception as e:
            error = HandlerException.factory_error(f"Handler creation failed: {e}", {"kind": kind.value})
            self._record_failure(error)
            raise error from e

        if self.enable_caching:
            self._cache.put(key, handler)

        with self._lock:
            self._stats["handlers_created"] += 1
            self._stats["by_kind"][kind.value] = self._stats["by_kind"].get(kind.value, 0) + 1
            self._stats["by_adapter"][adapter.name] = self._stats["by_adapter"].get(adapter.name, 0) + 1

        metadata = handler.get_metadata()
        logger.info(f"Created handler {metadata.get('name')} via {adapter.name}")
        safe_emit(self.event_sink, "handler.created", {
            "handler": metadata.get("name"),
            "adapter": adapter.name,
            "kind": kind.value,
            "cacheKey": key,
        })
        return handler

    def _check_structure(self, handler: Any, request: Mapping[str, Any]) -> None:
        missing = missing_capabilities(handler)
        if missing:
            raise HandlerException.factory_error(
                f"Handler is missing required methods: {', '.join(missing)}",
                {"missing": missing},
            )
        metadata = handler.get_metadata()
        if not isinstance(metadata, Mapping) or not metadata.get("name") or not metadata.get("version"):
            raise HandlerException.factory_error("Handler metadata must include name and version")
        if not handler.can_handle(request):
            raise HandlerException.factory_error(
                f"Handler {metadata.get('name')} cannot handle the request it was built for"
            )

    def _record_failure(self, error: HandlerException) -> None:
        with self._lock:
            self._stats["failures"] += 1
        self.errors.record_error(error, operation="handler_factory.create_handler")

    # ----- housekeeping --------------------------------------------------------

    def clear_cache(self) -> int:
        """Clear the factory cache and every adapter cache.

        Returns:
            Number of factory cache entries cleared
        """
        with self._lock:
            adapters = list(self._adapters.values())
        for adapter in adapters:
            adapter.clear_cache()
        return self._cache.clear()

    def is_cached(self, request: Mapping[str, Any]) -> bool:
        try:
            adapter = self.select_adapter(request)
            if adapter is None:
                return False
            return adapter.cache_key(request) in self._cache
        except HandlerException:
            return False

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats = {
                "handlers_created": self._stats["handlers_created"],
                "cache_hits": self._stats["cache_hits"],
                "failures": self._stats["failures"],
                "by_kind": dict(self._stats["by_kind"]),
                "by_adapter": dict(self._stats["by_adapter"]),
                "adapters": list(self._adapters),
            }
        stats["cache"] = self._cache.get_statistics()
        return stats
