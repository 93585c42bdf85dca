"""
Adapter base class and the closure-backed handler adapters produce.

An adapter recognizes one request calling convention and builds a
:class:`Handler` for it. Built handlers are cached per adapter under
``(implementation name, request type, serialized options)``.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ...cache import BoundedCache
from ...config import get_config
from ...error_coordination import HandlerException
from ...utils.serialization import options_key
from ...validation import ValidationResult
from ..context import HandlerContext
from ..interface import Handler
from ..request import request_type
from ..result import HandlerResult

logger = logging.getLogger(__name__)

Invoker = Callable[[HandlerContext], Awaitable[Any]]


def make_cache_key(implementation_name: str, request: Mapping[str, Any]) -> str:
    """Flatten the composite cache key into a single string."""
    return "|".join((implementation_name, request_type(request), options_key(request.get("options"))))


class AdaptedHandler(Handler):
    """Handler built by an adapter around a foreign implementation.

    ``invoke`` performs the foreign call; any exception it raises is mapped to
    a failed :class:`HandlerResult` and never escapes :meth:`execute`.
    """

    def __init__(
        self,
        name: str,
        handler_type: str,
        invoke: Invoker,
        adapter: str,
        version: str = "1.0.0",
        description: str = "",
        dependencies: Optional[List[str]] = None,
        can_handle: Optional[Callable[[Optional[Mapping[str, Any]]], bool]] = None,
        validate: Optional[Callable[[HandlerContext], ValidationResult]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        target: Any = None,
    ):
        self.name = name
        self.handler_type = handler_type
        self.adapter = adapter
        self.version = version
        self.description = description
        self.target = target
        self._invoke = invoke
        self._dependencies = list(dependencies or [])
        self._can_handle = can_handle
        self._validate = validate
        self._extra_metadata = dict(metadata or {})
        self._lock = Lock()
        self._stats = {
            "executions": 0,
            "successes": 0,
            "failures": 0,
            "total_duration": 0.0,
            "last_execution": None,
        }
        self._initialized = False

    async def execute(self, context: HandlerContext) -> HandlerResult:
        start = time.perf_counter()
        base_metadata = {"handler": self.name, "adapter": self.adapter, "type": self.handler_type}
        try:
            result = HandlerResult.coerce(await self._invoke(context), **base_metadata)
        except Exception as e:
            logger.error(f"{self.adapter} handler {self.name} failed: {e}")
            result = HandlerResult.from_exception(e, **base_metadata)

        duration = time.perf_counter() - start
        result.metadata.setdefault("duration", duration)
        with self._lock:
            self._stats["executions"] += 1
            self._stats["successes" if result.success else "failures"] += 1
            self._stats["total_duration"] += duration
            self._stats["last_execution"] = datetime.now()
        return result

    def get_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "type": self.handler_type,
            "version": self.version,
            "adapter": self.adapter,
            **self._extra_metadata,
        }

    async def validate(self, context: HandlerContext) -> ValidationResult:
        if self._validate is None:
            return ValidationResult.success()
        return self._validate(context)

    def can_handle(self, request: Optional[Mapping[str, Any]]) -> bool:
        if self._can_handle is None:
            return request is not None
        return self._can_handle(request)

    def get_dependencies(self) -> List[str]:
        return list(self._dependencies)

    def get_version(self) -> str:
        return self.version

    def get_type(self) -> str:
        return self.handler_type

    async def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        self._initialized = True

    async def cleanup(self) -> None:
        self._initialized = False

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
        executions = stats["executions"]
        stats["average_duration"] = stats["total_duration"] / executions if executions else 0.0
        stats["adapter"] = self.adapter
        return stats

    def __repr__(self) -> str:
        return f"AdaptedHandler(name={self.name!r}, adapter={self.adapter!r})"


class HandlerAdapter(ABC):
    """Base class for adapters translating a request convention into a Handler.

    Subclasses implement :meth:`can_handle`, :meth:`resolve_name` and
    :meth:`build_handler`; :meth:`create_handler` adds caching and error
    wrapping on top.

    Attributes:
        adapter_type: Request kind this adapter serves (a ``RequestKind`` value)
        version: Adapter version
    """

    adapter_type: str = "generic"
    version: str = "1.0.0"

    def __init__(
        self,
        name: Optional[str] = None,
        enable_caching: Optional[bool] = None,
        cache_size: Optional[int] = None,
        cache: Optional[BoundedCache[Handler]] = None,
    ):
        """Initialize adapter.

        Args:
            name: Adapter name, defaults to the class name
            enable_caching: Cache built handlers; defaults to ``ENABLE_CACHING``
            cache_size: Capacity of the adapter cache; defaults to ``HANDLERFLOW_ADAPTER_CACHE_SIZE``
            cache: Cache instance to use instead of a private one
        """
        config = get_config()
        self.name = name or type(self).__name__
        self.enable_caching = config.enable_caching if enable_caching is None else enable_caching
        if cache is None:
            cache = BoundedCache(cache_size or config.adapter_cache_size, name=f"{self.name}.cache")
        self._cache: BoundedCache[Handler] = cache
        self._initialized = False
        self._created = 0
        self._failures = 0

    @abstractmethod
    def can_handle(self, request: Optional[Mapping[str, Any]]) -> bool:
        """Whether this adapter recognizes the request's calling convention."""

    @abstractmethod
    def resolve_name(self, request: Mapping[str, Any]) -> str:
        """Name of the implementation the request refers to.

        Raises:
            HandlerException: ADAPTER kind when no name can be determined
        """

    @abstractmethod
    async def build_handler(self, request: Mapping[str, Any], context: Optional[HandlerContext]) -> Handler:
        """Construct a handler for ``request``."""

    def cache_key(self, request: Mapping[str, Any]) -> str:
        return make_cache_key(self.resolve_name(request), request)

    async def create_handler(
        self,
        request: Mapping[str, Any],
        context: Optional[HandlerContext] = None,
        use_cache: bool = True,
    ) -> Handler:
        """Build, or fetch from cache, a handler for ``request``.

        Args:
            request: Request to build a handler for
            context: Optional handler context passed to construction
            use_cache: Consult and fill the adapter cache. Callers that keep
                their own cache, like HandlerFactory, pass False.

        Raises:
            HandlerException: ADAPTER kind when the request cannot be handled or
                construction fails
        """
        if not self.can_handle(request):
            raise HandlerException.adapter_error(
                f"{self.name} cannot handle request of type {request_type(request)}",
                {"adapter": self.name},
            )

        key = self.cache_key(request)
        caching = self.enable_caching and use_cache
        if caching:
            cached = self._cache.lookup(key)
            if cached is not None:
                logger.debug(f"{self.name}: cache hit for {key}")
                return cached

        try:
            handler = await self.build_handler(request, context)
        except HandlerException:
            self._failures += 1
            raise
        except Exception as e:
            self._failures += 1
            raise HandlerException.adapter_error(
                f"{self.name} failed to create handler: {e}",
                {"adapter": self.name, "key": key},
            ) from e

        self._created += 1
        if caching:
            self._cache.put(key, handler)
        return handler

    def get_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.adapter_type,
            "version": self.version,
            "supportedTypes": self.get_supported_types(),
            "capabilities": self.get_capabilities(),
        }

    def get_type(self) -> str:
        return self.adapter_type

    def get_version(self) -> str:
        return self.version

    async def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        self._initialized = True

    async def cleanup(self) -> None:
        self._cache.clear()
        self._initialized = False

    def validate_request(self, request: Optional[Mapping[str, Any]]) -> ValidationResult:
        if request is None:
            return ValidationResult.failure("Request is required")
        if not self.can_handle(request):
            return ValidationResult.failure(f"{self.name} cannot handle this request")
        try:
            self.resolve_name(request)
        except HandlerException as e:
            return ValidationResult.failure(e.message)
        return ValidationResult.success()

    def get_supported_types(self) -> List[str]:
        return [self.adapter_type]

    def get_capabilities(self) -> List[str]:
        return ["create_handler", "caching"] if self.enable_caching else ["create_handler"]

    async def is_healthy(self) -> bool:
        return True

    def clear_cache(self) -> int:
        return self._cache.clear()

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.adapter_type,
            "handlers_created": self._created,
            "failures": self._failures,
            "cache": self._cache.get_statistics(),
            "cache_enabled": self.enable_caching,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
