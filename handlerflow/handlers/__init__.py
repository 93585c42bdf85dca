"""Unified handler interface, adapters, factory, registry and validation."""

from .adapters import (
    AdaptedHandler,
    CommandHandlerAdapter,
    HandlerAdapter,
    LegacyHandlerAdapter,
    ServiceHandlerAdapter,
)
from .context import HandlerContext
from .factory import HandlerFactory
from .interface import REQUIRED_HANDLER_METHODS, Handler, missing_capabilities
from .registry import HandlerRegistry, RegistryEntry
from .request import RequestKind, classify_request, request_type
from .result import HandlerResult
from .unified import UnifiedHandler
from .validator import HandlerValidator

__all__ = [
    "Handler",
    "REQUIRED_HANDLER_METHODS",
    "missing_capabilities",
    "HandlerContext",
    "HandlerResult",
    "RequestKind",
    "classify_request",
    "request_type",
    "HandlerAdapter",
    "AdaptedHandler",
    "LegacyHandlerAdapter",
    "CommandHandlerAdapter",
    "ServiceHandlerAdapter",
    "HandlerFactory",
    "HandlerRegistry",
    "RegistryEntry",
    "HandlerValidator",
    "UnifiedHandler",
]
