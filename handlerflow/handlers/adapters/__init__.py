"""Adapters turning heterogeneous request conventions into unified handlers."""

from .base import AdaptedHandler, HandlerAdapter, make_cache_key
from .command import CommandHandlerAdapter, command_type_of
from .legacy import LegacyHandlerAdapter, name_from_path
from .service import DEFAULT_METHOD_MAP, DEFAULT_SERVICE_MAP, ServiceHandlerAdapter

__all__ = [
    "AdaptedHandler",
    "HandlerAdapter",
    "make_cache_key",
    "LegacyHandlerAdapter",
    "name_from_path",
    "CommandHandlerAdapter",
    "command_type_of",
    "ServiceHandlerAdapter",
    "DEFAULT_SERVICE_MAP",
    "DEFAULT_METHOD_MAP",
]
