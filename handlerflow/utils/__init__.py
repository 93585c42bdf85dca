"""Utility modules for the handler engine."""

from .deadline import maybe_await, run_with_deadline
from .logging_factory import LoggingFactory, get_logger
from .serialization import SerializationError, options_key, serialized_size, strict_dumps

__all__ = [
    "LoggingFactory",
    "SerializationError",
    "get_logger",
    "maybe_await",
    "options_key",
    "run_with_deadline",
    "serialized_size",
    "strict_dumps",
]
