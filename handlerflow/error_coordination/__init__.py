"""Error taxonomy and error bookkeeping.

Quick Start:
-----------
from handlerflow.error_coordination import HandlerException, ErrorType, error_coordinator

try:
    factory_step()
except HandlerException as e:
    error_coordinator.record_error(e, operation="factory.create_handler")

# React to every timeout recorded anywhere in the engine
error_coordinator.register_error_handler(
    ErrorType.TIMEOUT,
    lambda e: logger.warning(f"Timed out: {e.message}")
)
"""
from __future__ import annotations

from .coordinator import ErrorCoordinator, ErrorMetrics, error_coordinator
from .exceptions import (
    ERROR_PROFILES,
    ErrorSeverity,
    ErrorType,
    HandlerException,
    StepNotFoundError,
)

__all__ = [
    # Taxonomy
    "ErrorType",
    "ErrorSeverity",
    "ERROR_PROFILES",
    "HandlerException",
    "StepNotFoundError",

    # Bookkeeping
    "ErrorCoordinator",
    "ErrorMetrics",
    "error_coordinator",
]
