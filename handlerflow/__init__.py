"""Unified handler execution and legacy handler migration engine.

Quick Start:
-----------
from handlerflow import UnifiedHandler, ImplementationResolver

legacy = ImplementationResolver("legacy handler", {"ReportHandler": ReportHandler})
unified = UnifiedHandler.with_defaults(legacy_resolver=legacy)
result = await unified.handle({"type": "legacy", "handlerClass": "ReportHandler"})
"""

from .config import Config, get_config, reset_config
from .error_coordination import (
    ErrorCoordinator,
    ErrorSeverity,
    ErrorType,
    HandlerException,
    StepNotFoundError,
    error_coordinator,
)
from .events import EventSink, InMemoryEventBus, NullEventSink
from .handlers import (
    CommandHandlerAdapter,
    Handler,
    HandlerAdapter,
    HandlerContext,
    HandlerFactory,
    HandlerRegistry,
    HandlerResult,
    HandlerValidator,
    LegacyHandlerAdapter,
    RequestKind,
    ServiceHandlerAdapter,
    UnifiedHandler,
    classify_request,
)
from .migration import (
    HandlerDescriptor,
    MigrationManager,
    MigrationOptions,
    MigrationResult,
    MigrationSnapshot,
    MigrationStatus,
)
from .resolver import ImplementationResolver
from .steps import (
    FallbackStep,
    Step,
    StepExecutor,
    StepRegistry,
    StepResult,
    StepStatus,
    WorkflowContext,
    register_default_kinds,
)
from .validation import ValidationResult

__version__ = "1.0.0"

__all__ = [
    "__version__",
    # Configuration
    "Config",
    "get_config",
    "reset_config",
    # Errors
    "ErrorType",
    "ErrorSeverity",
    "HandlerException",
    "StepNotFoundError",
    "ErrorCoordinator",
    "error_coordinator",
    # Events
    "EventSink",
    "NullEventSink",
    "InMemoryEventBus",
    # Steps
    "Step",
    "StepResult",
    "StepStatus",
    "StepRegistry",
    "StepExecutor",
    "WorkflowContext",
    "FallbackStep",
    "register_default_kinds",
    # Handlers
    "Handler",
    "HandlerContext",
    "HandlerResult",
    "HandlerAdapter",
    "LegacyHandlerAdapter",
    "CommandHandlerAdapter",
    "ServiceHandlerAdapter",
    "HandlerFactory",
    "HandlerRegistry",
    "HandlerValidator",
    "UnifiedHandler",
    "RequestKind",
    "classify_request",
    # Migration
    "MigrationManager",
    "MigrationOptions",
    "HandlerDescriptor",
    "MigrationResult",
    "MigrationSnapshot",
    "MigrationStatus",
    # Shared
    "ImplementationResolver",
    "ValidationResult",
]
