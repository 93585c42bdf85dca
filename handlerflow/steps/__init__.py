"""Unified steps: base contract, kinds, registry and executor."""

from .base import FunctionStep, Step, StepResult, StepStatus, ValidationRule
from .context import WorkflowContext
from .executor import StepExecutor, execute_step
from .kinds import (
    FALLBACK_MESSAGE,
    UNIFIED_STEP_KINDS,
    AnalysisStep,
    DeploymentStep,
    DocumentationStep,
    FallbackStep,
    HandlerStep,
    OptimizationStep,
    RefactoringStep,
    SecurityStep,
    TestingStep,
    ValidationStep,
    register_default_kinds,
)
from .registry import StepRegistry, StepTemplate

__all__ = [
    "Step",
    "StepResult",
    "StepStatus",
    "ValidationRule",
    "FunctionStep",
    "WorkflowContext",
    "StepRegistry",
    "StepTemplate",
    "StepExecutor",
    "execute_step",
    "HandlerStep",
    "AnalysisStep",
    "RefactoringStep",
    "TestingStep",
    "DocumentationStep",
    "ValidationStep",
    "DeploymentStep",
    "SecurityStep",
    "OptimizationStep",
    "FallbackStep",
    "FALLBACK_MESSAGE",
    "UNIFIED_STEP_KINDS",
    "register_default_kinds",
]
