"""
Step models and the base step contract.

A step is a named unit of work exposing validate, execute and rollback.
Execution failures never escape ``Step.execute``: they are folded into a
:class:`StepResult` so that callers orchestrating many steps keep going.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..utils.deadline import maybe_await
from ..validation import ValidationResult
from .context import WorkflowContext

logger = logging.getLogger(__name__)

DEFAULT_STEP_VERSION = "1.0.0"


class StepStatus(Enum):
    """Individual step execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLED_BACK = "rolled_back"


@dataclass
class ValidationRule:
    """Named async predicate checked before a step runs."""

    name: str
    check: Callable[[WorkflowContext], Awaitable[ValidationResult]]
    description: str = ""


@dataclass
class StepResult:
    """Result from executing a step."""

    success: bool
    step_name: str
    data: Any = None
    error: Optional[str] = None
    duration: float = 0.0
    status: StepStatus = StepStatus.COMPLETED
    validation: Optional[ValidationResult] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    degraded: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "step": self.step_name,
            "data": self.data,
            "error": self.error,
            "duration": self.duration,
            "status": self.status.value,
            "degraded": self.degraded,
            "validation": self.validation.to_dict() if self.validation else None,
            "metadata": dict(self.metadata),
        }


class Step(ABC):
    """Base class for unified steps.

    Subclasses implement :meth:`run`; :meth:`execute` wraps it with rule
    validation, timing and exception capture.

    Attributes:
        name: Unique step name
        description: Human readable description
        kind: Registered step kind this instance was built from
        dependencies: Names of steps that must run first
        validation_rules: Rules checked by :meth:`validate`
        metadata: Free-form metadata, always carrying ``version``
    """

    kind: str = "step"

    def __init__(
        self,
        name: Optional[str] = None,
        description: str = "",
        dependencies: Optional[List[str]] = None,
        validation_rules: Optional[List[ValidationRule]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **options: Any,
    ):
        self.name = name or type(self).__name__
        self.description = description
        self.dependencies: List[str] = list(dependencies or [])
        self.validation_rules: List[ValidationRule] = list(validation_rules or [])
        self.metadata: Dict[str, Any] = {"version": DEFAULT_STEP_VERSION, **(metadata or {})}
        self.options: Dict[str, Any] = dict(options)

    @property
    def version(self) -> str:
        return str(self.metadata.get("version", DEFAULT_STEP_VERSION))

    def add_validation_rule(self, rule: ValidationRule) -> None:
        self.validation_rules.append(rule)

    async def validate(self, context: WorkflowContext) -> ValidationResult:
        """Run every validation rule and merge their outcomes.

        A rule that raises contributes a single error entry instead of
        propagating.
        """
        result = ValidationResult.success()
        for rule in self.validation_rules:
            try:
                result.merge(await rule.check(context))
            except Exception as e:
                logger.warning(f"Validation rule '{rule.name}' of step {self.name} raised: {e}")
                result.add_error(f"Validation rule '{rule.name}' failed: {e}")
        return result

    async def execute(self, context: WorkflowContext) -> StepResult:
        """Validate, then run the step's core logic under a timer.

        Returns:
            StepResult; SKIPPED when validation fails, FAILED when ``run`` raises
        """
        validation = await self.validate(context)
        if not validation.is_valid:
            logger.info(f"Skipping step {self.name}: {'; '.join(validation.errors)}")
            return StepResult(
                success=False,
                step_name=self.name,
                error="Validation failed",
                status=StepStatus.SKIPPED,
                validation=validation,
            )

        start = time.perf_counter()
        try:
            data = await self.run(context)
        except Exception as e:
            duration = time.perf_counter() - start
            logger.error(f"Step {self.name} failed: {e}")
            return StepResult(
                success=False,
                step_name=self.name,
                error=str(e) or type(e).__name__,
                duration=duration,
                status=StepStatus.FAILED,
                validation=validation,
            )

        duration = time.perf_counter() - start
        if isinstance(data, StepResult):
            data.duration = duration
            data.validation = data.validation or validation
            return data

        context.set_result(self.name, data)
        return StepResult(
            success=True,
            step_name=self.name,
            data=data,
            duration=duration,
            validation=validation,
        )

    @abstractmethod
    async def run(self, context: WorkflowContext) -> Any:
        """Core logic of the step. May raise; :meth:`execute` captures it."""

    async def rollback(self, context: WorkflowContext) -> StepResult:
        """Undo the step's effects. The default does nothing and succeeds."""
        return StepResult(success=True, step_name=self.name, status=StepStatus.ROLLED_BACK)

    def get_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "description": self.description,
            "dependencies": list(self.dependencies),
            **self.metadata,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, kind={self.kind!r})"


class FunctionStep(Step):
    """Step whose core logic is a plain callable taking the context."""

    kind = "function"

    def __init__(self, function: Callable[[WorkflowContext], Any], **kwargs: Any):
        super().__init__(**kwargs)
        self.function = function

    async def run(self, context: WorkflowContext) -> Any:
        return await maybe_await(self.function, context)
