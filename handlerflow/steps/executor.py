"""
Step execution with deadlines, dependency ordering and rollback.

This module is the public entry point for running steps: a single step under
a timeout budget, or a list of steps in dependency order with reverse-order
rollback of the completed ones when a step fails.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from ..error_coordination import HandlerException
from ..utils.deadline import run_with_deadline
from .base import Step, StepResult, StepStatus
from .context import WorkflowContext
from .registry import StepRegistry

logger = logging.getLogger(__name__)


class StepExecutor:
    """Runs steps and keeps execution counters."""

    def __init__(
        self,
        registry: Optional[StepRegistry] = None,
        default_timeout: Optional[float] = None,
        enable_metrics: bool = True,
    ):
        """Initialize step executor.

        Args:
            registry: Registry used for dependency ordering
            default_timeout: Budget in seconds applied when a call gives none
            enable_metrics: Enable metrics collection
        """
        self.registry = registry if registry is not None else StepRegistry()
        self.default_timeout = default_timeout
        self.enable_metrics = enable_metrics
        self._metrics = {
            "steps_executed": 0,
            "steps_failed": 0,
            "steps_skipped": 0,
            "steps_timed_out": 0,
            "rollbacks": 0,
            "rollback_failures": 0,
            "total_duration": 0.0,
        }

    def _record(self, result: StepResult) -> None:
        if not self.enable_metrics:
            return
        self._metrics["steps_executed"] += 1
        self._metrics["total_duration"] += result.duration
        if result.status == StepStatus.SKIPPED:
            self._metrics["steps_skipped"] += 1
        elif not result.success:
            self._metrics["steps_failed"] += 1

    async def execute_step(
        self,
        step: Step,
        context: Optional[WorkflowContext] = None,
        timeout: Optional[float] = None,
    ) -> StepResult:
        """Execute a single step.

        Args:
            step: Step to execute
            context: Shared context; a fresh one is created when omitted
            timeout: Budget in seconds, falling back to ``default_timeout``

        Returns:
            StepResult; a timeout becomes a failed result, never an exception
        """
        context = context if context is not None else WorkflowContext()
        budget = timeout if timeout is not None else self.default_timeout
        logger.info(f"Executing step: {step.name}")

        start = time.perf_counter()
        try:
            result = await run_with_deadline(step.execute(context), budget, f"Step {step.name}")
        except HandlerException as e:
            if self.enable_metrics:
                self._metrics["steps_timed_out"] += 1
            result = StepResult(
                success=False,
                step_name=step.name,
                error=e.message,
                duration=time.perf_counter() - start,
                status=StepStatus.FAILED,
                metadata={"errorType": e.error_type.value},
            )

        self._record(result)
        return result

    async def execute_sequence(
        self,
        steps: List[Step],
        context: Optional[WorkflowContext] = None,
        timeout: Optional[float] = None,
    ) -> List[StepResult]:
        """Execute ``steps`` in dependency order, stopping at the first failure.

        When a step fails, the steps that already completed are rolled back in
        reverse order. Rollback is best-effort: failures are logged and recorded
        in the failed result's metadata.

        Raises:
            HandlerException: VALIDATION kind if the dependency graph is invalid
        """
        context = context if context is not None else WorkflowContext()
        ordered = self.registry.resolve_execution_order(steps)

        results: List[StepResult] = []
        completed: List[Step] = []
        for step in ordered:
            result = await self.execute_step(step, context, timeout)
            results.append(result)
            if result.success:
                completed.append(step)
                continue

            logger.warning(f"Step {step.name} failed, rolling back {len(completed)} completed step(s)")
            result.metadata["rollback"] = await self._rollback(completed, context)
            break

        return results

    async def _rollback(self, completed: List[Step], context: WorkflowContext) -> List[Dict[str, Any]]:
        outcomes = []
        for step in reversed(completed):
            try:
                outcome = await step.rollback(context)
                ok = outcome.success
                error = outcome.error
            except Exception as e:
                ok = False
                error = str(e)
            if self.enable_metrics:
                self._metrics["rollbacks"] += 1
                if not ok:
                    self._metrics["rollback_failures"] += 1
            if not ok:
                logger.error(f"Rollback failed for {step.name}: {error}")
            outcomes.append({"step": step.name, "success": ok, "error": error})
        return outcomes

    def get_metrics(self) -> Dict[str, Any]:
        """Get executor metrics.

        Returns:
            Metrics dictionary
        """
        return self._metrics.copy()


_default_executor: Optional[StepExecutor] = None


async def execute_step(
    step: Step,
    context: Optional[WorkflowContext] = None,
    timeout: Optional[float] = None,
) -> StepResult:
    """Execute ``step`` with the module-level executor."""
    global _default_executor
    if _default_executor is None:
        _default_executor = StepExecutor()
    return await _default_executor.execute_step(step, context, timeout)
