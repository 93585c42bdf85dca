"""
Unified step kinds.

Each kind wraps a reference to a handler and forwards execution to it
through a :class:`HandlerContext`. The kinds differ only in their
classification label; the migration classifier maps legacy handler names
onto them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from ..error_coordination import HandlerException
from ..handlers.context import HandlerContext
from ..handlers.result import HandlerResult
from ..utils.deadline import maybe_await
from .base import Step, StepResult, StepStatus
from .context import WorkflowContext

if TYPE_CHECKING:
    from .registry import StepRegistry

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "fallback execution"


class HandlerStep(Step):
    """Step that delegates its work to a wrapped handler.

    The handler may be a unified handler (``execute(context)``) or a legacy
    object exposing ``handle(request, response)``.

    Context keys read:
        request: Request mapping forwarded to the handler
        response: Response object forwarded to the handler
    """

    kind = "HandlerStep"
    category = "generic"

    def __init__(self, handler: Any = None, handler_name: Optional[str] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.handler = handler
        self.handler_name = handler_name or (type(handler).__name__ if handler is not None else None)
        self.metadata.setdefault("category", self.category)
        if self.handler_name:
            self.metadata.setdefault("handler", self.handler_name)

    def _build_request(self, context: WorkflowContext) -> Dict[str, Any]:
        request = dict(context.get("request") or {})
        request.setdefault("type", self.category)
        if context.get("taskId") is not None:
            request.setdefault("taskId", context.get("taskId"))
        return request

    async def run(self, context: WorkflowContext) -> Any:
        if self.handler is None:
            raise HandlerException.dependency_error(
                f"No handler attached to step {self.name}",
                {"step": self.name, "kind": self.kind},
            )

        request = self._build_request(context)
        handler_context = HandlerContext(
            request=request,
            response=context.get("response"),
            data=context.data,
            metadata={"step": self.name, "stepKind": self.kind},
        )

        if callable(getattr(self.handler, "execute", None)):
            raw = await maybe_await(self.handler.execute, handler_context)
        elif callable(getattr(self.handler, "handle", None)):
            raw = await maybe_await(self.handler.handle, request, context.get("response"))
        else:
            raise HandlerException.adapter_error(
                f"Handler {self.handler_name} exposes neither execute nor handle",
                {"step": self.name},
            )

        result = HandlerResult.coerce(raw, handler=self.handler_name)
        if result.is_success():
            context.set_result(self.name, result.data)
        return StepResult(
            success=result.is_success(),
            step_name=self.name,
            data=result.data,
            error=result.get_error_message(),
            status=StepStatus.COMPLETED if result.is_success() else StepStatus.FAILED,
            metadata={"handler": self.handler_name, **result.metadata},
        )

    def get_dependencies(self) -> List[str]:
        """Collaborator names the wrapped handler expects, if it declares any."""
        get_deps = getattr(self.handler, "get_dependencies", None)
        if callable(get_deps):
            return list(get_deps())
        return []


class AnalysisStep(HandlerStep):
    kind = "AnalysisStep"
    category = "analysis"


class RefactoringStep(HandlerStep):
    kind = "RefactoringStep"
    category = "refactoring"


class TestingStep(HandlerStep):
    kind = "TestingStep"
    category = "testing"
    __test__ = False  # not a pytest test class


class DocumentationStep(HandlerStep):
    kind = "DocumentationStep"
    category = "documentation"


class ValidationStep(HandlerStep):
    kind = "ValidationStep"
    category = "validation"


class DeploymentStep(HandlerStep):
    kind = "DeploymentStep"
    category = "deployment"


class SecurityStep(HandlerStep):
    kind = "SecurityStep"
    category = "security"


class OptimizationStep(HandlerStep):
    kind = "OptimizationStep"
    category = "optimization"


class FallbackStep(Step):
    """Stand-in used when a unified step cannot be constructed.

    Returns a canned success-shaped result flagged ``degraded=True`` so
    callers can tell it apart from genuine success.
    """

    kind = "FallbackStep"

    def __init__(self, handler_name: Optional[str] = None, reason: Optional[str] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.handler_name = handler_name
        self.reason = reason
        self.metadata["degraded"] = True

    async def run(self, context: WorkflowContext) -> StepResult:
        logger.warning(f"Running fallback step {self.name} for {self.handler_name or 'unknown handler'}")
        return StepResult(
            success=True,
            step_name=self.name,
            data={"message": FALLBACK_MESSAGE, "handler": self.handler_name},
            degraded=True,
            metadata={"fallback": True, "reason": self.reason},
        )


UNIFIED_STEP_KINDS: Dict[str, Type[HandlerStep]] = {
    cls.kind: cls
    for cls in (
        AnalysisStep,
        RefactoringStep,
        TestingStep,
        DocumentationStep,
        ValidationStep,
        DeploymentStep,
        SecurityStep,
        OptimizationStep,
    )
}


def register_default_kinds(registry: "StepRegistry") -> None:
    """Register the eight unified kinds plus the fallback step."""
    for kind, cls in UNIFIED_STEP_KINDS.items():
        registry.register(kind, cls)
    registry.register(FallbackStep.kind, FallbackStep)
