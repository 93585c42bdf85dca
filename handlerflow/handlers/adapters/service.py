"""Adapter for service-style handlers: ``service.method(request, response)``."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ...error_coordination import HandlerException
from ...utils.deadline import maybe_await
from ...validation import ValidationResult
from ..context import HandlerContext
from ..interface import Handler
from ..request import RequestKind
from .base import AdaptedHandler, HandlerAdapter

logger = logging.getLogger(__name__)

WORKFLOW_METHOD = "executeWorkflow"

# Request type -> service name
DEFAULT_SERVICE_MAP: Dict[str, str] = {
    "analyze_architecture": "ArchitectureService",
    "analyze_code_quality": "CodeQualityService",
    "analyze_tech_stack": "TechStackService",
    "analyze_repo_structure": "RepoStructureService",
    "analyze_dependencies": "DependencyService",
    "generate_script": "ScriptGenerationService",
    "workflow_orchestration": "WorkflowOrchestrationService",
    "task_execution": "TaskExecutionService",
    "workflow": "WorkflowService",
}

# Request type -> service method
DEFAULT_METHOD_MAP: Dict[str, str] = {
    "analyze_architecture": "analyzeArchitecture",
    "analyze_code_quality": "analyzeCodeQuality",
    "analyze_tech_stack": "analyzeTechStack",
    "analyze_repo_structure": "analyzeRepoStructure",
    "analyze_dependencies": "analyzeDependencies",
    "generate_script": "generateScript",
    "workflow_orchestration": WORKFLOW_METHOD,
    "task_execution": "executeTask",
    "workflow": WORKFLOW_METHOD,
}


def workflow_payload_context(request: Mapping[str, Any]) -> Dict[str, Any]:
    """Context dict handed to ``executeWorkflow`` next to the workflow payload."""
    return {
        "metadata": request.get("metadata") or {},
        "data": request.get("data") or {},
        "task": request.get("task"),
        "taskId": request.get("taskId"),
        "userId": request.get("userId"),
        "options": request.get("options"),
    }


class ServiceHandlerAdapter(HandlerAdapter):
    """Resolves services from a container and exposes one method as a handler.

    The service comes from ``request["service"]`` (an instance or a name),
    ``request["serviceName"]``, or the type-to-service map. The method comes
    from ``serviceMethod`` or the type-to-method map; without one the
    service's ``execute`` is called.
    """

    adapter_type = RequestKind.SERVICE.value

    def __init__(
        self,
        service_container: Optional[Mapping[str, Any]] = None,
        service_map: Optional[Dict[str, str]] = None,
        method_map: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ):
        """Initialize service adapter.

        Args:
            service_container: Mapping (or anything with ``get``) of service name to instance
            service_map: Request type to service name, defaults to DEFAULT_SERVICE_MAP
            method_map: Request type to method name, defaults to DEFAULT_METHOD_MAP
            **kwargs: Forwarded to :class:`HandlerAdapter`
        """
        super().__init__(**kwargs)
        self.service_container: Any = service_container if service_container is not None else {}
        self.service_map = dict(DEFAULT_SERVICE_MAP if service_map is None else service_map)
        self.method_map = dict(DEFAULT_METHOD_MAP if method_map is None else method_map)

    def determine_service_name(self, request: Mapping[str, Any]) -> Optional[str]:
        service = request.get("service")
        if isinstance(service, str) and service:
            return service
        if service is not None:
            return type(service).__name__
        service_name = request.get("serviceName")
        if isinstance(service_name, str) and service_name:
            return service_name
        return self.service_map.get(request.get("type") or "")

    def determine_service_method(self, request: Mapping[str, Any]) -> Optional[str]:
        method = request.get("serviceMethod")
        if isinstance(method, str) and method:
            return method
        return self.method_map.get(request.get("type") or "")

    def _get_service(self, name: str) -> Any:
        getter = getattr(self.service_container, "get", None)
        if not callable(getter):
            return None
        return getter(name)

    def _resolve_service(self, request: Mapping[str, Any]) -> Tuple[str, Any, Optional[str]]:
        name = self.determine_service_name(request)
        if name is None:
            raise HandlerException.adapter_error(
                "Could not determine service name",
                {"adapter": self.name, "type": request.get("type")},
            )
        service = request.get("service")
        instance = service if service is not None and not isinstance(service, str) else self._get_service(name)
        if instance is None:
            raise HandlerException.adapter_error(f"Service not found: {name}", {"adapter": self.name})

        method = self.determine_service_method(request)
        if method and not callable(getattr(instance, method, None)):
            raise HandlerException.adapter_error(
                f"Service method not found: {name}.{method}",
                {"adapter": self.name},
            )
        return name, instance, method

    def can_handle(self, request: Optional[Mapping[str, Any]]) -> bool:
        if not request:
            return False
        return bool(
            request.get("service")
            or request.get("serviceName")
            or request.get("serviceMethod")
            or (request.get("type") and request.get("type") in self.service_map)
        )

    def resolve_name(self, request: Mapping[str, Any]) -> str:
        name = self.determine_service_name(request)
        if name is None:
            raise HandlerException.adapter_error("Could not determine service name", {"adapter": self.name})
        method = self.determine_service_method(request)
        return f"{name}.{method}" if method else name

    async def build_handler(self, request: Mapping[str, Any], context: Optional[HandlerContext]) -> Handler:
        service_name, instance, method = self._resolve_service(request)

        async def invoke(handler_context: HandlerContext) -> Any:
            current = handler_context.get_request() or {}
            response = handler_context.get_response()
            if method and callable(getattr(instance, method, None)):
                if method == WORKFLOW_METHOD and current.get("workflow") is not None:
                    return await maybe_await(
                        getattr(instance, method), current["workflow"], workflow_payload_context(current)
                    )
                return await maybe_await(getattr(instance, method), current, response)
            if callable(getattr(instance, "execute", None)):
                return await maybe_await(instance.execute, current, response)
            if callable(getattr(instance, WORKFLOW_METHOD, None)) and current.get("workflow") is not None:
                return await maybe_await(
                    getattr(instance, WORKFLOW_METHOD), current["workflow"], workflow_payload_context(current)
                )
            raise HandlerException.execution_error(
                f"No suitable execution method found for service {service_name}",
                {"service": service_name},
            )

        def validate(handler_context: HandlerContext) -> ValidationResult:
            if method and not callable(getattr(instance, method, None)):
                return ValidationResult.failure(f"Service method not found: {method}")
            if not method and not callable(getattr(instance, "execute", None)):
                return ValidationResult.failure("Service must have execute method")
            return ValidationResult.success()

        return AdaptedHandler(
            name=f"ServiceHandler_{service_name}",
            handler_type=self.adapter_type,
            invoke=invoke,
            adapter=self.name,
            description="Service handler adapter",
            dependencies=["service"],
            can_handle=self.can_handle,
            validate=validate,
            metadata={"serviceName": service_name, "serviceMethod": method},
            target=instance,
        )

    def validate_request(self, request: Optional[Mapping[str, Any]]) -> ValidationResult:
        if request is None:
            return ValidationResult.failure("Request is required")
        result = ValidationResult.success()
        if not (request.get("service") or request.get("serviceName") or request.get("type")):
            result.add_error("Request must have service, serviceName, or type")
        if not self.service_container:
            result.add_warning("Service container not available")
        return result

    def get_supported_types(self) -> List[str]:
        return [self.adapter_type, RequestKind.WORKFLOW.value, *self.service_map]

    def get_capabilities(self) -> List[str]:
        return [*super().get_capabilities(), "dependency_injection", "workflow_execution"]
