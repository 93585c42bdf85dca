"""Request classification.

Requests are plain mappings arriving from outside the engine. They are
classified once, by field presence, into a :class:`RequestKind`. The order
of the checks below is the dispatch contract: a request carrying both
``handlerClass`` and ``command`` is a legacy request.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional, Tuple


class RequestKind(Enum):
    """Coarse request kinds, one per calling convention."""

    LEGACY = "legacy"
    COMMAND = "command"
    SERVICE = "service"
    WORKFLOW = "workflow"
    GENERIC = "generic"


# (kind, fields) in precedence order
CLASSIFICATION_RULES: Tuple[Tuple[RequestKind, Tuple[str, ...]], ...] = (
    (RequestKind.LEGACY, ("handlerClass", "handlerPath")),
    (RequestKind.COMMAND, ("command", "commandType")),
    (RequestKind.SERVICE, ("service", "serviceMethod")),
    (RequestKind.WORKFLOW, ("workflow", "workflowType")),
)

_KINDS_BY_VALUE = {kind.value: kind for kind in RequestKind}


def _present(request: Mapping[str, Any], field_name: str) -> bool:
    value = request.get(field_name)
    return value is not None and value != ""


def classify_request(request: Optional[Mapping[str, Any]]) -> RequestKind:
    """Classify ``request`` by ordered field-presence precedence.

    handlerClass/handlerPath > command/commandType > service/serviceMethod >
    workflow/workflowType > explicit ``type`` > legacy.

    An explicit ``type`` naming a kind (``"command"``, ``"service"``, ...)
    selects that kind; any other ``type`` value is GENERIC.
    """
    if not request:
        return RequestKind.LEGACY

    for kind, fields in CLASSIFICATION_RULES:
        if any(_present(request, name) for name in fields):
            return kind

    explicit = request.get("type")
    if isinstance(explicit, str) and explicit:
        return _KINDS_BY_VALUE.get(explicit.lower(), RequestKind.GENERIC)

    return RequestKind.LEGACY


def request_type(request: Optional[Mapping[str, Any]]) -> str:
    """The request's ``type`` tag, or its classified kind when untagged."""
    if request and isinstance(request.get("type"), str) and request["type"]:
        return request["type"]
    return classify_request(request).value
