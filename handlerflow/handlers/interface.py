"""Unified handler capability interface."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from ..validation import ValidationResult

if TYPE_CHECKING:
    from .context import HandlerContext
    from .result import HandlerResult

# Capability methods every handler must expose, checked by the validator
REQUIRED_HANDLER_METHODS = (
    "execute",
    "get_metadata",
    "validate",
    "can_handle",
    "get_dependencies",
    "get_version",
    "get_type",
    "initialize",
    "cleanup",
    "get_statistics",
    "is_healthy",
)


class Handler(ABC):
    """Base class for unified handlers.

    Lifecycle: ``initialize(config)``, then zero or more ``execute`` calls,
    then ``cleanup()``. ``validate`` and ``can_handle`` must not have side
    effects. Handlers report failures through :class:`HandlerResult` and do
    not raise out of ``execute``.
    """

    @abstractmethod
    async def execute(self, context: "HandlerContext") -> "HandlerResult":
        """Execute the handler for the request carried by ``context``."""

    @abstractmethod
    def get_metadata(self) -> Dict[str, Any]:
        """Return at least ``name`` and ``version``."""

    async def validate(self, context: "HandlerContext") -> ValidationResult:
        return ValidationResult.success()

    def can_handle(self, request: Optional[Mapping[str, Any]]) -> bool:
        return request is not None

    def get_dependencies(self) -> List[str]:
        """Names of collaborators the handler expects to find in its context."""
        return []

    def get_version(self) -> str:
        return str(self.get_metadata().get("version", "1.0.0"))

    def get_type(self) -> str:
        return str(self.get_metadata().get("type", "generic"))

    async def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        return None

    async def cleanup(self) -> None:
        return None

    def get_statistics(self) -> Dict[str, Any]:
        return {}

    async def is_healthy(self) -> bool:
        return True


def missing_capabilities(candidate: Any) -> List[str]:
    """Names from REQUIRED_HANDLER_METHODS that ``candidate`` does not expose as callables."""
    return [
        name for name in REQUIRED_HANDLER_METHODS
        if not callable(getattr(candidate, name, None))
    ]
