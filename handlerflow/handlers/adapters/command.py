"""Adapter for command-style handlers exposing ``handle(command)``."""
from __future__ import annotations

import inspect
import logging
from typing import Any, List, Mapping, Optional

from ...error_coordination import HandlerException
from ...resolver import ImplementationResolver
from ...utils.deadline import maybe_await
from ..context import HandlerContext
from ..interface import Handler
from ..request import RequestKind
from .base import AdaptedHandler, HandlerAdapter

logger = logging.getLogger(__name__)


def command_type_of(request: Mapping[str, Any]) -> Optional[str]:
    """Determine the command type of a request.

    Order: explicit ``commandType``, the ``type`` of a command mapping, the
    class name of a command object, then a command given as a plain string.
    """
    command_type = request.get("commandType")
    if isinstance(command_type, str) and command_type:
        return command_type
    command = request.get("command")
    if isinstance(command, Mapping):
        nested = command.get("type") or command.get("commandType")
        return nested if isinstance(nested, str) and nested else None
    if isinstance(command, str):
        return command or None
    if command is not None:
        return type(command).__name__
    return None


class CommandHandlerAdapter(HandlerAdapter):
    """Routes command requests to command handlers registered by command type."""

    adapter_type = RequestKind.COMMAND.value

    def __init__(self, resolver: Optional[ImplementationResolver[Any]] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.resolver: ImplementationResolver[Any] = (
            resolver if resolver is not None else ImplementationResolver("command handlers")
        )

    def register_command_handler(self, command_type: str, handler: Any) -> None:
        self.resolver.register(command_type, handler)

    def can_handle(self, request: Optional[Mapping[str, Any]]) -> bool:
        if not request:
            return False
        if request.get("command") is None and not request.get("commandType"):
            return False
        command_type = command_type_of(request)
        return command_type is not None and command_type in self.resolver

    def resolve_name(self, request: Mapping[str, Any]) -> str:
        command_type = command_type_of(request)
        if command_type is None:
            raise HandlerException.adapter_error(
                "Command request needs command or commandType",
                {"adapter": self.name},
            )
        return command_type

    async def build_handler(self, request: Mapping[str, Any], context: Optional[HandlerContext]) -> Handler:
        command_type = self.resolve_name(request)
        implementation = self.resolver.resolve(command_type)
        if implementation is None:
            raise HandlerException.adapter_error(
                f"No command handler registered for {command_type}",
                {"adapter": self.name, "available": self.resolver.names()},
            )

        command_handler = implementation() if inspect.isclass(implementation) else implementation
        handle = getattr(command_handler, "handle", None)
        if not callable(handle):
            raise HandlerException.adapter_error(
                f"Command handler for {command_type} has no handle method",
                {"adapter": self.name},
            )

        async def invoke(handler_context: HandlerContext) -> Any:
            current = handler_context.get_request() or {}
            command = current.get("command")
            return await maybe_await(handle, command if command is not None else current)

        return AdaptedHandler(
            name=f"CommandHandler_{command_type}",
            handler_type=self.adapter_type,
            invoke=invoke,
            adapter=self.name,
            description=f"Command handler for {command_type}",
            dependencies=["command"],
            can_handle=self.can_handle,
            metadata={"commandType": command_type},
            target=command_handler,
        )

    def get_supported_types(self) -> List[str]:
        return [self.adapter_type, *self.resolver.names()]
