"""Unit tests for the legacy, command and service adapters."""

import pytest

from handlerflow.error_coordination import ErrorType, HandlerException
from handlerflow.handlers import (
    CommandHandlerAdapter,
    HandlerContext,
    LegacyHandlerAdapter,
    ServiceHandlerAdapter,
)
from handlerflow.handlers.adapters.base import make_cache_key
from handlerflow.handlers.adapters.legacy import name_from_path
from handlerflow.resolver import ImplementationResolver


class TestLegacyHandlerAdapter:
    """Test wrapping of handle(request, response) implementations."""

    def test_can_handle(self, legacy_resolver):
        adapter = LegacyHandlerAdapter(legacy_resolver)

        assert adapter.can_handle({"handlerClass": "ReportHandler"})
        assert adapter.can_handle({"handlerClass": legacy_resolver.resolve("ReportHandler")})
        assert adapter.can_handle({"handlerPath": "legacy/handlers/ReportHandler.js"})
        assert not adapter.can_handle({"handlerClass": "UnknownHandler"})
        assert not adapter.can_handle({})

    def test_name_from_path(self):
        assert name_from_path("legacy/handlers/ReportHandler.js") == "ReportHandler"

    @pytest.mark.asyncio
    async def test_wrapped_handler_executes(self, legacy_resolver):
        """Test that the legacy instance gets the injected dependencies."""
        adapter = LegacyHandlerAdapter(legacy_resolver, dependencies={"database": object()})
        request = {"handlerClass": "ReportHandler", "taskId": "t-9"}

        handler = await adapter.create_handler(request)
        result = await handler.execute(HandlerContext(request=request))

        assert result.success
        assert result.data == {"report": "t-9", "deps": ["database"]}
        assert handler.get_metadata()["legacy"] is True
        assert handler.get_type() == "legacy"

    @pytest.mark.asyncio
    async def test_async_handle_and_success_dict(self, legacy_resolver):
        adapter = LegacyHandlerAdapter(legacy_resolver)
        request = {"handlerClass": "AsyncEchoHandler", "payload": "hi"}

        handler = await adapter.create_handler(request)
        result = await handler.execute(HandlerContext(request=request))

        assert result.success
        assert result.data == {"echo": "hi"}

    @pytest.mark.asyncio
    async def test_raising_legacy_handler_becomes_failed_result(self, legacy_resolver):
        """Test that execute never raises."""
        adapter = LegacyHandlerAdapter(legacy_resolver)
        request = {"handlerClass": "FailingHandler"}

        handler = await adapter.create_handler(request)
        result = await handler.execute(HandlerContext(request=request))

        assert not result.success
        assert result.error == "legacy handler exploded"
        assert handler.get_statistics()["failures"] == 1

    @pytest.mark.asyncio
    async def test_unknown_handler_raises_adapter_error(self, legacy_resolver):
        adapter = LegacyHandlerAdapter(legacy_resolver)

        with pytest.raises(HandlerException) as exc_info:
            await adapter.create_handler({"handlerClass": "UnknownHandler"})

        assert exc_info.value.error_type == ErrorType.ADAPTER

    @pytest.mark.asyncio
    async def test_constructor_failure_is_wrapped(self):
        class BrokenHandler:
            def __init__(self):
                raise ValueError("cannot build")

        adapter = LegacyHandlerAdapter(ImplementationResolver("legacy", {"BrokenHandler": BrokenHandler}))

        with pytest.raises(HandlerException) as exc_info:
            await adapter.create_handler({"handlerClass": "BrokenHandler"})

        assert exc_info.value.error_type == ErrorType.ADAPTER
        assert "cannot build" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_adapter_cache(self, legacy_resolver):
        """Test that identical requests reuse the built handler."""
        adapter = LegacyHandlerAdapter(legacy_resolver, cache_size=5)
        request = {"handlerClass": "ReportHandler"}

        first = await adapter.create_handler(request)
        second = await adapter.create_handler(dict(request))

        assert first is second
        assert adapter.get_statistics()["handlers_created"] == 1
        assert adapter.clear_cache() == 1

    def test_cache_key_includes_options(self):
        key = make_cache_key("ReportHandler", {"type": "legacy", "options": {"b": 2, "a": 1}})
        assert key == 'ReportHandler|legacy|{"a":1,"b":2}'

    @pytest.mark.asyncio
    async def test_health(self):
        assert not await LegacyHandlerAdapter().is_healthy()


class TestCommandHandlerAdapter:
    """Test wrapping of handle(command) implementations."""

    def test_can_handle_requires_registered_type(self, command_resolver):
        adapter = CommandHandlerAdapter(command_resolver)

        assert adapter.can_handle({"command": {"type": "CreateUser"}})
        assert adapter.can_handle({"commandType": "CreateUser", "command": {}})
        assert not adapter.can_handle({"command": {"type": "DeleteUser"}})
        assert not adapter.can_handle({"type": "CreateUser"})

    @pytest.mark.asyncio
    async def test_handler_receives_command_only(self, command_resolver):
        adapter = CommandHandlerAdapter(command_resolver)
        request = {"command": {"type": "CreateUser", "username": "ada"}}

        handler = await adapter.create_handler(request)
        result = await handler.execute(HandlerContext(request=request))

        assert result.data == {"created": "ada"}
        assert handler.get_metadata()["name"] == "CommandHandler_CreateUser"

    def test_register_command_handler(self):
        adapter = CommandHandlerAdapter()
        adapter.register_command_handler("Ping", lambda command: "pong")
        assert "Ping" in adapter.get_supported_types()


class TestServiceHandlerAdapter:
    """Test wrapping of service methods."""

    def test_resolve_name(self, service_container):
        adapter = ServiceHandlerAdapter(service_container)

        assert adapter.resolve_name({"type": "analyze_architecture"}) == "ArchitectureService.analyzeArchitecture"
        assert adapter.resolve_name({"service": "ArchitectureService", "serviceMethod": "x"}) == "ArchitectureService.x"

    @pytest.mark.asyncio
    async def test_mapped_method(self, service_container):
        adapter = ServiceHandlerAdapter(service_container)
        request = {"type": "analyze_architecture", "taskId": "t-3"}

        handler = await adapter.create_handler(request)
        result = await handler.execute(HandlerContext(request=request))

        assert result.data == {"layers": 3, "taskId": "t-3"}

    @pytest.mark.asyncio
    async def test_execute_workflow_receives_payload_and_context(self, service_container):
        """Test the executeWorkflow calling convention."""
        adapter = ServiceHandlerAdapter(service_container)
        request = {"service": "ArchitectureService", "serviceMethod": "executeWorkflow",
                   "workflow": {"steps": ["a"]}, "taskId": "t-4"}

        handler = await adapter.create_handler(request)
        result = await handler.execute(HandlerContext(request=request))

        assert result.data == {"workflow": {"steps": ["a"]}, "taskId": "t-4"}

    @pytest.mark.asyncio
    async def test_missing_service(self):
        adapter = ServiceHandlerAdapter({})

        with pytest.raises(HandlerException) as exc_info:
            await adapter.create_handler({"service": "Nope", "serviceMethod": "run"})

        assert "Service not found: Nope" in exc_info.value.message

    def test_validate_request_warns_without_container(self):
        result = ServiceHandlerAdapter().validate_request({"service": "S"})
        assert result.is_valid
        assert result.warnings == ["Service container not available"]
