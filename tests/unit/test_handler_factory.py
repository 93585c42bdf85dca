"""Unit tests for HandlerFactory."""

import pytest

from handlerflow.error_coordination import ErrorCoordinator, ErrorType, HandlerException
from handlerflow.handlers import (
    CommandHandlerAdapter,
    HandlerAdapter,
    HandlerFactory,
    LegacyHandlerAdapter,
    ServiceHandlerAdapter,
)


@pytest.fixture
def default_adapters(legacy_resolver, command_resolver, service_container):
    """Adapters with their default settings, caches enabled."""
    return [
        LegacyHandlerAdapter(legacy_resolver),
        CommandHandlerAdapter(command_resolver),
        ServiceHandlerAdapter(service_container),
    ]


class TestAdapterRegistration:
    """Test adapter bookkeeping."""

    def test_registration_order(self, factory):
        assert factory.list_adapters() == ["legacy", "command", "service"]

    def test_unregister(self, factory):
        assert factory.unregister_adapter("command") is True
        assert factory.unregister_adapter("command") is False
        assert factory.get_adapter("command") is None

    def test_select_prefers_kind_adapter(self, factory):
        adapter = factory.select_adapter({"command": {"type": "CreateUser"}})
        assert isinstance(adapter, CommandHandlerAdapter)

    def test_select_falls_back_to_first_accepting_adapter(self, factory):
        """Test that a generic request is served by the first adapter accepting it."""
        adapter = factory.select_adapter({"type": "analyze_architecture"})
        assert isinstance(adapter, ServiceHandlerAdapter)

    def test_select_returns_none_when_nothing_accepts(self, factory):
        assert factory.select_adapter({"type": "unknown_kind"}) is None


class TestCreateHandler:
    """Test handler creation."""

    @pytest.mark.asyncio
    async def test_none_request_is_a_factory_error(self, factory):
        with pytest.raises(HandlerException) as exc_info:
            await factory.create_handler(None)
        assert exc_info.value.error_type == ErrorType.FACTORY

    @pytest.mark.asyncio
    async def test_creates_and_emits(self, factory, event_bus):
        """Test creation through the legacy adapter and the handler.created event."""
        handler = await factory.create_handler({"handlerClass": "ReportHandler"})

        assert handler.get_metadata()["name"] == "ReportHandler"
        events = event_bus.get_history("handler.created")
        assert len(events) == 1
        assert events[0]["payload"]["adapter"] == "LegacyHandlerAdapter"
        assert events[0]["payload"]["kind"] == "legacy"

    @pytest.mark.asyncio
    async def test_cache_hit_returns_same_instance(self, factory):
        request = {"handlerClass": "ReportHandler", "options": {"depth": 2}}

        first = await factory.create_handler(request)
        second = await factory.create_handler({"options": {"depth": 2}, "handlerClass": "ReportHandler"})

        assert first is second
        stats = factory.get_statistics()
        assert stats["handlers_created"] == 1
        assert stats["cache_hits"] == 1
        assert factory.is_cached(request)

    @pytest.mark.asyncio
    async def test_different_options_are_different_entries(self, factory):
        first = await factory.create_handler({"handlerClass": "ReportHandler", "options": {"depth": 1}})
        second = await factory.create_handler({"handlerClass": "ReportHandler", "options": {"depth": 2}})
        assert first is not second

    @pytest.mark.asyncio
    async def test_fifo_eviction_forces_fresh_construction(self, default_adapters):
        """Test that an evicted key is built again, even with adapter caches enabled."""
        factory = HandlerFactory(adapters=default_adapters, cache_size=2)
        a = {"handlerClass": "ReportHandler"}
        b = {"handlerClass": "AsyncEchoHandler"}
        c = {"handlerClass": "FailingHandler"}

        first_a = await factory.create_handler(a)
        await factory.create_handler(b)
        await factory.create_handler(c)

        assert not factory.is_cached(a)
        assert factory.is_cached(b) and factory.is_cached(c)

        second_a = await factory.create_handler(a)

        assert second_a is not first_a
        stats = factory.get_statistics()
        assert stats["handlers_created"] == 4
        assert stats["cache_hits"] == 0
        assert stats["cache"]["size"] == 2
        assert stats["cache"]["evictions"] == 2
        assert default_adapters[0].get_statistics()["cache"]["size"] == 0

    @pytest.mark.asyncio
    async def test_caching_disabled(self, default_adapters):
        factory = HandlerFactory(adapters=default_adapters, enable_caching=False)
        request = {"handlerClass": "ReportHandler"}

        assert await factory.create_handler(request) is not await factory.create_handler(request)

    @pytest.mark.asyncio
    async def test_no_adapter_is_recorded(self, factory):
        """Test that failures are raised and recorded."""
        errors = ErrorCoordinator()
        factory.errors = errors

        with pytest.raises(HandlerException) as exc_info:
            await factory.create_handler({"handlerClass": "UnknownHandler"})

        assert exc_info.value.error_type == ErrorType.FACTORY
        assert factory.get_statistics()["failures"] == 1
        assert errors.get_error_summary()["total_errors"] == 1

    @pytest.mark.asyncio
    async def test_structural_check_rejects_incomplete_handlers(self):
        """Test that handlers without name and version are refused."""

        class NamelessAdapter(HandlerAdapter):
            adapter_type = "legacy"

            def can_handle(self, request):
                return True

            def resolve_name(self, request):
                return "Nameless"

            async def build_handler(self, request, context):
                from handlerflow.handlers.adapters.base import AdaptedHandler

                async def invoke(ctx):
                    return None

                return AdaptedHandler(name="", handler_type="legacy", invoke=invoke, adapter="nameless")

        factory = HandlerFactory(adapters=[NamelessAdapter(enable_caching=False)])

        with pytest.raises(HandlerException) as exc_info:
            await factory.create_handler({"handlerClass": "Anything"})

        assert "name and version" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_clear_cache(self, factory):
        await factory.create_handler({"handlerClass": "ReportHandler"})
        assert factory.clear_cache() == 1
        assert not factory.is_cached({"handlerClass": "ReportHandler"})
