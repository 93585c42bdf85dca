"""Unit tests for HandlerRegistry."""

import pytest

from handlerflow.error_coordination import ErrorType, HandlerException
from handlerflow.handlers import Handler, HandlerRegistry, HandlerResult


class NamedHandler(Handler):
    def __init__(self, name, accepts=None):
        self.name = name
        self.accepts = accepts

    async def execute(self, context):
        return HandlerResult.ok(self.name)

    def get_metadata(self):
        return {"name": self.name, "version": "1.0.0"}

    def can_handle(self, request):
        return self.accepts is not None and request.get("type") == self.accepts


class TestHandlerRegistry:
    """Test registration, lookup and replacement."""

    def test_register_uses_metadata_name(self):
        registry = HandlerRegistry()
        handler = NamedHandler("ReportHandler")

        assert registry.register(handler) == "ReportHandler"
        assert registry.get("ReportHandler") is handler
        assert "ReportHandler" in registry
        assert len(registry) == 1

    def test_last_writer_wins(self, event_bus):
        """Test that re-registering a type replaces the previous handler."""
        registry = HandlerRegistry(event_sink=event_bus)
        first = NamedHandler("ReportHandler")
        second = NamedHandler("ReportHandler")

        registry.register(first)
        registry.register(second)

        assert registry.get("ReportHandler") is second
        assert registry.get_statistics()["replacements"] == 1
        payloads = [event["payload"] for event in event_bus.get_history("handler.registered")]
        assert [payload["replaced"] for payload in payloads] == [False, True]

    def test_explicit_type_overrides_metadata(self):
        registry = HandlerRegistry()
        registry.register(NamedHandler("ReportHandler"), "reports")
        assert registry.list_handlers() == ["reports"]

    def test_register_without_type_fails(self):
        class Anonymous:
            def get_metadata(self):
                return {}

        with pytest.raises(HandlerException) as exc_info:
            HandlerRegistry().register(Anonymous())
        assert exc_info.value.error_type == ErrorType.REGISTRY

    def test_unregister(self, event_bus):
        registry = HandlerRegistry(event_sink=event_bus)
        registry.register(NamedHandler("A"))

        assert registry.unregister("A") is True
        assert registry.unregister("A") is False
        assert registry.get("A") is None
        assert event_bus.event_names().count("handler.unregistered") == 1

    def test_find_handler_in_registration_order(self):
        registry = HandlerRegistry()
        first = NamedHandler("First", accepts="analyze")
        second = NamedHandler("Second", accepts="analyze")
        registry.register(first)
        registry.register(second)

        assert registry.find_handler({"type": "analyze"}) is first
        assert registry.find_handler({"type": "deploy"}) is None

    def test_lookup_statistics(self):
        registry = HandlerRegistry()
        registry.register(NamedHandler("A"))
        registry.get("A")
        registry.get("A")

        assert registry.get_statistics()["lookups"] == {"A": 2}
        assert registry.get_entry("A").lookups == 2

    def test_clear(self):
        registry = HandlerRegistry()
        registry.register(NamedHandler("A"))
        registry.register(NamedHandler("B"))
        assert registry.clear() == 2
        assert not registry
