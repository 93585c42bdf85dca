"""Unit tests for HandlerContext and HandlerResult."""

import threading
from datetime import datetime

from handlerflow.error_coordination import ErrorType, HandlerException
from handlerflow.handlers import HandlerContext, HandlerRegistry, HandlerResult


class TestHandlerContext:
    """Test the per-request context."""

    def test_metadata_is_seeded_from_request(self):
        """Test createdAt, handlerId, requestType and taskId seeding."""
        context = HandlerContext(request={"type": "analyze", "taskId": "t-1"}, handler_id="h-1")

        metadata = context.get_metadata()
        assert isinstance(metadata["createdAt"], datetime)
        assert metadata["handlerId"] == "h-1"
        assert metadata["requestType"] == "analyze"
        assert metadata["taskId"] == "t-1"

    def test_generates_handler_id(self):
        """Test that a handler id is generated when none is given."""
        assert HandlerContext().handler_id.startswith("handler_")

    def test_data_operations(self):
        """Test get, set, has and remove."""
        context = HandlerContext(request={})
        context.set("repo", "example")

        assert context.has("repo")
        assert context.get("repo") == "example"
        assert context.get("missing", 5) == 5
        assert context.remove("repo") is True
        assert context.remove("repo") is False
        assert context.get_data() == {}

    def test_request_and_response_are_shared(self):
        """Test that request and response are returned by reference."""
        request = {"taskId": "t-1"}
        response = object()
        context = HandlerContext(request=request, response=response)

        assert context.get_request() is request
        assert context.get_response() is response

    def test_clone_is_isolated(self):
        """Test that keys set on a clone never leak into the original."""
        context = HandlerContext(request={"taskId": "t-1"}, data={"count": 1})
        context.set_metadata("phase", "analysis")

        cloned = context.clone({"extra": True})
        cloned.set("count", 99)
        cloned.set("other", 1)
        cloned.set_metadata("phase", "changed")

        assert context.get("count") == 1
        assert not context.has("other")
        assert not context.has("extra")
        assert context.get_metadata("phase") == "analysis"
        assert cloned.get("extra") is True
        assert "clonedAt" in cloned.get_metadata()
        assert "clonedAt" not in context.get_metadata()
        assert cloned.handler_id == context.handler_id
        assert cloned.get_request() is context.get_request()

    def test_clone_shares_services_holding_locks(self):
        """Test that collaborator services are shared, not copied."""
        registry = HandlerRegistry()
        context = HandlerContext(request={}, data={"registry": registry, "lock": threading.Lock()})

        cloned = context.clone({"extra": True})
        assert cloned.get("registry") is registry
        cloned.set("registry", None)

        assert context.get("registry") is registry
        assert cloned.get("lock") is context.get("lock")
        assert not context.has("extra")

    def test_to_dict(self):
        context = HandlerContext(request={}, handler_id="h-2", data={"a": 1})
        snapshot = context.to_dict()
        assert snapshot["handlerId"] == "h-2"
        assert snapshot["data"] == {"a": 1}


class TestHandlerResult:
    """Test result construction and coercion."""

    def test_ok_and_failure(self):
        ok = HandlerResult.ok({"x": 1}, handler="h")
        failed = HandlerResult.failure("boom", stage="execution")

        assert ok.is_success() and ok.data == {"x": 1} and ok.metadata["handler"] == "h"
        assert not failed.is_success()
        assert failed.get_error_message() == "boom"

    def test_from_handler_exception_keeps_kind(self):
        """Test that errorType and recoverable are carried over."""
        result = HandlerResult.from_exception(HandlerException.timeout_error("too slow"))

        assert result.error == "too slow"
        assert result.metadata["errorType"] == ErrorType.TIMEOUT.value
        assert result.metadata["recoverable"] is True

    def test_from_plain_exception(self):
        result = HandlerResult.from_exception(KeyError())
        assert result.metadata["errorType"] == "KeyError"
        assert result.error

    def test_coerce_unpacks_success_dicts(self):
        """Test dicts carrying a boolean success flag."""
        ok = HandlerResult.coerce({"success": True, "data": [1]})
        failed = HandlerResult.coerce({"success": False, "error": "nope"})

        assert ok.success and ok.data == [1]
        assert not failed.success and failed.error == "nope"

    def test_coerce_wraps_other_values(self):
        result = HandlerResult.coerce({"report": "done"}, handler="h")
        assert result.success
        assert result.data == {"report": "done"}
        assert result.metadata == {"handler": "h"}

    def test_to_dict(self):
        data = HandlerResult.ok(1).to_dict()
        assert data["success"] is True
        assert "timestamp" in data
