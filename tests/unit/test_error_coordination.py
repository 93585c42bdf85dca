"""Unit tests for the error taxonomy and ErrorCoordinator."""

import pytest

from handlerflow.error_coordination import (
    ERROR_PROFILES,
    ErrorCoordinator,
    ErrorSeverity,
    ErrorType,
    HandlerException,
    StepNotFoundError,
)


class TestHandlerException:
    """Test kinded exceptions."""

    def test_every_kind_has_a_profile(self):
        assert set(ERROR_PROFILES) == set(ErrorType)

    @pytest.mark.parametrize("factory_name,error_type,recoverable", [
        ("validation_error", ErrorType.VALIDATION, True),
        ("adapter_error", ErrorType.ADAPTER, True),
        ("timeout_error", ErrorType.TIMEOUT, True),
        ("execution_error", ErrorType.EXECUTION, False),
        ("migration_error", ErrorType.MIGRATION, False),
        ("dependency_error", ErrorType.DEPENDENCY, False),
    ])
    def test_constructors(self, factory_name, error_type, recoverable):
        error = getattr(HandlerException, factory_name)("boom", {"key": "value"})

        assert error.error_type == error_type
        assert error.recoverable is recoverable
        assert error.context == {"key": "value"}
        assert str(error) == "boom"

    def test_to_dict(self):
        data = HandlerException.migration_error("stuck").to_dict()

        assert data["type"] == "migration"
        assert data["severity"] == ErrorSeverity.HIGH.name
        assert data["recoverable"] is False

    def test_step_not_found(self):
        error = StepNotFoundError("Missing", ["B", "A"])

        assert isinstance(error, HandlerException)
        assert error.message == "Step 'Missing' not found. Available: A, B"
        assert error.context["available"] == ["A", "B"]


class TestErrorCoordinator:
    """Test error recording and callbacks."""

    def test_records_and_summarizes(self):
        coordinator = ErrorCoordinator()
        coordinator.record_error(HandlerException.factory_error("no adapter"), operation="factory")
        coordinator.record_error(ValueError("bad"), operation="factory")

        summary = coordinator.get_error_summary()

        assert summary["total_errors"] == 2
        assert summary["operations"]["factory"]["errors_by_type"] == {"factory": 1, "execution": 1}

    def test_plain_exceptions_are_wrapped(self):
        wrapped = ErrorCoordinator().record_error(KeyError("k"), "lookup", ErrorType.REGISTRY)

        assert isinstance(wrapped, HandlerException)
        assert wrapped.error_type == ErrorType.REGISTRY
        assert wrapped.context == {"exception": "KeyError"}

    def test_error_handlers_are_called_per_kind(self):
        coordinator = ErrorCoordinator()
        seen = []
        coordinator.register_error_handler(ErrorType.TIMEOUT, seen.append)

        coordinator.record_error(HandlerException.timeout_error("slow"), "execute")
        coordinator.record_error(HandlerException.factory_error("other"), "factory")

        assert [error.message for error in seen] == ["slow"]

    def test_failing_error_handler_is_contained(self):
        coordinator = ErrorCoordinator()

        def broken(error):
            raise RuntimeError("handler bug")

        coordinator.register_error_handler(ErrorType.EXECUTION, broken)
        coordinator.record_error(RuntimeError("x"), "op")

        assert len(coordinator.get_recent_errors()) == 1

    def test_reset(self):
        coordinator = ErrorCoordinator()
        coordinator.record_error(RuntimeError("x"), "op")
        coordinator.reset()
        assert coordinator.get_error_summary()["total_errors"] == 0
