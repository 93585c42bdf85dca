"""Global pytest fixtures and configuration.

This module provides shared fixtures for all tests including:
- Clean engine configuration per test
- Sample legacy, command and service implementations
- Pre-wired resolvers, factories and registries
- An in-memory event bus for asserting emitted events
"""
from __future__ import annotations

from typing import Generator

import pytest

from handlerflow.config import reset_config
from handlerflow.events import InMemoryEventBus
from handlerflow.handlers import (
    CommandHandlerAdapter,
    HandlerFactory,
    LegacyHandlerAdapter,
    ServiceHandlerAdapter,
)
from handlerflow.resolver import ImplementationResolver
from handlerflow.steps import StepRegistry, register_default_kinds

ENGINE_ENV_VARS = (
    "ENABLE_CACHING",
    "ENABLE_VALIDATION",
    "ENABLE_HEALTH_CHECKS",
    "ENABLE_BACKUP",
    "HANDLERFLOW_HANDLER_CACHE_SIZE",
    "HANDLERFLOW_ADAPTER_CACHE_SIZE",
    "HANDLERFLOW_MAX_REQUEST_SIZE",
    "HANDLERFLOW_ALLOWED_TYPES",
    "HANDLERFLOW_MAX_CONCURRENT_MIGRATIONS",
    "HANDLERFLOW_MIGRATION_TIMEOUT",
    "HANDLERFLOW_VALIDATION_TIMEOUT",
    "HANDLERFLOW_ROLLBACK_TIMEOUT",
    "HANDLERFLOW_EXECUTION_TIMEOUT",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch) -> Generator:
    """Drop engine settings from the environment and the cached config.

    Individual tests can set variables with monkeypatch.setenv() and then
    call reset_config() to have them picked up.
    """
    for name in ENGINE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class ReportHandler:
    """Legacy handler returning a plain payload."""

    def __init__(self, **dependencies):
        self.dependencies = dependencies

    def handle(self, request, response=None):
        return {"report": request.get("taskId"), "deps": sorted(self.dependencies)}


class AsyncEchoHandler:
    """Legacy handler with a coroutine handle method."""

    async def handle(self, request, response=None):
        return {"success": True, "data": {"echo": request.get("payload")}}


class FailingHandler:
    """Legacy handler whose handle method raises."""

    def handle(self, request, response=None):
        raise RuntimeError("legacy handler exploded")


class CreateUserCommandHandler:
    """Command handler receiving only the command."""

    def handle(self, command):
        return {"created": command.get("username") if isinstance(command, dict) else command}


class ArchitectureService:
    """Service exposing a named method and a workflow entry point."""

    def analyzeArchitecture(self, request, response=None):
        return {"layers": 3, "taskId": request.get("taskId")}

    def executeWorkflow(self, workflow, context):
        return {"workflow": workflow, "taskId": context["taskId"]}


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    """Event bus recording every emitted event."""
    return InMemoryEventBus()


@pytest.fixture
def legacy_resolver() -> ImplementationResolver:
    """Resolver preloaded with sample legacy handlers."""
    return ImplementationResolver("legacy handlers", {
        "ReportHandler": ReportHandler,
        "AsyncEchoHandler": AsyncEchoHandler,
        "FailingHandler": FailingHandler,
    })


@pytest.fixture
def command_resolver() -> ImplementationResolver:
    """Resolver with one command handler."""
    return ImplementationResolver("command handlers", {"CreateUser": CreateUserCommandHandler})


@pytest.fixture
def service_container() -> dict:
    """Service container with the architecture service."""
    return {"ArchitectureService": ArchitectureService()}


@pytest.fixture
def factory(legacy_resolver, command_resolver, service_container, event_bus) -> HandlerFactory:
    """Factory with the legacy, command and service adapters registered."""
    return HandlerFactory(
        adapters=[
            LegacyHandlerAdapter(legacy_resolver),
            CommandHandlerAdapter(command_resolver),
            ServiceHandlerAdapter(service_container),
        ],
        event_sink=event_bus,
    )


@pytest.fixture
def step_registry() -> StepRegistry:
    """Step registry with the unified kinds and the fallback step."""
    registry = StepRegistry()
    register_default_kinds(registry)
    return registry
