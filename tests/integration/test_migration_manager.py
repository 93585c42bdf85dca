"""Integration tests for MigrationManager.

This module tests:
- Batch partitioning and the barrier between batches
- Classification and step naming of migrated handlers
- Degraded and failed items, retry and rollback
- Status snapshots, history, statistics and cleanup
"""
from __future__ import annotations

import asyncio

import pytest

from handlerflow.error_coordination import ErrorCoordinator, ErrorType, HandlerException
from handlerflow.handlers import HandlerFactory, HandlerRegistry, LegacyHandlerAdapter
from handlerflow.migration import (
    InMemoryMigrationStore,
    MigrationManager,
    MigrationRunStatus,
    MigrationStatus,
)
from handlerflow.resolver import ImplementationResolver
from handlerflow.steps import FallbackStep, WorkflowContext


class AnalyzeArchitectureHandler:
    def handle(self, request, response=None):
        return {"architecture": "layered"}


class GenerateScriptHandler:
    def handle(self, request, response=None):
        return {"script": "run.sh"}


class BrokenHandler:
    def __init__(self):
        raise RuntimeError("constructor needs a database")

    def handle(self, request, response=None):
        return None


class LateHandler:
    def handle(self, request, response=None):
        return None


class ExplodingHandler:
    def handle(self, request, response=None):
        raise ValueError("report template missing")


class SlowHandler:
    async def handle(self, request, response=None):
        await asyncio.sleep(1)
        return {"done": True}


class AuditTrailHandler:
    def handle(self, request, response=None):
        return {"audit": request.get("test")}


class RecordingFactory:
    """Async factory stand-in that records when each creation starts and ends."""

    def __init__(self, delay=0.01, slow=()):
        self.delay = delay
        self.slow = set(slow)
        self.timeline = []

    async def create_handler(self, request, context=None):
        name = request["handlerClass"]
        self.timeline.append(("start", name))
        await asyncio.sleep(1 if name in self.slow else self.delay)
        self.timeline.append(("end", name))
        return {"handler": name}


@pytest.fixture
def migration_resolver() -> ImplementationResolver:
    return ImplementationResolver("legacy handlers", {
        "AnalyzeArchitectureHandler": AnalyzeArchitectureHandler,
        "GenerateScriptHandler": GenerateScriptHandler,
        "BrokenHandler": BrokenHandler,
    })


@pytest.fixture
def handler_registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def manager(migration_resolver, step_registry, handler_registry, event_bus) -> MigrationManager:
    factory = HandlerFactory(adapters=[LegacyHandlerAdapter(migration_resolver)], errors=ErrorCoordinator())
    return MigrationManager(
        factory,
        step_registry,
        handler_registry=handler_registry,
        legacy_resolver=migration_resolver,
        event_sink=event_bus,
        errors=ErrorCoordinator(),
    )


class TestBatching:
    """Test partitioning and the batch barrier."""

    @pytest.mark.asyncio
    async def test_thirteen_handlers_in_batches_of_three(self, step_registry, event_bus):
        """Test batch sizes and that no batch starts before the previous one settles."""
        names = [f"AnalyzeModule{index}Handler" for index in range(13)]
        resolver = ImplementationResolver("legacy", {name: AnalyzeArchitectureHandler for name in names})
        factory = RecordingFactory()
        manager = MigrationManager(factory, step_registry, legacy_resolver=resolver, event_sink=event_bus)

        result = await manager.start_migration({"handlers": names, "max_concurrent_migrations": 3})

        assert result.success
        assert result.batch_sizes == [3, 3, 3, 3, 1]
        assert result.migrated_handlers == 13

        position = {event: index for index, event in enumerate(factory.timeline)}
        batches = [names[start:start + 3] for start in range(0, 13, 3)]
        for current, following in zip(batches, batches[1:]):
            last_end = max(position[("end", name)] for name in current)
            first_start = min(position[("start", name)] for name in following)
            assert last_end < first_start

        first_batch_starts = [position[("start", name)] for name in batches[0]]
        first_batch_ends = [position[("end", name)] for name in batches[0]]
        assert max(first_batch_starts) < min(first_batch_ends)

        assert event_bus.event_names().count("migration.batch.started") == 5
        assert event_bus.event_names().count("migration.batch.completed") == 5

    @pytest.mark.asyncio
    async def test_unnamed_run_enumerates_the_resolver(self, manager):
        result = await manager.start_migration({"handlers": []})
        assert result.total_handlers == 3

    @pytest.mark.asyncio
    async def test_handler_source_takes_precedence(self, step_registry):
        manager = MigrationManager(
            RecordingFactory(),
            step_registry,
            legacy_resolver=ImplementationResolver("legacy", {"OnlyHandler": object, "Other": object}),
            handler_source=lambda: ["OnlyHandler"],
        )

        result = await manager.start_migration()

        assert [record.handler_name for record in result.results] == ["OnlyHandler"]


class TestItemOutcomes:
    """Test classification, degradation and failures."""

    @pytest.mark.asyncio
    async def test_handlers_become_paired_steps(self, manager, handler_registry, step_registry, event_bus):
        result = await manager.start_migration({
            "handlers": ["AnalyzeArchitectureHandler", "GenerateScriptHandler"],
        })

        records = {record.handler_name: record for record in result.results}
        analyze = records["AnalyzeArchitectureHandler"]
        generate = records["GenerateScriptHandler"]

        assert analyze.status == MigrationStatus.COMPLETED
        assert analyze.step_kind == "AnalysisStep"
        assert analyze.step_name == "AnalyzeArchitectureStep"
        assert generate.step_kind == "DocumentationStep"
        assert generate.step_name == "GenerateScriptStep"

        assert handler_registry.has("AnalyzeArchitectureHandler")
        assert step_registry.get_template("GenerateScriptStep").kind == "DocumentationStep"
        assert event_bus.event_names()[0] == "migration.started"
        assert event_bus.event_names()[-1] == "migration.completed"

    @pytest.mark.asyncio
    async def test_migrated_step_runs_the_legacy_handler(self, manager, step_registry):
        await manager.start_migration({"handlers": ["AnalyzeArchitectureHandler"]})
        step = step_registry.create("AnalyzeArchitectureStep")

        result = await step.execute(WorkflowContext(data={"taskId": "t-1"}))

        assert result.success
        assert result.data == {"architecture": "layered"}

    @pytest.mark.asyncio
    async def test_construction_failure_degrades(self, manager, step_registry, event_bus):
        """Test that an importable handler that cannot be built falls back."""
        result = await manager.start_migration({"handlers": ["BrokenHandler"]})

        record = result.results[0]
        assert record.status == MigrationStatus.DEGRADED
        assert "constructor needs a database" in record.error
        assert result.degraded_handlers == 1
        assert result.migrated_handlers == 0
        assert result.success
        assert isinstance(step_registry.create("BrokenStep"), FallbackStep)
        assert event_bus.get_history("migration.item.completed")[0]["payload"]["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_unresolvable_handler_fails(self, manager, handler_registry, event_bus):
        result = await manager.start_migration({"handlers": ["GhostHandler", "AnalyzeArchitectureHandler"]})

        records = {record.handler_name: record for record in result.results}
        assert records["GhostHandler"].status == MigrationStatus.FAILED
        assert "not resolvable" in records["GhostHandler"].error
        assert records["AnalyzeArchitectureHandler"].status == MigrationStatus.COMPLETED
        assert not result.success
        assert result.failed_handlers == 1
        assert not handler_registry.has("GhostHandler")
        assert len(event_bus.get_history("migration.item.failed")) == 1

    @pytest.mark.asyncio
    async def test_item_timeout_fails_only_that_item(self, step_registry):
        resolver = ImplementationResolver("legacy", {
            "AnalyzeArchitectureHandler": AnalyzeArchitectureHandler,
            "LateHandler": LateHandler,
        })
        manager = MigrationManager(RecordingFactory(slow=["LateHandler"]), step_registry, legacy_resolver=resolver)

        result = await manager.start_migration({
            "handlers": ["LateHandler", "AnalyzeArchitectureHandler"],
            "migration_timeout": 0.05,
        })

        records = {record.handler_name: record for record in result.results}
        assert records["LateHandler"].status == MigrationStatus.FAILED
        assert "timed out" in records["LateHandler"].error
        assert records["AnalyzeArchitectureHandler"].status == MigrationStatus.COMPLETED


class TestStatusAndHistory:
    """Test read operations."""

    @pytest.mark.asyncio
    async def test_status_reads_are_idempotent(self, manager):
        result = await manager.start_migration({"handlers": ["AnalyzeArchitectureHandler"]})

        first = manager.get_migration_status(result.migration_id)
        second = manager.get_migration_status(result.migration_id)

        assert first == second
        assert first.status == MigrationRunStatus.COMPLETED
        assert first.count(MigrationStatus.COMPLETED) == 1

    @pytest.mark.asyncio
    async def test_unknown_status(self, manager):
        assert manager.get_migration_status("migration_missing") is None

    @pytest.mark.asyncio
    async def test_history_and_statistics(self, manager):
        await manager.start_migration({"handlers": ["AnalyzeArchitectureHandler"]})
        await manager.start_migration({"handlers": ["GhostHandler"]})

        history = manager.get_migration_history()
        stats = manager.get_migration_statistics()

        assert [item.success for item in history] == [True, False]
        assert stats["total"] == 2
        assert stats["success_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_store_keeps_final_snapshot(self, step_registry, migration_resolver):
        store = InMemoryMigrationStore()
        factory = HandlerFactory(adapters=[LegacyHandlerAdapter(migration_resolver)])
        manager = MigrationManager(factory, step_registry, legacy_resolver=migration_resolver, store=store)

        result = await manager.start_migration({"handlers": ["AnalyzeArchitectureHandler"]})

        assert store.list_migrations() == [result.migration_id]
        assert store.load_record(result.migration_id, "AnalyzeArchitectureHandler").status == MigrationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cleanup(self, manager):
        result = await manager.start_migration({"handlers": ["AnalyzeArchitectureHandler"]})

        assert manager.cleanup_migration(result.migration_id) is True
        assert manager.get_migration_status(result.migration_id) is None
        assert manager.get_migration_history() == []


class TestRetryAndRollback:
    """Test retry of failed items and best-effort rollback."""

    @pytest.mark.asyncio
    async def test_retry_failed(self, manager, migration_resolver):
        result = await manager.start_migration({"handlers": ["GhostHandler", "AnalyzeArchitectureHandler"]})
        assert result.failed_handlers == 1

        migration_resolver.register("GhostHandler", LateHandler)
        retried = await manager.retry_failed(result.migration_id)

        records = {record.handler_name: record for record in retried.results}
        assert records["GhostHandler"].status == MigrationStatus.COMPLETED
        assert records["GhostHandler"].attempts == 2
        assert records["AnalyzeArchitectureHandler"].attempts == 1
        assert retried.success
        assert manager.get_migration_status(result.migration_id).status == MigrationRunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_retry_unknown_migration(self, manager):
        with pytest.raises(HandlerException) as exc_info:
            await manager.retry_failed("migration_missing")
        assert exc_info.value.error_type == ErrorType.MIGRATION

    @pytest.mark.asyncio
    async def test_rollback_without_backup(self, manager):
        result = await manager.start_migration({
            "handlers": ["AnalyzeArchitectureHandler"],
            "enable_backup": False,
        })

        outcome = await manager.rollback_migration(result.migration_id)

        assert outcome == {"rolled_back": False, "reason": "No backup available"}

    @pytest.mark.asyncio
    async def test_rollback_disabled(self, manager):
        result = await manager.start_migration({
            "handlers": ["AnalyzeArchitectureHandler"],
            "enable_rollback": False,
        })

        outcome = await manager.rollback_migration(result.migration_id)

        assert outcome == {"rolled_back": False, "reason": "Rollback disabled"}

    @pytest.mark.asyncio
    async def test_rollback_unknown_migration(self, manager):
        outcome = await manager.rollback_migration("migration_missing")
        assert outcome == {"rolled_back": False, "reason": "Migration not found: migration_missing"}

    @pytest.mark.asyncio
    async def test_rollback_undoes_registrations(self, manager, handler_registry, step_registry, event_bus):
        result = await manager.start_migration({
            "handlers": ["AnalyzeArchitectureHandler", "GenerateScriptHandler"],
        })

        outcome = await manager.rollback_migration(result.migration_id)

        assert outcome["rolled_back"] is True
        assert outcome["actions"] == 4
        assert outcome["failed_actions"] == []
        assert len(handler_registry) == 0
        assert step_registry.list_templates() == []
        assert manager.get_migration_status(result.migration_id).status == MigrationRunStatus.ROLLED_BACK
        assert event_bus.get_history("migration.rolled_back")

    @pytest.mark.asyncio
    async def test_manager_level_failure_raises_after_rollback(self, step_registry, event_bus):
        def broken_source():
            raise OSError("handler directory unreadable")

        manager = MigrationManager(
            RecordingFactory(), step_registry, handler_source=broken_source, event_sink=event_bus,
        )

        with pytest.raises(HandlerException) as exc_info:
            await manager.start_migration()

        assert exc_info.value.error_type == ErrorType.MIGRATION
        migration_id = exc_info.value.context["migrationId"]
        assert manager.get_migration_status(migration_id).status == MigrationRunStatus.FAILED
        assert event_bus.get_history("migration.failed")


class TestTestRuns:
    """Test the opt-in test run of migrated steps."""

    @pytest.mark.asyncio
    async def test_passing_test_run_completes(self, manager, handler_registry):
        result = await manager.start_migration({
            "handlers": ["AnalyzeArchitectureHandler"],
            "enable_testing": True,
        })

        record = result.results[0]
        assert record.status == MigrationStatus.COMPLETED
        assert not any("Test" in warning for warning in record.warnings)
        assert handler_registry.has("AnalyzeArchitectureHandler")

    @pytest.mark.asyncio
    async def test_empty_test_result_is_a_warning(self, manager, migration_resolver):
        migration_resolver.register("LateHandler", LateHandler)

        result = await manager.start_migration({"handlers": ["LateHandler"], "enable_testing": True})

        record = result.results[0]
        assert record.status == MigrationStatus.COMPLETED
        assert "Test result is empty" in record.warnings

    @pytest.mark.asyncio
    async def test_failing_test_run_fails_the_item(self, manager, migration_resolver, handler_registry, step_registry):
        migration_resolver.register("ExplodingHandler", ExplodingHandler)

        result = await manager.start_migration({"handlers": ["ExplodingHandler"], "enable_testing": True})

        record = result.results[0]
        assert record.status == MigrationStatus.FAILED
        assert "Test execution failed" in record.error
        assert "report template missing" in record.error
        assert not handler_registry.has("ExplodingHandler")
        assert step_registry.list_templates() == []

    @pytest.mark.asyncio
    async def test_test_run_is_bounded_by_validation_timeout(self, manager, migration_resolver):
        migration_resolver.register("SlowHandler", SlowHandler)

        result = await manager.start_migration({
            "handlers": ["SlowHandler"],
            "enable_testing": True,
            "validation_timeout": 0.05,
        })

        record = result.results[0]
        assert record.status == MigrationStatus.FAILED
        assert "timed out" in record.error

    @pytest.mark.asyncio
    async def test_testing_is_off_by_default(self, manager, migration_resolver):
        migration_resolver.register("ExplodingHandler", ExplodingHandler)

        result = await manager.start_migration({"handlers": ["ExplodingHandler"]})

        assert result.results[0].status == MigrationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_fallback_step_is_not_test_run(self, manager):
        result = await manager.start_migration({"handlers": ["BrokenHandler"], "enable_testing": True})

        record = result.results[0]
        assert record.status == MigrationStatus.DEGRADED
        assert "Test run skipped for fallback step BrokenStep" in record.warnings


class TestMigrateHandler:
    """Test single-handler migration."""

    @pytest.mark.asyncio
    async def test_migrate_one_handler(self, manager, handler_registry):
        record = await manager.migrate_handler("AnalyzeArchitectureHandler")

        assert record.status == MigrationStatus.COMPLETED
        assert record.step_name == "AnalyzeArchitectureStep"
        assert handler_registry.has("AnalyzeArchitectureHandler")
        snapshot = manager.get_migration_status(record.migration_id)
        assert snapshot.count(MigrationStatus.COMPLETED) == 1
        assert len(manager.get_migration_history()) == 1

    @pytest.mark.asyncio
    async def test_options_apply_and_handlers_are_replaced(self, manager, migration_resolver):
        migration_resolver.register("ExplodingHandler", ExplodingHandler)

        record = await manager.migrate_handler(
            "ExplodingHandler",
            {"handlers": ["AnalyzeArchitectureHandler"], "enable_testing": True},
        )

        assert record.handler_name == "ExplodingHandler"
        assert record.status == MigrationStatus.FAILED
        assert manager.get_migration_history()[0].total_handlers == 1

    @pytest.mark.asyncio
    async def test_invalid_descriptor(self, manager):
        with pytest.raises(HandlerException) as exc_info:
            await manager.migrate_handler({"name": ""})
        assert exc_info.value.error_type == ErrorType.CONFIGURATION


class TestExplicitImplementations:
    """Test descriptors that carry their implementation class."""

    @pytest.mark.asyncio
    async def test_implementation_is_bound_by_name(self, manager, migration_resolver, handler_registry):
        record = await manager.migrate_handler({
            "name": "AuditTrailHandler",
            "implementation": AuditTrailHandler,
        })

        assert record.status == MigrationStatus.COMPLETED
        assert migration_resolver.resolve("AuditTrailHandler") is AuditTrailHandler
        assert handler_registry.has("AuditTrailHandler")

        outcome = await manager.rollback_migration(record.migration_id)

        assert outcome["actions"] == 3
        assert "AuditTrailHandler" not in migration_resolver

    @pytest.mark.asyncio
    async def test_rollback_restores_previous_binding(self, manager, migration_resolver):
        record = await manager.migrate_handler({
            "name": "GenerateScriptHandler",
            "implementation": AuditTrailHandler,
        })
        assert migration_resolver.resolve("GenerateScriptHandler") is AuditTrailHandler

        await manager.rollback_migration(record.migration_id)

        assert migration_resolver.resolve("GenerateScriptHandler") is GenerateScriptHandler

    @pytest.mark.asyncio
    async def test_enumerated_implementations_are_not_rebound(self, manager):
        result = await manager.start_migration({"handlers": []})

        actions = manager.rollback.pending_actions(result.migration_id)
        assert actions
        assert not any(action.startswith("unbind") for action in actions)
