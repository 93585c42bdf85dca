"""
Bulk migration of legacy handlers into unified steps.

Items are processed in fixed-size batches. Batches run strictly one after
another; inside a batch every item runs as its own task. A single item can
only fail itself: construction problems degrade it to a fallback step and
timeouts or errors mark it FAILED. Only manager-level problems (for example,
the handler list cannot be enumerated) raise, after a best-effort rollback.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime
from functools import partial
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from ..config import get_config
from ..error_coordination import ErrorCoordinator, HandlerException, error_coordinator
from ..events import EventSink, safe_emit
from ..handlers.factory import HandlerFactory
from ..handlers.registry import HandlerRegistry
from ..resolver import ImplementationResolver
from ..steps.base import Step
from ..steps.context import WorkflowContext
from ..steps.kinds import FallbackStep
from ..steps.registry import StepRegistry
from ..utils.deadline import run_with_deadline
from ..validation import ValidationResult
from .classifier import classify_step_kind
from .metrics import MigrationMetrics, summarize_batch
from .models import (
    BatchMetrics,
    HandlerDescriptor,
    MigrationOptions,
    MigrationRecord,
    MigrationResult,
    MigrationRunStatus,
    MigrationSnapshot,
    MigrationStatus,
    unified_step_name,
)
from .rollback import MigrationRollback
from .store import InMemoryMigrationStore, MigrationStore
from .tracker import MigrationTracker
from .validator import MigrationValidator

logger = logging.getLogger(__name__)

HandlerSource = Callable[[], Iterable[Union[str, HandlerDescriptor, Dict[str, Any]]]]


def partition(items: Sequence[Any], size: int) -> List[List[Any]]:
    """Split ``items`` into consecutive groups of at most ``size``."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


class MigrationManager:
    """Orchestrates migration runs.

    Example:
        >>> manager = MigrationManager(factory, step_registry, legacy_resolver=resolver)
        >>> result = await manager.start_migration({"handlers": ["AnalyzeArchitectureHandler"]})
        >>> manager.get_migration_status(result.migration_id)
    """

    def __init__(
        self,
        factory: HandlerFactory,
        step_registry: StepRegistry,
        handler_registry: Optional[HandlerRegistry] = None,
        legacy_resolver: Optional[ImplementationResolver[Any]] = None,
        handler_source: Optional[HandlerSource] = None,
        store: Optional[MigrationStore] = None,
        event_sink: Optional[EventSink] = None,
        rollback_timeout: Optional[float] = None,
        errors: Optional[ErrorCoordinator] = None,
    ):
        """Initialize migration manager.

        Args:
            factory: Builds the legacy handlers being migrated
            step_registry: Builds unified steps and receives their templates
            handler_registry: Receives the migrated handlers
            legacy_resolver: Legacy implementations; enumerated when a run names no
                handlers, and bound to by descriptors carrying an implementation.
                Should be the resolver the factory's legacy adapter reads.
            handler_source: Callable enumerating handlers; takes precedence over the resolver
            store: Persistence for records and final snapshots
            event_sink: Receives ``migration.*`` events
            rollback_timeout: Budget in seconds per compensating action
            errors: Error coordinator recording item and run failures
        """
        config = get_config()
        self.factory = factory
        self.step_registry = step_registry
        self.handler_registry = handler_registry if handler_registry is not None else HandlerRegistry(event_sink)
        self.legacy_resolver = legacy_resolver
        self.handler_source = handler_source
        self.store = store if store is not None else InMemoryMigrationStore()
        self.event_sink = event_sink
        self.rollback_timeout = config.rollback_timeout if rollback_timeout is None else rollback_timeout
        self.errors = errors if errors is not None else error_coordinator

        self.tracker = MigrationTracker()
        self.validator = MigrationValidator(legacy_resolver)
        self.rollback = MigrationRollback()
        self.metrics = MigrationMetrics()

        self._options: Dict[str, MigrationOptions] = {}
        self._descriptors: Dict[str, Dict[str, HandlerDescriptor]] = {}
        self._history: Dict[str, MigrationResult] = {}
        self._lock = Lock()

    # ----- public surface ------------------------------------------------------

    async def start_migration(
        self,
        options: Optional[Union[MigrationOptions, Dict[str, Any]]] = None,
    ) -> MigrationResult:
        """Run a migration.

        Args:
            options: MigrationOptions or a dict of its fields

        Returns:
            MigrationResult; per-item failures are reported in it, not raised

        Raises:
            HandlerException: MIGRATION kind on a manager-level failure, after
                a best-effort rollback of whatever the run already did
        """
        options = self._coerce_options(options)
        migration_id = f"migration_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        started_at = datetime.now()
        start = time.perf_counter()

        self.tracker.start_run(migration_id)
        with self._lock:
            self._options[migration_id] = options
        logger.info(f"Starting migration {migration_id}")
        safe_emit(self.event_sink, "migration.started", {"migrationId": migration_id})

        try:
            descriptors = self._enumerate_handlers(options)
            with self._lock:
                self._descriptors[migration_id] = {descriptor.name: descriptor for descriptor in descriptors}
            if options.enable_backup:
                self.rollback.create_backup(migration_id, descriptors)

            batches: List[BatchMetrics] = []
            for index, batch in enumerate(partition(descriptors, options.max_concurrent_migrations)):
                batches.append(await self._run_batch(migration_id, index, batch, options))
        except Exception as e:
            await self._fail_run(migration_id, e)
            raise HandlerException.migration_error(
                f"Migration {migration_id} failed: {e}",
                {"migrationId": migration_id},
            ) from e

        result = self._build_result(migration_id, batches, started_at, time.perf_counter() - start)
        self.tracker.set_run_status(
            migration_id, MigrationRunStatus.COMPLETED if result.success else MigrationRunStatus.FAILED
        )
        self._finish_run(result)
        logger.info(
            f"Migration {migration_id} finished: {result.migrated_handlers} completed, "
            f"{result.degraded_handlers} degraded, {result.failed_handlers} failed"
        )
        safe_emit(self.event_sink, "migration.completed", {
            "migrationId": migration_id,
            "success": result.success,
            "total": result.total_handlers,
            "migrated": result.migrated_handlers,
            "degraded": result.degraded_handlers,
            "failed": result.failed_handlers,
        })
        return result

    async def migrate_handler(
        self,
        descriptor: Union[str, HandlerDescriptor, Dict[str, Any]],
        options: Optional[Union[MigrationOptions, Dict[str, Any]]] = None,
    ) -> MigrationRecord:
        """Migrate a single handler as its own one-item run.

        Args:
            descriptor: Handler name, descriptor dict or HandlerDescriptor
            options: Run options; any ``handlers`` they name are replaced

        Returns:
            The item's final MigrationRecord; its ``migration_id`` identifies the run
        """
        handlers = self._coerce_options({"handlers": [descriptor]}).handlers
        single = self._coerce_options(options).model_copy(update={"handlers": handlers})
        result = await self.start_migration(single)
        return result.results[0]

    def get_migration_status(self, migration_id: str) -> Optional[MigrationSnapshot]:
        """Detached snapshot of a run, or None if unknown."""
        snapshot = self.tracker.snapshot(migration_id)
        if snapshot is None:
            return self.store.load_migration(migration_id)
        return snapshot

    async def rollback_migration(self, migration_id: str) -> Dict[str, Any]:
        """Undo what a run registered, best-effort.

        Returns:
            ``{"rolled_back": False, "reason": ...}`` when the run is unknown,
            rollback is disabled or no backup exists; otherwise the outcome of
            the compensating actions
        """
        with self._lock:
            options = self._options.get(migration_id)
        if options is None and not self.tracker.has_run(migration_id):
            return {"rolled_back": False, "reason": f"Migration not found: {migration_id}"}
        if options is not None and not options.enable_rollback:
            return {"rolled_back": False, "reason": "Rollback disabled"}
        if not self.rollback.has_backup(migration_id):
            return {"rolled_back": False, "reason": "No backup available"}

        outcome = await self.rollback.rollback(migration_id, self.rollback_timeout)
        if self.tracker.has_run(migration_id):
            self.tracker.set_run_status(migration_id, MigrationRunStatus.ROLLED_BACK)
        safe_emit(self.event_sink, "migration.rolled_back", {
            "migrationId": migration_id,
            "failedActions": len(outcome["failed_actions"]),
        })
        return outcome

    async def retry_failed(self, migration_id: str) -> MigrationResult:
        """Reset the FAILED items of a run to PENDING and migrate them again.

        Returns:
            MigrationResult over every item of the run after the retry

        Raises:
            HandlerException: MIGRATION kind if the run is unknown
        """
        with self._lock:
            options = self._options.get(migration_id)
            descriptors = dict(self._descriptors.get(migration_id, {}))
        if options is None or not self.tracker.has_run(migration_id):
            raise HandlerException.migration_error(f"Migration not found: {migration_id}")

        failed = self.tracker.get_records(migration_id, MigrationStatus.FAILED)
        logger.info(f"Retrying {len(failed)} failed item(s) of migration {migration_id}")
        start = time.perf_counter()
        self.tracker.set_run_status(migration_id, MigrationRunStatus.RUNNING)

        retried = []
        for record in failed:
            self.tracker.retry(migration_id, record.id)
            retried.append(record)

        with self._lock:
            previous = self._history.get(migration_id)
        batches = list(previous.batches) if previous else []
        next_index = len(batches)
        for offset, group in enumerate(partition(retried, options.max_concurrent_migrations)):
            batches.append(await self._run_batch(
                migration_id,
                next_index + offset,
                [descriptors[record.handler_name] for record in group],
                options,
                records=group,
            ))

        started_at = previous.started_at if previous else datetime.now()
        duration = (previous.duration if previous else 0.0) + (time.perf_counter() - start)
        result = self._build_result(migration_id, batches, started_at, duration)
        self.tracker.set_run_status(
            migration_id, MigrationRunStatus.COMPLETED if result.success else MigrationRunStatus.FAILED
        )
        self._finish_run(result)
        safe_emit(self.event_sink, "migration.retried", {"migrationId": migration_id, "retried": len(retried)})
        return result

    def get_migration_history(self) -> List[MigrationResult]:
        """Results of finished runs, oldest first."""
        with self._lock:
            return list(self._history.values())

    def get_migration_statistics(self) -> Dict[str, Any]:
        return self.metrics.get_statistics()

    def cleanup_migration(self, migration_id: str) -> bool:
        """Forget everything about a run: records, backup, history and stored snapshot."""
        removed = self.tracker.cleanup(migration_id)
        self.rollback.discard(migration_id)
        self.metrics.forget(migration_id)
        removed = self.store.delete_migration(migration_id) or removed
        with self._lock:
            removed = self._history.pop(migration_id, None) is not None or removed
            self._options.pop(migration_id, None)
            self._descriptors.pop(migration_id, None)
        return removed

    # ----- run internals -------------------------------------------------------

    @staticmethod
    def _coerce_options(options: Optional[Union[MigrationOptions, Dict[str, Any]]]) -> MigrationOptions:
        if options is None:
            return MigrationOptions()
        if isinstance(options, MigrationOptions):
            return options
        try:
            return MigrationOptions(**options)
        except Exception as e:
            raise HandlerException.configuration_error(f"Invalid migration options: {e}") from e

    def _enumerate_handlers(self, options: MigrationOptions) -> List[HandlerDescriptor]:
        """Handlers to migrate: explicit options, else the handler source, else the resolver."""
        if options.handlers:
            return list(options.handlers)
        if self.handler_source is not None:
            return MigrationOptions(handlers=list(self.handler_source())).handlers
        if self.legacy_resolver is not None:
            return [
                HandlerDescriptor(name=name, implementation=implementation)
                for name, implementation in self.legacy_resolver.snapshot().items()
            ]
        return []

    async def _run_batch(
        self,
        migration_id: str,
        index: int,
        descriptors: List[HandlerDescriptor],
        options: MigrationOptions,
        records: Optional[List[MigrationRecord]] = None,
    ) -> BatchMetrics:
        """Run one batch and wait for every item in it to settle."""
        if records is None:
            records = [
                self.tracker.create_record(migration_id, descriptor.name, batch_index=index)
                for descriptor in descriptors
            ]
        batch = BatchMetrics(index=index, size=len(descriptors))
        start = time.perf_counter()
        safe_emit(self.event_sink, "migration.batch.started", {
            "migrationId": migration_id,
            "batch": index,
            "size": len(descriptors),
        })

        outcomes = await asyncio.gather(
            *(self._migrate_item(migration_id, record, descriptor, options)
              for record, descriptor in zip(records, descriptors)),
            return_exceptions=True,
        )
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Migration task for {record.handler_name} raised: {outcome}")
                self._settle_unexpected(migration_id, record, outcome)

        batch.completed_at = datetime.now()
        batch.duration = time.perf_counter() - start
        settled = [self.tracker.get_record(migration_id, record.id) for record in records]
        summarize_batch(batch, [record for record in settled if record is not None])
        safe_emit(self.event_sink, "migration.batch.completed", {
            "migrationId": migration_id,
            "batch": index,
            "completed": batch.completed,
            "degraded": batch.degraded,
            "failed": batch.failed,
        })
        return batch

    def _settle_unexpected(self, migration_id: str, record: MigrationRecord, error: BaseException) -> None:
        current = self.tracker.get_record(migration_id, record.id)
        if current is None or current.is_terminal():
            return
        if current.status == MigrationStatus.PENDING:
            self.tracker.transition(migration_id, record.id, MigrationStatus.MIGRATING)
        self.tracker.transition(migration_id, record.id, MigrationStatus.FAILED, error=str(error))

    async def _migrate_item(
        self,
        migration_id: str,
        record: MigrationRecord,
        descriptor: HandlerDescriptor,
        options: MigrationOptions,
    ) -> MigrationRecord:
        """Migrate one handler under the per-item deadline."""
        self.tracker.transition(migration_id, record.id, MigrationStatus.MIGRATING)
        try:
            status, error, warnings = await run_with_deadline(
                self._convert(migration_id, record, descriptor, options),
                options.migration_timeout,
                f"Migration of {descriptor.name}",
            )
        except Exception as e:
            handler_error = e if isinstance(e, HandlerException) else HandlerException.migration_error(str(e))
            self.errors.record_error(handler_error, operation="migration.item")
            status, error, warnings = MigrationStatus.FAILED, handler_error.message, []

        final = self.tracker.transition(migration_id, record.id, status, error=error, warnings=warnings)
        self.store.save_record(migration_id, final)
        event = "migration.item.failed" if status == MigrationStatus.FAILED else "migration.item.completed"
        safe_emit(self.event_sink, event, {
            "migrationId": migration_id,
            "handler": descriptor.name,
            "status": status.value,
            "error": error,
        })
        return final

    async def _convert(
        self,
        migration_id: str,
        record: MigrationRecord,
        descriptor: HandlerDescriptor,
        options: MigrationOptions,
    ):
        """Classify, build, validate, optionally test-run and register one item.

        Returns:
            (status, error, warnings)
        """
        name = descriptor.name
        step_kind = classify_step_kind(name)
        step_name = unified_step_name(name)
        self.tracker.update(migration_id, record.id, step_kind=step_kind, step_name=step_name)

        warnings: List[str] = []
        handler = None
        degraded_reason: Optional[str] = None
        self._bind_implementation(migration_id, descriptor)
        try:
            handler = await self.factory.create_handler(descriptor.to_request())
        except Exception as e:
            degraded_reason = f"Handler construction failed: {e}"

        step: Optional[Step] = None
        if handler is not None:
            try:
                step = self.step_registry.create(step_kind, {
                    "name": step_name,
                    "handler": handler,
                    "handler_name": name,
                    "description": f"Unified step migrated from {name}",
                })
            except Exception as e:
                degraded_reason = f"Step construction failed: {e}"

        if step is None:
            logger.warning(f"Falling back for {name}: {degraded_reason}")
            step = FallbackStep(name=step_name, handler_name=name, reason=degraded_reason)
            warnings.append(degraded_reason or "Fallback step used")

        if options.enable_validation:
            validation = self.validator.validate_item(descriptor, step, step_kind)
            warnings.extend(validation.warnings)
            if not validation.is_valid:
                return MigrationStatus.FAILED, "; ".join(validation.errors), warnings

        if options.enable_testing:
            if isinstance(step, FallbackStep):
                warnings.append(f"Test run skipped for fallback step {step_name}")
            else:
                test = await self._test_item(descriptor, step, options)
                warnings.extend(test.warnings)
                if not test.is_valid:
                    return MigrationStatus.FAILED, "; ".join(test.errors), warnings

        if options.register_steps:
            warnings.extend(self._register(migration_id, name, handler, step, step_kind))

        if isinstance(step, FallbackStep):
            return MigrationStatus.DEGRADED, degraded_reason, warnings
        return MigrationStatus.COMPLETED, None, warnings

    def _bind_implementation(self, migration_id: str, descriptor: HandlerDescriptor) -> None:
        """Make an explicit implementation resolvable under the descriptor's name."""
        implementation = descriptor.implementation
        if implementation is None or self.legacy_resolver is None:
            return
        name = descriptor.name
        previous = self.legacy_resolver.resolve(name)
        if previous is implementation:
            return

        self.legacy_resolver.register(name, implementation)
        if previous is None:
            undo = partial(self.legacy_resolver.unregister, name)
        else:
            undo = partial(self.legacy_resolver.register, name, previous)
        self.rollback.record_action(migration_id, f"unbind implementation {name}", undo)

    async def _test_item(
        self, descriptor: HandlerDescriptor, step: Step, options: MigrationOptions
    ) -> ValidationResult:
        """Run the migrated step once with a synthetic request.

        Returns:
            ValidationResult; a timeout is reported as an error, not raised
        """
        context = WorkflowContext(data={
            "request": self.validator.create_test_request(descriptor),
            "taskId": f"test_{descriptor.name}",
        })
        try:
            outcome = await run_with_deadline(
                step.execute(context),
                options.validation_timeout,
                f"Test run of {descriptor.name}",
            )
        except HandlerException as e:
            logger.warning(f"Test run of {descriptor.name} failed: {e.message}")
            return ValidationResult.failure(f"Test execution failed: {e.message}")
        return self.validator.validate_test_result(outcome)

    def _register(
        self,
        migration_id: str,
        name: str,
        handler: Any,
        step: Step,
        step_kind: str,
    ) -> List[str]:
        """Register the handler and step template, recording how to undo each."""
        warnings = []
        if handler is not None:
            try:
                self.handler_registry.register(handler, name)
                self.rollback.record_action(
                    migration_id, f"unregister handler {name}",
                    lambda: self.handler_registry.unregister(name),
                )
            except Exception as e:
                logger.warning(f"Could not register handler {name}: {e}")
                warnings.append(f"Handler registration failed: {e}")

        template_kind = step.kind if isinstance(step, FallbackStep) else step_kind
        template_options = {"handler": handler, "handler_name": name}
        if isinstance(step, FallbackStep):
            template_options = {"handler_name": name, "reason": step.reason}
        try:
            self.step_registry.register_template(step.name, template_kind, template_options)
            self.rollback.record_action(
                migration_id, f"unregister step template {step.name}",
                lambda: self.step_registry.unregister_template(step.name),
            )
        except Exception as e:
            logger.warning(f"Could not register step template {step.name}: {e}")
            warnings.append(f"Step registration failed: {e}")
        return warnings

    def _build_result(
        self,
        migration_id: str,
        batches: List[BatchMetrics],
        started_at: datetime,
        duration: float,
    ) -> MigrationResult:
        records = self.tracker.get_records(migration_id)
        validation = self.validator.validate_run(records)
        failed = sum(1 for record in records if record.status == MigrationStatus.FAILED)
        return MigrationResult(
            migration_id=migration_id,
            success=failed == 0 and validation.is_valid,
            total_handlers=len(records),
            migrated_handlers=sum(1 for record in records if record.status == MigrationStatus.COMPLETED),
            failed_handlers=failed,
            degraded_handlers=sum(1 for record in records if record.status == MigrationStatus.DEGRADED),
            duration=duration,
            results=records,
            batches=batches,
            validation=validation,
            started_at=started_at,
            completed_at=datetime.now(),
        )

    def _finish_run(self, result: MigrationResult) -> None:
        with self._lock:
            self._history[result.migration_id] = result
        self.metrics.record_run(result)
        snapshot = self.tracker.snapshot(result.migration_id)
        if snapshot is not None:
            try:
                self.store.save_migration(result.migration_id, snapshot)
            except Exception as e:
                logger.error(f"Failed to persist migration {result.migration_id}: {e}")

    async def _fail_run(self, migration_id: str, error: Exception) -> None:
        """Manager-level failure: roll back best-effort and mark the run failed."""
        logger.error(f"Migration {migration_id} failed: {error}")
        self.errors.record_error(error, operation="migration.run")
        try:
            outcome = await self.rollback.rollback(migration_id, self.rollback_timeout)
            logger.info(f"Rolled back {outcome['actions']} action(s) of failed migration {migration_id}")
        except Exception as rollback_error:
            logger.error(f"Rollback of {migration_id} failed: {rollback_error}")
        self.tracker.set_run_status(migration_id, MigrationRunStatus.FAILED)
        safe_emit(self.event_sink, "migration.failed", {"migrationId": migration_id, "error": str(error)})
