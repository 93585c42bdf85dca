"""Compatibility checks for migrated items and whole runs."""
from __future__ import annotations

import inspect
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from ..resolver import ImplementationResolver
from ..validation import ValidationResult
from .classifier import DEFAULT_STEP_KIND, is_kind_determinable
from .models import TERMINAL_STATUSES, HandlerDescriptor, MigrationRecord, MigrationStatus, unified_step_name

logger = logging.getLogger(__name__)

# Test runs slower than this are reported, not failed
SLOW_TEST_SECONDS = 10.0


class MigrationValidator:
    """Validates migrated items and the aggregate outcome of a run."""

    def __init__(self, resolver: Optional[ImplementationResolver[Any]] = None):
        self.resolver = resolver

    def is_importable(self, descriptor: HandlerDescriptor) -> bool:
        """Whether the descriptor's implementation can be located."""
        if descriptor.implementation is not None:
            return inspect.isclass(descriptor.implementation) or callable(
                getattr(descriptor.implementation, "handle", None)
            )
        return self.resolver is not None and descriptor.name in self.resolver

    def validate_item(
        self,
        descriptor: HandlerDescriptor,
        step: Any,
        step_kind: Optional[str],
    ) -> ValidationResult:
        """Check name pairing, importability and step-kind determinability.

        Args:
            descriptor: The legacy handler being migrated
            step: The unified (or fallback) step built for it
            step_kind: Kind the classifier chose
        """
        result = ValidationResult.success()
        expected = unified_step_name(descriptor.name)

        if step is None:
            result.add_error(f"No unified step was created for {descriptor.name}")
        elif getattr(step, "name", None) != expected:
            result.add_error(f"Step name {getattr(step, 'name', None)!r} does not pair with handler {descriptor.name}")

        if not self.is_importable(descriptor):
            result.add_error(f"Handler implementation not resolvable: {descriptor.name}")

        if not step_kind:
            result.add_error(f"Step kind could not be determined for {descriptor.name}")
        elif not is_kind_determinable(descriptor.name):
            result.add_warning(f"No classification rule matched {descriptor.name}; defaulted to {DEFAULT_STEP_KIND}")

        return result

    def validate_run(self, records: Iterable[MigrationRecord]) -> ValidationResult:
        """Aggregate pass over every record of a run.

        Non-terminal records and duplicate step names are errors; failed and
        degraded items are reported as warnings.
        """
        records = list(records)
        result = ValidationResult.success()

        for record in records:
            if record.status not in TERMINAL_STATUSES:
                result.add_error(f"{record.handler_name} did not finish (status {record.status.value})")

        step_names = Counter(record.step_name for record in records if record.step_name)
        for name, count in step_names.items():
            if count > 1:
                result.add_error(f"Step name {name} produced by {count} handlers")

        failed = sum(1 for record in records if record.status == MigrationStatus.FAILED)
        degraded = sum(1 for record in records if record.status == MigrationStatus.DEGRADED)
        if failed:
            result.add_warning(f"{failed} handler(s) failed to migrate")
        if degraded:
            result.add_warning(f"{degraded} handler(s) migrated in degraded mode")
        return result

    @staticmethod
    def create_test_request(descriptor: HandlerDescriptor) -> Dict[str, Any]:
        """Synthetic request used to test-run a migrated step."""
        return {
            "type": descriptor.name,
            "test": True,
            "timestamp": datetime.now().isoformat(),
            "config": dict(descriptor.metadata),
        }

    @staticmethod
    def validate_test_result(outcome: Any, slow_after: float = SLOW_TEST_SECONDS) -> ValidationResult:
        """Fold a test run's StepResult into errors and warnings.

        A failed run is an error; a slow run or one that produced no data is
        only a warning.
        """
        result = ValidationResult.success()
        if not outcome.success:
            result.add_error(f"Test execution failed: {outcome.error or 'unknown error'}")
            return result
        if outcome.duration > slow_after:
            result.add_warning(f"Test execution time is high: {outcome.duration:.2f}s")
        if outcome.data is None or outcome.data == {} or outcome.data == []:
            result.add_warning("Test result is empty")
        return result
