"""Per-item migration state machine."""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional

from ..error_coordination import HandlerException
from .models import (
    ALLOWED_TRANSITIONS,
    RETRYABLE_STATUSES,
    TERMINAL_STATUSES,
    MigrationRecord,
    MigrationRunStatus,
    MigrationSnapshot,
    MigrationStatus,
)

logger = logging.getLogger(__name__)


class _Run:
    def __init__(self, migration_id: str):
        self.migration_id = migration_id
        self.status = MigrationRunStatus.RUNNING
        self.started_at = datetime.now()
        self.completed_at: Optional[datetime] = None
        self.records: "OrderedDict[str, MigrationRecord]" = OrderedDict()


class MigrationTracker:
    """Tracks runs and their item records.

    Records move forward only: PENDING -> MIGRATING -> COMPLETED, DEGRADED or
    FAILED. An illegal transition is a programming error and raises. Moving a
    finished record back to PENDING is possible only through :meth:`retry`.
    """

    def __init__(self):
        self._runs: Dict[str, _Run] = {}
        self._lock = Lock()

    @staticmethod
    def record_id(migration_id: str, handler_name: str) -> str:
        return f"{migration_id}:{handler_name}"

    def start_run(self, migration_id: str) -> None:
        with self._lock:
            if migration_id in self._runs:
                raise HandlerException.migration_error(f"Migration already tracked: {migration_id}")
            self._runs[migration_id] = _Run(migration_id)

    def has_run(self, migration_id: str) -> bool:
        with self._lock:
            return migration_id in self._runs

    def set_run_status(self, migration_id: str, status: MigrationRunStatus) -> None:
        with self._lock:
            run = self._require_run(migration_id)
            run.status = status
            if status != MigrationRunStatus.RUNNING:
                run.completed_at = datetime.now()
            else:
                run.completed_at = None

    def run_ids(self) -> List[str]:
        with self._lock:
            return list(self._runs)

    def _require_run(self, migration_id: str) -> _Run:
        run = self._runs.get(migration_id)
        if run is None:
            raise HandlerException.migration_error(f"Migration not found: {migration_id}")
        return run

    def create_record(self, migration_id: str, handler_name: str, batch_index: int = 0) -> MigrationRecord:
        """Create a PENDING record for ``handler_name``.

        Returns:
            A detached copy of the new record
        """
        with self._lock:
            run = self._require_run(migration_id)
            record_id = self.record_id(migration_id, handler_name)
            if record_id in run.records:
                raise HandlerException.migration_error(f"Duplicate migration item: {handler_name}")
            record = MigrationRecord(
                id=record_id,
                migration_id=migration_id,
                handler_name=handler_name,
                batch_index=batch_index,
            )
            run.records[record_id] = record
            return record.copy()

    def _require_record(self, migration_id: str, record_id: str) -> MigrationRecord:
        run = self._require_run(migration_id)
        record = run.records.get(record_id)
        if record is None:
            raise HandlerException.migration_error(f"Migration item not found: {record_id}")
        return record

    def transition(
        self,
        migration_id: str,
        record_id: str,
        status: MigrationStatus,
        error: Optional[str] = None,
        warnings: Optional[List[str]] = None,
    ) -> MigrationRecord:
        """Move a record to ``status``.

        Raises:
            HandlerException: MIGRATION kind on an illegal transition
        """
        with self._lock:
            record = self._require_record(migration_id, record_id)
            if status not in ALLOWED_TRANSITIONS[record.status]:
                raise HandlerException.migration_error(
                    f"Illegal migration transition {record.status.value} -> {status.value} for {record.handler_name}",
                    {"record": record_id, "from": record.status.value, "to": status.value},
                )

            now = datetime.now()
            record.status = status
            if status == MigrationStatus.MIGRATING:
                record.started_at = now
                record.attempts += 1
            elif status in TERMINAL_STATUSES:
                record.completed_at = now
                if record.started_at is not None:
                    record.duration = (now - record.started_at).total_seconds()
                record.error = error
            if warnings:
                record.warnings.extend(warnings)
            return record.copy()

    def update(self, migration_id: str, record_id: str, **fields: Any) -> MigrationRecord:
        """Set descriptive fields (step kind, step name) without changing status."""
        allowed = {"step_kind", "step_name"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        with self._lock:
            record = self._require_record(migration_id, record_id)
            for name, value in fields.items():
                setattr(record, name, value)
            return record.copy()

    def retry(self, migration_id: str, record_id: str) -> MigrationRecord:
        """Explicitly reset a FAILED or DEGRADED record to PENDING.

        Raises:
            HandlerException: MIGRATION kind if the record is not retryable
        """
        with self._lock:
            record = self._require_record(migration_id, record_id)
            if record.status not in RETRYABLE_STATUSES:
                raise HandlerException.migration_error(
                    f"Cannot retry {record.handler_name} in status {record.status.value}",
                    {"record": record_id},
                )
            record.status = MigrationStatus.PENDING
            record.error = None
            record.started_at = None
            record.completed_at = None
            record.duration = 0.0
            logger.info(f"Reset {record.handler_name} to pending for retry")
            return record.copy()

    def get_record(self, migration_id: str, record_id: str) -> Optional[MigrationRecord]:
        with self._lock:
            run = self._runs.get(migration_id)
            if run is None or record_id not in run.records:
                return None
            return run.records[record_id].copy()

    def get_records(self, migration_id: str, status: Optional[MigrationStatus] = None) -> List[MigrationRecord]:
        with self._lock:
            run = self._runs.get(migration_id)
            if run is None:
                return []
            return [
                record.copy() for record in run.records.values()
                if status is None or record.status == status
            ]

    def snapshot(self, migration_id: str) -> Optional[MigrationSnapshot]:
        """Detached copy of a run; repeated calls without mutation compare equal."""
        with self._lock:
            run = self._runs.get(migration_id)
            if run is None:
                return None
            return MigrationSnapshot(
                migration_id=run.migration_id,
                status=run.status,
                records=tuple(record.copy() for record in run.records.values()),
                started_at=run.started_at,
                completed_at=run.completed_at,
            )

    def cleanup(self, migration_id: str) -> bool:
        with self._lock:
            return self._runs.pop(migration_id, None) is not None
