"""Run-level migration statistics."""
from __future__ import annotations

from threading import Lock
from typing import Any, Dict, Iterable

from .models import BatchMetrics, MigrationRecord, MigrationResult, MigrationStatus


def summarize_batch(batch: BatchMetrics, records: Iterable[MigrationRecord]) -> BatchMetrics:
    """Fill the outcome counts of ``batch`` from its settled records."""
    for record in records:
        if record.status == MigrationStatus.COMPLETED:
            batch.completed += 1
        elif record.status == MigrationStatus.DEGRADED:
            batch.degraded += 1
        elif record.status == MigrationStatus.FAILED:
            batch.failed += 1
    return batch


class MigrationMetrics:
    """Aggregates finished runs into totals and rates."""

    def __init__(self):
        self._lock = Lock()
        self._runs: Dict[str, Dict[str, Any]] = {}

    def record_run(self, result: MigrationResult) -> None:
        with self._lock:
            self._runs[result.migration_id] = {
                "success": result.success,
                "duration": result.duration,
                "items": result.total_handlers,
                "migrated": result.migrated_handlers,
                "degraded": result.degraded_handlers,
                "failed": result.failed_handlers,
                "batches": len(result.batches),
            }

    def forget(self, migration_id: str) -> None:
        with self._lock:
            self._runs.pop(migration_id, None)

    def get_statistics(self) -> Dict[str, Any]:
        """Totals over recorded runs; ``success_rate`` is a percentage."""
        with self._lock:
            runs = list(self._runs.values())
        total = len(runs)
        successful = sum(1 for run in runs if run["success"])
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": (successful / total) * 100 if total else 0.0,
            "average_duration": sum(run["duration"] for run in runs) / total if total else 0.0,
            "total_items": sum(run["items"] for run in runs),
            "migrated_items": sum(run["migrated"] for run in runs),
            "degraded_items": sum(run["degraded"] for run in runs),
            "failed_items": sum(run["failed"] for run in runs),
            "total_batches": sum(run["batches"] for run in runs),
        }
