"""Batched migration of legacy handlers into unified steps."""

from .classifier import DEFAULT_STEP_KIND, STEP_KIND_RULES, classify_step_kind, is_kind_determinable
from .manager import MigrationManager, partition
from .metrics import MigrationMetrics
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
from .rollback import MigrationBackup, MigrationRollback
from .store import InMemoryMigrationStore, MigrationStore
from .tracker import MigrationTracker
from .validator import MigrationValidator

__all__ = [
    "MigrationManager",
    "MigrationOptions",
    "HandlerDescriptor",
    "MigrationRecord",
    "MigrationResult",
    "MigrationSnapshot",
    "MigrationStatus",
    "MigrationRunStatus",
    "BatchMetrics",
    "MigrationTracker",
    "MigrationValidator",
    "MigrationRollback",
    "MigrationBackup",
    "MigrationMetrics",
    "MigrationStore",
    "InMemoryMigrationStore",
    "DEFAULT_STEP_KIND",
    "STEP_KIND_RULES",
    "classify_step_kind",
    "is_kind_determinable",
    "unified_step_name",
    "partition",
]
