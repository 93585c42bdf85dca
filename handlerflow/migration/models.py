"""
Migration data models.

Run options and handler descriptors are pydantic models validated on entry;
per-item records and results are plain dataclasses owned by the tracker.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import get_config
from ..validation import ValidationResult


class MigrationStatus(Enum):
    """Per-item migration status."""

    PENDING = "pending"
    MIGRATING = "migrating"
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"


TERMINAL_STATUSES: FrozenSet[MigrationStatus] = frozenset(
    {MigrationStatus.COMPLETED, MigrationStatus.DEGRADED, MigrationStatus.FAILED}
)

# Forward-only transitions; retry is a separate, explicit operation
ALLOWED_TRANSITIONS: Dict[MigrationStatus, FrozenSet[MigrationStatus]] = {
    MigrationStatus.PENDING: frozenset({MigrationStatus.MIGRATING}),
    MigrationStatus.MIGRATING: TERMINAL_STATUSES,
    MigrationStatus.COMPLETED: frozenset(),
    MigrationStatus.DEGRADED: frozenset(),
    MigrationStatus.FAILED: frozenset(),
}

RETRYABLE_STATUSES: FrozenSet[MigrationStatus] = frozenset({MigrationStatus.FAILED, MigrationStatus.DEGRADED})


class MigrationRunStatus(Enum):
    """Status of a whole migration run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


def unified_step_name(handler_name: str) -> str:
    """Name of the unified step paired with a legacy handler.

    ``AnalyzeArchitectureHandler`` pairs with ``AnalyzeArchitectureStep``.
    """
    if handler_name.endswith("Handler") and len(handler_name) > len("Handler"):
        return handler_name[: -len("Handler")] + "Step"
    return f"{handler_name}Step"


class HandlerDescriptor(BaseModel):
    """A legacy handler to migrate.

    ``implementation`` is optional; when given, the manager binds it into the
    legacy resolver under ``name``, undone on rollback, so the factory request
    itself only ever carries the name.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    implementation: Any = None
    handler_path: Optional[str] = None
    request: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_request(self) -> Dict[str, Any]:
        """Factory request that builds this handler through the legacy adapter."""
        request: Dict[str, Any] = {"handlerClass": self.name}
        if self.handler_path:
            request["handlerPath"] = self.handler_path
        request.update(self.request)
        return request


class MigrationOptions(BaseModel):
    """Options for one migration run, defaulting to the engine configuration."""

    handlers: List[HandlerDescriptor] = Field(default_factory=list)
    max_concurrent_migrations: int = Field(
        default_factory=lambda: get_config().max_concurrent_migrations, ge=1, le=100
    )
    migration_timeout: float = Field(default_factory=lambda: get_config().migration_timeout, gt=0)
    enable_backup: bool = Field(default_factory=lambda: get_config().enable_backup)
    enable_rollback: bool = True
    enable_validation: bool = Field(default_factory=lambda: get_config().enable_validation)
    enable_testing: bool = False
    validation_timeout: float = Field(default_factory=lambda: get_config().validation_timeout, gt=0)
    register_steps: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("handlers", mode="before")
    @classmethod
    def coerce_handlers(cls, v):
        """Accept bare handler names next to descriptor dicts and models."""
        if v is None:
            return []
        return [{"name": item} if isinstance(item, str) else item for item in v]

    @field_validator("handlers")
    @classmethod
    def validate_handlers(cls, v):
        """Reject duplicate handler names."""
        seen = set()
        for descriptor in v:
            if descriptor.name in seen:
                raise ValueError(f"Duplicate handler name: {descriptor.name}")
            seen.add(descriptor.name)
        return v


@dataclass
class MigrationRecord:
    """State of one migration item."""

    id: str
    migration_id: str
    handler_name: str
    status: MigrationStatus = MigrationStatus.PENDING
    step_kind: Optional[str] = None
    step_name: Optional[str] = None
    batch_index: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: float = 0.0
    error: Optional[str] = None
    attempts: int = 0
    warnings: List[str] = field(default_factory=list)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def copy(self) -> "MigrationRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "migrationId": self.migration_id,
            "handlerName": self.handler_name,
            "status": self.status.value,
            "stepKind": self.step_kind,
            "stepName": self.step_name,
            "batchIndex": self.batch_index,
            "createdAt": self.created_at.isoformat(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
            "error": self.error,
            "attempts": self.attempts,
            "warnings": list(self.warnings),
        }


@dataclass
class BatchMetrics:
    """Timing and outcome counts of one batch."""

    index: int
    size: int
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: float = 0.0
    completed: int = 0
    degraded: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "size": self.size,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
            "completed": self.completed,
            "degraded": self.degraded,
            "failed": self.failed,
        }


@dataclass
class MigrationResult:
    """Final result of a migration run."""

    migration_id: str
    success: bool
    total_handlers: int
    migrated_handlers: int
    failed_handlers: int
    degraded_handlers: int
    duration: float
    results: List[MigrationRecord] = field(default_factory=list)
    batches: List[BatchMetrics] = field(default_factory=list)
    validation: ValidationResult = field(default_factory=ValidationResult)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def batch_sizes(self) -> List[int]:
        return [batch.size for batch in self.batches]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "migrationId": self.migration_id,
            "success": self.success,
            "totalHandlers": self.total_handlers,
            "migratedHandlers": self.migrated_handlers,
            "failedHandlers": self.failed_handlers,
            "degradedHandlers": self.degraded_handlers,
            "duration": self.duration,
            "results": [record.to_dict() for record in self.results],
            "batches": [batch.to_dict() for batch in self.batches],
            "validation": self.validation.to_dict(),
            "error": self.error,
        }


@dataclass(frozen=True)
class MigrationSnapshot:
    """Point-in-time, detached view of a migration run."""

    migration_id: str
    status: MigrationRunStatus
    records: Tuple[MigrationRecord, ...]
    started_at: datetime
    completed_at: Optional[datetime] = None

    def count(self, status: MigrationStatus) -> int:
        return sum(1 for record in self.records if record.status == status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "migrationId": self.migration_id,
            "status": self.status.value,
            "records": [record.to_dict() for record in self.records],
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
