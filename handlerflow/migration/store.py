"""Migration record persistence."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, List, Optional

from .models import MigrationRecord, MigrationSnapshot

logger = logging.getLogger(__name__)


class MigrationStore(ABC):
    """Abstract base class for migration record persistence.

    Records are keyed by migration id and handler name.
    """

    @abstractmethod
    def save_record(self, migration_id: str, record: MigrationRecord) -> bool:
        """Save one item record.

        Args:
            migration_id: Migration identifier
            record: Record to save

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    def save_migration(self, migration_id: str, snapshot: MigrationSnapshot) -> bool:
        """Save the final snapshot of a run.

        Args:
            migration_id: Migration identifier
            snapshot: Snapshot to save

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    def load_migration(self, migration_id: str) -> Optional[MigrationSnapshot]:
        """Load a saved snapshot, or None."""
        pass

    @abstractmethod
    def delete_migration(self, migration_id: str) -> bool:
        """Delete a run and its records.

        Returns:
            True if something was deleted
        """
        pass

    @abstractmethod
    def list_migrations(self) -> List[str]:
        """Ids of saved runs."""
        pass


class InMemoryMigrationStore(MigrationStore):
    """In-memory migration store for development/testing."""

    def __init__(self):
        self._snapshots: Dict[str, MigrationSnapshot] = {}
        self._records: Dict[str, Dict[str, MigrationRecord]] = {}
        self._lock = Lock()

    def save_record(self, migration_id: str, record: MigrationRecord) -> bool:
        with self._lock:
            self._records.setdefault(migration_id, {})[record.handler_name] = record.copy()
            return True

    def load_record(self, migration_id: str, handler_name: str) -> Optional[MigrationRecord]:
        with self._lock:
            record = self._records.get(migration_id, {}).get(handler_name)
            return record.copy() if record else None

    def save_migration(self, migration_id: str, snapshot: MigrationSnapshot) -> bool:
        with self._lock:
            self._snapshots[migration_id] = snapshot
            logger.debug(f"Saved migration {migration_id} in memory")
            return True

    def load_migration(self, migration_id: str) -> Optional[MigrationSnapshot]:
        with self._lock:
            return self._snapshots.get(migration_id)

    def delete_migration(self, migration_id: str) -> bool:
        with self._lock:
            deleted = self._snapshots.pop(migration_id, None) is not None
            deleted = self._records.pop(migration_id, None) is not None or deleted
            if deleted:
                logger.debug(f"Deleted migration {migration_id}")
            return deleted

    def list_migrations(self) -> List[str]:
        with self._lock:
            return list(self._snapshots)
