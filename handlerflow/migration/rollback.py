"""
Best-effort rollback of migration runs.

Rollback here is partial: a run records a backup of what it is
about to migrate plus a list of compensating actions (unregistering the
handlers and step templates it added). Rolling back runs those actions in
reverse order; a failing action is reported and the rest still run. Nothing
about this is transactional.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..error_coordination import HandlerException
from ..utils.deadline import maybe_await, run_with_deadline
from .models import HandlerDescriptor

logger = logging.getLogger(__name__)


@dataclass
class CompensatingAction:
    """One undo step recorded during a migration."""

    description: str
    undo: Callable[[], Any]
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class MigrationBackup:
    """What a run was about to migrate."""

    id: str
    migration_id: str
    handlers: List[str]
    timestamp: datetime = field(default_factory=datetime.now)


class MigrationRollback:
    """Backups and compensating actions per migration id."""

    def __init__(self):
        self._backups: Dict[str, MigrationBackup] = {}
        self._actions: Dict[str, List[CompensatingAction]] = {}
        self._lock = Lock()

    def create_backup(self, migration_id: str, descriptors: Iterable[HandlerDescriptor]) -> MigrationBackup:
        backup = MigrationBackup(
            id=f"backup_{uuid.uuid4().hex[:12]}",
            migration_id=migration_id,
            handlers=[descriptor.name for descriptor in descriptors],
        )
        with self._lock:
            self._backups[migration_id] = backup
        logger.debug(f"Created backup {backup.id} for migration {migration_id}")
        return backup

    def has_backup(self, migration_id: str) -> bool:
        with self._lock:
            return migration_id in self._backups

    def get_backup(self, migration_id: str) -> Optional[MigrationBackup]:
        with self._lock:
            return self._backups.get(migration_id)

    def record_action(self, migration_id: str, description: str, undo: Callable[[], Any]) -> None:
        with self._lock:
            self._actions.setdefault(migration_id, []).append(CompensatingAction(description, undo))

    def pending_actions(self, migration_id: str) -> List[str]:
        with self._lock:
            return [action.description for action in self._actions.get(migration_id, [])]

    async def rollback(self, migration_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Run the compensating actions of ``migration_id`` in reverse order.

        Args:
            migration_id: Migration to roll back
            timeout: Budget in seconds for each action

        Returns:
            ``{"rolled_back", "migration_id", "backup_id", "actions", "failed_actions"}``
        """
        with self._lock:
            actions = self._actions.pop(migration_id, [])
            backup = self._backups.get(migration_id)

        failed: List[Dict[str, str]] = []
        for action in reversed(actions):
            try:
                await run_with_deadline(maybe_await(action.undo), timeout, f"Rollback action '{action.description}'")
            except HandlerException as e:
                failed.append({"action": action.description, "error": e.message})
            except Exception as e:
                failed.append({"action": action.description, "error": str(e)})

        for failure in failed:
            logger.error(f"Rollback action failed for {migration_id}: {failure['action']}: {failure['error']}")
        logger.info(f"Rolled back migration {migration_id}: {len(actions) - len(failed)}/{len(actions)} actions succeeded")

        return {
            "rolled_back": True,
            "migration_id": migration_id,
            "backup_id": backup.id if backup else None,
            "restored": [] if backup is None else list(backup.handlers),
            "actions": len(actions),
            "failed_actions": failed,
        }

    def discard(self, migration_id: str) -> None:
        with self._lock:
            self._backups.pop(migration_id, None)
            self._actions.pop(migration_id, None)
