"""Per-execution data bag shared by a step's validate/execute/rollback calls."""
from __future__ import annotations

from typing import Any, Dict, Optional


class WorkflowContext:
    """Mutable key/value store for one step run.

    Collaborator services live in ``data`` under their names; intermediate
    step results are stored under ``result:<step name>``. The context is owned
    by whoever runs the step and is shared by reference, so a step's rollback
    sees whatever its execute wrote.
    """

    RESULT_PREFIX = "result:"

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.data: Dict[str, Any] = dict(data or {})
        self.metadata: Dict[str, Any] = dict(metadata or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def has(self, key: str) -> bool:
        return key in self.data

    def get_service(self, name: str) -> Any:
        """Return the collaborator registered under ``name`` or None."""
        return self.data.get(name)

    def set_service(self, name: str, service: Any) -> None:
        self.data[name] = service

    def set_result(self, step_name: str, result: Any) -> None:
        self.data[f"{self.RESULT_PREFIX}{step_name}"] = result

    def get_result(self, step_name: str) -> Any:
        return self.data.get(f"{self.RESULT_PREFIX}{step_name}")

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    def set_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def __repr__(self) -> str:
        return f"WorkflowContext(keys={sorted(self.data)})"
