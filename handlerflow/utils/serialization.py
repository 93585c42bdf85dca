"""Strict JSON serialization used for request sizing and cache keys."""
from __future__ import annotations

import json
from typing import Any


class SerializationError(ValueError):
    """Raised when a value cannot be fully serialized."""


def _reject_undefined(value: Any, path: str) -> None:
    """Walk containers and reject values JSON would silently coerce.

    ``None`` inside a mapping is treated as an undefined field; cycles are
    left for ``json.dumps(check_circular=True)`` to report.
    """
    stack = [(value, path, 0)]
    while stack:
        current, current_path, depth = stack.pop()
        if depth > 100:
            raise SerializationError(f"Value nested too deeply at {current_path}")
        if isinstance(current, dict):
            for key, item in current.items():
                if not isinstance(key, str):
                    raise SerializationError(f"Non-string key {key!r} at {current_path}")
                child = f"{current_path}.{key}"
                if item is None:
                    raise SerializationError(f"Undefined value at {child}")
                stack.append((item, child, depth + 1))
        elif isinstance(current, (list, tuple)):
            for index, item in enumerate(current):
                stack.append((item, f"{current_path}[{index}]", depth + 1))


def strict_dumps(value: Any, check_undefined: bool = True) -> str:
    """Serialize ``value`` to compact, key-sorted JSON or raise SerializationError.

    Args:
        value: Value to serialize
        check_undefined: Reject ``None`` values inside mappings

    Raises:
        SerializationError: On cycles, unsupported types or undefined values
    """
    try:
        text = json.dumps(value, sort_keys=True, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(f"Value is not serializable: {e}") from e
    if check_undefined:
        _reject_undefined(value, "$")
    return text


def serialized_size(value: Any) -> int:
    """Size in bytes of the UTF-8 encoded JSON form of ``value``.

    Non-serializable leaves are rendered with ``str`` so that sizing never
    fails; strict_dumps reports them separately.
    """
    try:
        text = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError, RecursionError):
        text = str(value)
    return len(text.encode("utf-8"))


def options_key(options: Any) -> str:
    """Stable string form of request options for composite cache keys."""
    return json.dumps(options or {}, sort_keys=True, separators=(",", ":"), default=repr)
