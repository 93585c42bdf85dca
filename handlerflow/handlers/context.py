"""Per-request execution context handed to handlers."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Mapping, Optional


class HandlerContext:
    """Execution context for a single handler invocation.

    The request and response are references owned by the caller and are
    treated as read-only by the engine. ``data`` and ``metadata`` are private
    to this context; ``metadata`` is seeded with ``createdAt``, ``handlerId``,
    ``requestType`` and ``taskId``.
    """

    def __init__(
        self,
        request: Optional[Mapping[str, Any]] = None,
        response: Any = None,
        handler_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self._request = request
        self._response = response
        self.handler_id = handler_id or f"handler_{uuid.uuid4().hex[:12]}"
        self._data: Dict[str, Any] = dict(data or {})

        request_type = None
        task_id = None
        if isinstance(request, Mapping):
            request_type = request.get("type")
            task_id = request.get("taskId")
        self._metadata: Dict[str, Any] = {
            "createdAt": datetime.now(),
            "handlerId": self.handler_id,
            "requestType": request_type,
            "taskId": task_id,
        }
        if metadata:
            self._metadata.update(metadata)

    def get_request(self) -> Optional[Mapping[str, Any]]:
        return self._request

    def get_response(self) -> Any:
        return self._response

    @property
    def request(self) -> Optional[Mapping[str, Any]]:
        return self._request

    @property
    def response(self) -> Any:
        return self._response

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def remove(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def get_data(self) -> Dict[str, Any]:
        """Shallow copy of the data map."""
        return dict(self._data)

    def get_metadata(self, key: Optional[str] = None, default: Any = None) -> Any:
        if key is None:
            return dict(self._metadata)
        return self._metadata.get(key, default)

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def clone(self, extra: Optional[Dict[str, Any]] = None) -> "HandlerContext":
        """Return an independent copy of this context with ``extra`` merged into its data.

        The data and metadata maps are copied, so keys set on the clone never
        reach the caller's context. Values, request and response are shared
        references; services in the data map often hold locks and cannot be
        copied.
        """
        data = dict(self._data)
        if extra:
            data.update(extra)
        cloned = HandlerContext(
            request=self._request,
            response=self._response,
            handler_id=self.handler_id,
            data=data,
        )
        cloned._metadata = dict(self._metadata)
        cloned._metadata["clonedAt"] = datetime.now()
        return cloned

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handlerId": self.handler_id,
            "data": dict(self._data),
            "metadata": dict(self._metadata),
        }

    def __repr__(self) -> str:
        return f"HandlerContext(handler_id={self.handler_id!r}, request_type={self._metadata.get('requestType')!r})"
