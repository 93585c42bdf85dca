"""Deadline helpers for racing suspend points against a timeout budget."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..error_coordination import HandlerException

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_deadline(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    operation: str,
) -> T:
    """Await ``awaitable`` but give up after ``timeout`` seconds.

    Args:
        awaitable: Coroutine or future to run
        timeout: Budget in seconds; None or a non-positive value disables the deadline
        operation: Name used in the timeout error message

    Returns:
        Whatever the awaitable returns

    Raises:
        HandlerException: TIMEOUT kind when the budget is exhausted
    """
    if timeout is None or timeout <= 0:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"{operation} timed out after {timeout}s")
        raise HandlerException.timeout_error(
            f"{operation} timed out after {timeout}s",
            {"operation": operation, "timeout": timeout},
        ) from e


async def maybe_await(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``func`` and await the result if it is awaitable.

    Legacy handlers and services may be plain or coroutine functions; this
    lets adapters call both the same way.
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
