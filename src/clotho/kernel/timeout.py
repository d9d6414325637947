"""
Timeout handling for scheduled transitions.

A transition that exceeds its time limit is abandoned rather than cancelled:
the caller stops waiting and receives TransitionTimeout, while the underlying
task keeps running to completion so every interceptor still gets to unwind
(e.g. the Application Log is resumed). Its eventual outcome is logged and
discarded.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from clotho.kernel.errors import TransitionTimeout
from clotho.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _log_abandoned_outcome(operation_name: str, timeout_ms: int):
    def callback(task: asyncio.Future) -> None:
        if task.cancelled():
            logger.info("Abandoned operation was cancelled", operation=operation_name)
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Abandoned operation failed after timeout",
                operation=operation_name,
                timeout_ms=timeout_ms,
                error=str(exc),
            )
        else:
            logger.info(
                "Abandoned operation settled after timeout - result discarded",
                operation=operation_name,
                timeout_ms=timeout_ms,
            )

    return callback


async def abandon_after(
    awaitable: Awaitable[T], timeout_ms: int, operation_name: str = "operation"
) -> T:
    """
    Await `awaitable` for at most `timeout_ms` milliseconds.

    Args:
        awaitable: Work to wait for
        timeout_ms: Maximum milliseconds to wait
        operation_name: Name of operation for logging

    Raises:
        TransitionTimeout: If the work does not settle in time

    Example:
        system_map = await abandon_after(transition.up(...), 500, "start")
    """
    task = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout_ms / 1000)
    except asyncio.TimeoutError:
        logger.error(
            "Operation exceeded timeout",
            operation=operation_name,
            timeout_ms=timeout_ms,
        )
        task.add_done_callback(_log_abandoned_outcome(operation_name, timeout_ms))
        raise TransitionTimeout(timeout_ms) from None
