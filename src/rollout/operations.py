"""Helpers for driving the synchronous Azure SDK from asyncio.

SDK calls block, so they run in the default executor. Awaiting them keeps
the event loop free to deliver cancellation. Long-running operations are
not waited on in the executor: their pollers already run in an SDK thread,
so only their completion flag is checked.

SECURITY: Timeouts are enforced on long-running operations to prevent
indefinite hangs.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Interval between completion checks of a long-running operation
OPERATION_CHECK_INTERVAL_SECONDS = 1.0


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking SDK call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


async def wait_for_operation(
    poller: Any,
    timeout_seconds: float,
    operation_name: str,
    check_interval: float = OPERATION_CHECK_INTERVAL_SECONDS,
) -> Any:
    """Wait for an LROPoller to finish.

    The SDK polls the operation in its own thread; this coroutine only
    checks ``poller.done()`` between awaited sleeps, so cancelling the task
    returns immediately and leaves no executor work behind.

    Args:
        poller: The poller returned by a ``begin_*`` SDK call.
        timeout_seconds: Maximum time to wait for completion.
        operation_name: Human-readable name for logging.
        check_interval: Seconds between completion checks.

    Returns:
        The final result of the operation.

    Raises:
        TimeoutError: If the operation exceeds the timeout.
        HttpResponseError: If the operation ends in a failed state.
    """

    async def wait_until_done() -> Any:
        while not poller.done():
            await asyncio.sleep(check_interval)
        # Finished pollers return (or raise) without blocking
        return poller.result()

    try:
        return await asyncio.wait_for(wait_until_done(), timeout=timeout_seconds)
    except TimeoutError:
        logger.error(
            f"{operation_name} timed out",
            extra={"timeout_seconds": timeout_seconds},
        )
        raise
