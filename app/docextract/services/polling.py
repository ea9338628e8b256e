"""
Polling of long-running remote operations.

The remote indexing service never pushes notifications, so callers poll
the operation status until it reaches a terminal state. Waiting uses
``asyncio.sleep`` so a request that is polling never stalls other
requests served by the same event loop.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

from .exceptions import OperationCancelled, RemoteOperationFailed, RemoteOperationTimedOut

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def await_completion(
    fetch_status: Callable[[], Awaitable[T]],
    is_success: Callable[[T], bool],
    is_failure: Callable[[T], bool],
    timeout: float,
    poll_interval: float,
    *,
    max_interval: float | None = None,
    backoff_factor: float = 1.0,
    should_cancel: Callable[[], Awaitable[bool]] | None = None,
    describe: str = "remote operation",
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Poll ``fetch_status`` until the operation reaches a terminal state.

    The deadline is computed once on entry and compared on every iteration.
    A sleep is never extended past the deadline, so the loop always ends
    within roughly ``timeout`` plus one status fetch.

    Args:
        fetch_status: Coroutine function returning the current status.
        is_success: Predicate for terminal success.
        is_failure: Predicate for terminal failure.
        timeout: Seconds to wait before giving up.
        poll_interval: Initial delay between polls, in seconds.
        max_interval: Ceiling for the delay when backing off.
        backoff_factor: Multiplier applied to the delay after each poll
            (1.0 keeps a fixed delay).
        should_cancel: Optional coroutine function; when it returns True the
            wait is abandoned.
        describe: Human-readable name of the operation for logs and errors.
        clock: Monotonic time source.
        sleep: Coroutine used to wait between polls.

    Returns:
        The status that satisfied ``is_success``.

    Raises:
        RemoteOperationFailed: If a status satisfies ``is_failure``.
        RemoteOperationTimedOut: If the deadline passes first. Carries the
            last observed status.
        OperationCancelled: If ``should_cancel`` reports True.
    """
    start = clock()
    deadline = start + timeout
    interval = poll_interval
    ceiling = max_interval if max_interval is not None else poll_interval
    polls = 0

    while True:
        status = await fetch_status()
        polls += 1
        now = clock()

        if is_success(status):
            logger.info(
                "%s completed after %d poll(s) (%.1fs)", describe, polls, now - start
            )
            return status

        if is_failure(status):
            logger.error("%s failed after %d poll(s)", describe, polls)
            raise RemoteOperationFailed(f"{describe} failed", last_status=status)

        if now >= deadline:
            logger.error(
                "Timed out waiting for %s after %.1fs (last status: %s)",
                describe,
                now - start,
                status,
            )
            raise RemoteOperationTimedOut(
                f"Timed out waiting for {describe} (last status: {status})",
                last_status=status,
                elapsed=now - start,
            )

        if should_cancel is not None and await should_cancel():
            logger.warning("Stopped waiting for %s: caller went away", describe)
            raise OperationCancelled(f"Stopped waiting for {describe}")

        delay = min(interval, deadline - now)
        logger.debug("%s still pending (%s); next poll in %.2fs", describe, status, delay)
        await sleep(delay)

        if backoff_factor > 1.0:
            interval = min(interval * backoff_factor, max(ceiling, poll_interval))
