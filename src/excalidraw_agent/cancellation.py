"""
Timeout and cancellation helpers.

An external cancellation signal is a plain :class:`asyncio.Event`; setting it
aborts in-flight I/O and pending backoff sleeps. Timeouts and cancellations
surface as distinct errors.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from excalidraw_agent.errors import OperationCancelledError, OperationTimeoutError

T = TypeVar("T")


def _discard(awaitable: Awaitable[object]) -> None:
    if asyncio.iscoroutine(awaitable):
        awaitable.close()


async def run_cancellable(
    awaitable: Awaitable[T],
    *,
    timeout_ms: float | None = None,
    abort: asyncio.Event | None = None,
    operation: str = "operation",
) -> T:
    """Await ``awaitable`` bounded by a timeout and an abort signal.

    Raises:
        OperationTimeoutError: when ``timeout_ms`` elapses first.
        OperationCancelledError: when ``abort`` is set first (or already set).
    """
    if abort is not None and abort.is_set():
        _discard(awaitable)
        raise OperationCancelledError(operation)

    task: asyncio.Future[T] = asyncio.ensure_future(awaitable)
    abort_waiter: asyncio.Task[bool] | None = None
    waiters: set[asyncio.Future] = {task}
    if abort is not None:
        abort_waiter = asyncio.ensure_future(abort.wait())
        waiters.add(abort_waiter)

    timeout = timeout_ms / 1000 if timeout_ms is not None else None
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if abort_waiter is not None and not abort_waiter.done():
            abort_waiter.cancel()
        if not task.done():
            task.cancel()

    if task in done:
        return task.result()

    # Let the cancelled task unwind before reporting.
    await asyncio.gather(task, return_exceptions=True)
    if abort_waiter is not None and abort_waiter in done:
        raise OperationCancelledError(operation)
    raise OperationTimeoutError(operation, timeout_ms)


async def cancellable_sleep(delay_ms: float, abort: asyncio.Event | None = None) -> None:
    """Sleep for ``delay_ms``; raise ``OperationCancelledError`` if aborted."""
    if abort is None:
        await asyncio.sleep(delay_ms / 1000)
        return
    if abort.is_set():
        raise OperationCancelledError("backoff")
    try:
        await asyncio.wait_for(abort.wait(), timeout=delay_ms / 1000)
    except asyncio.TimeoutError:
        return
    raise OperationCancelledError("backoff")
