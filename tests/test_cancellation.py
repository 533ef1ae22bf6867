"""Tests for timeout and abort handling."""

import asyncio

import pytest

from excalidraw_agent.cancellation import cancellable_sleep, run_cancellable
from excalidraw_agent.errors import OperationCancelledError, OperationTimeoutError


async def value_after(delay: float, value: str = "done") -> str:
    await asyncio.sleep(delay)
    return value


class TestRunCancellable:
    """Tests for run_cancellable."""

    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        assert await run_cancellable(value_after(0), timeout_ms=1000) == "done"

    @pytest.mark.asyncio
    async def test_no_limits(self) -> None:
        assert await run_cancellable(value_after(0)) == "done"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        with pytest.raises(OperationTimeoutError) as exc_info:
            await run_cancellable(value_after(5), timeout_ms=20, operation="fetch")

        assert exc_info.value.operation == "fetch"
        assert exc_info.value.timeout_ms == 20
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_abort(self) -> None:
        abort = asyncio.Event()
        asyncio.get_running_loop().call_later(0.02, abort.set)

        with pytest.raises(OperationCancelledError):
            await run_cancellable(value_after(5), timeout_ms=5000, abort=abort)

    @pytest.mark.asyncio
    async def test_already_aborted(self) -> None:
        abort = asyncio.Event()
        abort.set()

        with pytest.raises(OperationCancelledError):
            await run_cancellable(value_after(0), abort=abort)

    @pytest.mark.asyncio
    async def test_propagates_operation_error(self) -> None:
        async def boom() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await run_cancellable(boom(), timeout_ms=1000)

    @pytest.mark.asyncio
    async def test_inner_task_cancelled_on_timeout(self) -> None:
        cancelled = asyncio.Event()

        async def slow() -> None:
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(OperationTimeoutError):
            await run_cancellable(slow(), timeout_ms=20)

        assert cancelled.is_set()


class TestCancellableSleep:
    """Tests for cancellable_sleep."""

    @pytest.mark.asyncio
    async def test_completes(self) -> None:
        await cancellable_sleep(1, asyncio.Event())

    @pytest.mark.asyncio
    async def test_aborted(self) -> None:
        abort = asyncio.Event()
        asyncio.get_running_loop().call_later(0.02, abort.set)

        with pytest.raises(OperationCancelledError):
            await cancellable_sleep(5000, abort)
