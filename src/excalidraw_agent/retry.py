"""
Retry orchestration for unreliable async operations.

Attempts run strictly one after another. Between attempts the orchestrator
sleeps ``min(base_delay_ms * 2**(attempt - 1), max_delay_ms)``; the sleep is
the only suspension that does no I/O and is cancellable by the same abort
event that cancels the attempts themselves.

Example:
    policy = RetryPolicy(max_retries=3, base_delay_ms=500)

    result = await with_retry(
        lambda: client.fetch(url),
        policy,
        attempt_timeout_ms=10_000,
        operation_name="fetch_scene",
    )
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from excalidraw_agent.cancellation import cancellable_sleep, run_cancellable
from excalidraw_agent.errors import (
    ExcalidrawAgentError,
    GeneratorValidationError,
    OperationCancelledError,
    RetryExhaustedError,
)
from excalidraw_agent.logging import get_logger

if TYPE_CHECKING:
    from excalidraw_agent.generators.base import GenerationResult, Generator

logger = get_logger("retry")

T = TypeVar("T")

ErrorClassifier = Callable[[BaseException], bool]
RetryCallback = Callable[[int, BaseException, float], None]

DEFAULT_GENERATION_TIMEOUT_MS = 60_000

_RETRYABLE_MARKERS = (
    "network",
    "fetch",
    "rate limit",
    "429",
    "timeout",
    "timed out",
    "aborted",
    "500",
    "502",
    "503",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounds for a retried call.

    Attributes:
        max_retries: Retries after the first attempt (total attempts is
            ``max_retries + 1``).
        base_delay_ms: Delay before the first retry.
        max_delay_ms: Cap for any single delay.
        jitter: Extra random delay as a fraction of the exponential delay
            (``0.0`` disables it).
    """

    max_retries: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30_000
    jitter: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryPolicy:
        return cls(
            max_retries=data.get("max_retries", 3),
            base_delay_ms=data.get("base_delay_ms", 1000),
            max_delay_ms=data.get("max_delay_ms", 30_000),
            jitter=data.get("jitter", 0.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "base_delay_ms": self.base_delay_ms,
            "max_delay_ms": self.max_delay_ms,
            "jitter": self.jitter,
        }


def compute_backoff_ms(attempt: int, policy: RetryPolicy) -> float:
    """Delay after failed attempt number ``attempt`` (1-indexed)."""
    delay = policy.base_delay_ms * 2 ** (attempt - 1)
    if policy.jitter > 0:
        delay += random.random() * policy.jitter * delay
    return min(delay, policy.max_delay_ms)


def is_retryable_error(error: BaseException) -> bool:
    """Default classifier: network and timeout failures are retryable.

    Toolkit errors decide for themselves through their ``retryable`` flag.
    Anything unrecognized is treated as fatal unless its message looks like a
    transient transport problem.
    """
    if isinstance(error, ExcalidrawAgentError):
        return bool(error.retryable)
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, asyncio.TimeoutError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in (429, 500, 502, 503, 504)
    if isinstance(error, ConnectionError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    classifier: ErrorClassifier | None = None,
    attempt_timeout_ms: float | None = None,
    abort: asyncio.Event | None = None,
    on_retry: RetryCallback | None = None,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per
            attempt.
        policy: Retry bounds (defaults to ``RetryPolicy()``).
        classifier: Returns ``True`` for retryable errors. Non-retryable errors
            are re-raised on first occurrence.
        attempt_timeout_ms: Per-attempt timeout; a timeout is retryable.
        abort: External cancellation signal.
        on_retry: Called with ``(next_attempt, error, delay_ms)`` before each
            backoff sleep.
        operation_name: Used in errors and log lines.

    Raises:
        RetryExhaustedError: after ``max_retries`` retries all failed.
        OperationCancelledError: when ``abort`` is set.
    """
    policy = policy or RetryPolicy()
    classify = classifier or is_retryable_error
    attempt = 0

    while True:
        attempt += 1
        if abort is not None and abort.is_set():
            raise OperationCancelledError(operation_name)
        try:
            return await run_cancellable(
                operation(),
                timeout_ms=attempt_timeout_ms,
                abort=abort,
                operation=operation_name,
            )
        except Exception as exc:
            if isinstance(exc, OperationCancelledError) and abort is not None and abort.is_set():
                raise
            if not classify(exc):
                logger.debug("%s failed with non-retryable error: %s", operation_name, exc)
                raise
            if attempt > policy.max_retries:
                raise RetryExhaustedError(operation_name, attempt, exc) from exc

            delay_ms = compute_backoff_ms(attempt, policy)
            if on_retry is not None:
                on_retry(attempt + 1, exc, delay_ms)
            await cancellable_sleep(delay_ms, abort)


def _log_retry(operation_name: str, policy: RetryPolicy) -> RetryCallback:
    def callback(attempt: int, error: BaseException, delay_ms: float) -> None:
        logger.warning(
            "%s: retry %d/%d after %.0fms: %s",
            operation_name,
            attempt - 1,
            policy.max_retries,
            delay_ms,
            error,
        )

    return callback


async def generate_text_with_retry(
    generator: Generator,
    prompt: str,
    *,
    system: str | None = None,
    policy: RetryPolicy | None = None,
    timeout_ms: float = DEFAULT_GENERATION_TIMEOUT_MS,
    abort: asyncio.Event | None = None,
) -> GenerationResult:
    """Text generation with per-attempt timeout and backoff."""
    policy = policy or RetryPolicy()
    return await with_retry(
        lambda: generator.generate_text(prompt, system=system, timeout_ms=timeout_ms),
        policy,
        attempt_timeout_ms=timeout_ms,
        abort=abort,
        on_retry=_log_retry("generate_text", policy),
        operation_name="generate_text",
    )


async def generate_object_with_retry(
    generator: Generator,
    prompt: str,
    *,
    schema: dict[str, Any],
    system: str | None = None,
    validator: Callable[[Any], Any] | None = None,
    policy: RetryPolicy | None = None,
    timeout_ms: float = DEFAULT_GENERATION_TIMEOUT_MS,
    abort: asyncio.Event | None = None,
) -> GenerationResult:
    """Structured generation; the object is checked with ``validator``.

    A validator that raises turns into ``GeneratorValidationError``, which is
    not retried.
    """
    policy = policy or RetryPolicy()

    async def attempt() -> GenerationResult:
        result = await generator.generate_object(
            prompt, schema=schema, system=system, timeout_ms=timeout_ms
        )
        if validator is not None:
            try:
                result.object = validator(result.object)
            except ExcalidrawAgentError:
                raise
            except Exception as exc:
                raise GeneratorValidationError(
                    f"Generated object failed validation: {exc}",
                    operation="generate_object",
                ) from exc
        return result

    return await with_retry(
        attempt,
        policy,
        attempt_timeout_ms=timeout_ms,
        abort=abort,
        on_retry=_log_retry("generate_object", policy),
        operation_name="generate_object",
    )
