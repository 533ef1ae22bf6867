"""
Error taxonomy for the diagram toolkit.

Every error carries the name of the operation that raised it and a
``retryable`` flag read by the retry orchestrator's default classifier.
Crypto and structural-validation failures are never retryable; network,
timeout and cancellation failures are.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

ResolveErrorKind = Literal["fetch", "decrypt", "parse"]


class ExcalidrawAgentError(Exception):
    """Base class for all toolkit errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.context: dict[str, Any] = context


# ---------------------------------------------------------------------------
# Crypto
# ---------------------------------------------------------------------------


class CryptoError(ExcalidrawAgentError):
    """Authenticated decryption failed (wrong key or corrupted payload)."""


class KeyFormatError(ExcalidrawAgentError):
    """Key material could not be imported."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolveError(ExcalidrawAgentError):
    """A share link could not be turned into a diagram.

    ``kind`` tells which stage failed: ``fetch`` (network or non-2xx,
    retryable), ``decrypt`` or ``parse`` (both fatal).
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ResolveErrorKind,
        status_code: int | None = None,
        operation: str | None = "resolve",
        **context: Any,
    ) -> None:
        super().__init__(message, operation=operation, **context)
        self.kind: ResolveErrorKind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.kind == "fetch"


class SharePayloadError(ResolveError):
    """The share blob framing (v1/v2 container) is invalid."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, kind="parse", operation="decode_share_payload", **context)


class InvalidDiagramError(ExcalidrawAgentError):
    """Upstream data does not describe a diagram (e.g. missing ``elements``)."""


# ---------------------------------------------------------------------------
# Timeouts, cancellation, retry
# ---------------------------------------------------------------------------


class OperationTimeoutError(ExcalidrawAgentError):
    """A network-bound operation exceeded its timeout."""

    retryable = True

    def __init__(self, operation: str, timeout_ms: float | None) -> None:
        super().__init__(
            f"{operation} timed out after {timeout_ms}ms",
            operation=operation,
            timeout_ms=timeout_ms,
        )
        self.timeout_ms = timeout_ms


class OperationCancelledError(ExcalidrawAgentError):
    """A network-bound operation was aborted by an external signal."""

    retryable = True

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} was cancelled", operation=operation)


class RetryExhaustedError(ExcalidrawAgentError):
    """All attempts of a retried operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            operation=operation,
            attempts=attempts,
        )
        self.attempts = attempts
        self.last_error = last_error


# ---------------------------------------------------------------------------
# Diff application
# ---------------------------------------------------------------------------


@dataclass
class DiffIssue:
    """A single problem found while validating or applying a diff."""

    code: str
    message: str
    element_id: str | None = None
    path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.element_id is not None:
            data["elementId"] = self.element_id
        if self.path is not None:
            data["path"] = self.path
        return data


class InvalidDiffError(ExcalidrawAgentError):
    """The generated diff is malformed or cannot be applied."""

    def __init__(
        self,
        message: str,
        issues: list[DiffIssue] | None = None,
        *,
        operation: str | None = "apply_diff",
    ) -> None:
        super().__init__(message, operation=operation)
        self.issues: list[DiffIssue] = issues or []


class DuplicateIdError(InvalidDiffError):
    """An added element reuses an id that already exists."""

    def __init__(self, element_id: str, issues: list[DiffIssue] | None = None) -> None:
        super().__init__(
            f"Cannot add element '{element_id}' because the id is already taken",
            issues,
        )
        self.element_id = element_id


class OutputRepairError(InvalidDiffError):
    """Generator output could not be repaired into a structured document."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            [DiffIssue(code="unparseable-response", message=message)],
            operation="parse_structured_output",
        )


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


class GeneratorError(ExcalidrawAgentError):
    """Base for failures reported by an LLM generator."""


class GeneratorTimeoutError(GeneratorError):
    retryable = True


class GeneratorNetworkError(GeneratorError):
    """Connection failure, rate limit or provider-side 5xx."""

    retryable = True


class GeneratorRequestError(GeneratorError):
    """The provider rejected the request (bad request, auth, permissions)."""


class GeneratorValidationError(GeneratorError):
    """The generator answered, but not with an object matching the schema."""


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishError(ExcalidrawAgentError):
    """Uploading a diagram or creating its share link failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
        **context: Any,
    ) -> None:
        super().__init__(message, operation="publish", **context)
        self.status_code = status_code
        self._retryable = retryable

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self._retryable
