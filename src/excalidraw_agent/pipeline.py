"""
End-to-end modification of a shared diagram.

Resolve the link, summarize, modify, publish, and report before/after
summaries. Diff and input-validation failures are reported as a ``failed``
result carrying the issues; every other error propagates.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

from excalidraw_agent.errors import InvalidDiagramError, InvalidDiffError
from excalidraw_agent.logging import get_logger
from excalidraw_agent.modifier import DiagramModifier
from excalidraw_agent.models import DiagramSummary, ShareLinkReference
from excalidraw_agent.publisher import Publisher
from excalidraw_agent.resolver import ShareLinkResolver
from excalidraw_agent.summarize import summarize_diagram

logger = get_logger("pipeline")

OutputMode = Literal["elements", "shareLink", "both"]
OUTPUT_MODES: tuple[str, ...] = ("elements", "shareLink", "both")


def normalize_output_mode(value: str | None) -> OutputMode:
    """Unknown or missing modes fall back to ``both``."""
    if value in OUTPUT_MODES:
        return value  # type: ignore[return-value]
    return "both"


@dataclass
class ModificationStats:
    duration_ms: float
    tokens: int
    trace_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"durationMs": round(self.duration_ms), "tokens": self.tokens, "traceId": self.trace_id}


@dataclass
class ShareLinkModification:
    """Result of :func:`modify_from_share_link`."""

    status: Literal["success", "failed"]
    stats: ModificationStats
    elements: list[dict[str, Any]] | None = None
    app_state: dict[str, Any] | None = None
    share_link: ShareLinkReference | None = None
    before: DiagramSummary | None = None
    after: DiagramSummary | None = None
    changes: dict[str, Any] | None = None
    reason: str | None = None
    issues: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "stats": self.stats.to_dict()}
        if self.elements is not None:
            data["elements"] = self.elements
        if self.app_state is not None:
            data["appState"] = self.app_state
        if self.share_link is not None:
            data["shareLink"] = self.share_link.to_dict()
        if self.before is not None:
            data["before"] = self.before.to_dict()
        if self.after is not None:
            data["after"] = self.after.to_dict()
        if self.changes is not None:
            data["changes"] = self.changes
        if self.reason is not None:
            data["reason"] = self.reason
            data["issues"] = self.issues
        return data


async def modify_from_share_link(
    url: str,
    request: str,
    *,
    resolver: ShareLinkResolver,
    modifier: DiagramModifier,
    publisher: Publisher | None = None,
    output: str | None = "both",
    api_base: str | None = None,
    trace_id: str | None = None,
    abort: asyncio.Event | None = None,
) -> ShareLinkModification:
    """
    Resolve ``url``, apply ``request`` and publish the result.

    Args:
        output: ``elements`` (no upload), ``shareLink`` (link only) or
            ``both``; anything else means ``both``
        publisher: Required unless ``output`` is ``elements``
    """
    trace_id = trace_id or str(uuid.uuid4())
    mode = normalize_output_mode(output)
    started = time.monotonic()

    def stats(tokens: int = 0) -> ModificationStats:
        return ModificationStats(
            duration_ms=(time.monotonic() - started) * 1000, tokens=tokens, trace_id=trace_id
        )

    diagram = await resolver.resolve(url, api_base=api_base, trace_id=trace_id, abort=abort)
    before = summarize_diagram(diagram)
    logger.info("[%s] Resolved diagram with %d elements", trace_id, before.element_count)

    try:
        result = await modifier.modify_detailed(diagram, request, abort=abort, trace_id=trace_id)
    except InvalidDiagramError as exc:
        return ShareLinkModification(
            status="failed",
            stats=stats(),
            reason="invalid-elements",
            issues=list(exc.context.get("issues", [])),
            before=before,
        )
    except InvalidDiffError as exc:
        logger.warning("[%s] Modification failed: %s", trace_id, exc)
        return ShareLinkModification(
            status="failed",
            stats=stats(),
            reason="invalid-diff",
            issues=[issue.to_dict() for issue in exc.issues],
            before=before,
        )

    modified = result.diagram
    share_link: ShareLinkReference | None = None
    if mode != "elements":
        if publisher is None:
            raise ValueError(f"Output mode '{mode}' needs a publisher")
        share_link = await publisher.publish(modified, abort=abort)
        logger.info("[%s] Published %s", trace_id, share_link.share_id)

    changes = {"diff": result.diff.to_dict(), **result.changes.to_dict()}
    include_elements = mode != "shareLink"
    return ShareLinkModification(
        status="success",
        stats=stats(result.usage.total_tokens),
        elements=modified.elements if include_elements else None,
        app_state=modified.app_state if include_elements else None,
        share_link=share_link,
        before=before,
        after=summarize_diagram(modified),
        changes=changes,
    )
