"""
AI-assisted diagram modification.

The modifier projects a diagram into a compact node/edge view, asks a
generator for a :class:`ModificationDiff` (with retry and output repair),
validates it and applies it to a copy of the diagram.

Example:
    modifier = DiagramModifier(generator, RetryPolicy(max_retries=2))
    updated = await modifier.modify(diagram, "Rename the API box to Gateway")
"""

from __future__ import annotations

import asyncio
import copy
import json
import re
import time
from dataclasses import dataclass, field
from typing import Any

from excalidraw_agent.diff import apply_diff, parse_diff, validate_elements
from excalidraw_agent.errors import InvalidDiagramError
from excalidraw_agent.generators.base import DEFAULT_TIMEOUT_MS, Generator, TokenUsage
from excalidraw_agent.logging import get_logger
from excalidraw_agent.models import (
    ChangeSet,
    Diagram,
    Element,
    ElementChange,
    ModificationDiff,
    binding_target,
    element_label,
    is_connector,
    is_deleted,
)
from excalidraw_agent.retry import RetryPolicy, generate_object_with_retry
from excalidraw_agent.summarize import format_summary, summarize_elements

logger = get_logger("modifier")

MODIFICATION_SYSTEM_PROMPT = """You modify existing Excalidraw diagrams by producing an element-level diff.

You must return a JSON object that matches the schema:
{
  "add": [ExcalidrawElementSkeleton...],
  "remove": [elementId...],
  "modify": [{ "id": "...", "changes": { ... } }]
}

Rules:
- Only change what the request asks.
- Keep existing element ids unchanged.
- Never include an id field inside changes; only use modify.id to select the element.
- New elements need a fresh id that no existing element uses.
- Use existing ids for bindings (startBinding/endBinding/containerId/boundElements).
- If you change arrow bindings, ensure references remain valid.
- If you remove an element that others reference, you must also update those references.
- When updating labels, edit the bound text element and set both text + originalText.
- Omit empty arrays (do not include add/remove/modify when empty).
- Respond with the JSON object only."""

DIFF_SCHEMA: dict[str, Any] = {
    "title": "ModificationDiff",
    "type": "object",
    "properties": {
        "add": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "type": {"type": "string"}},
                "required": ["id", "type"],
            },
        },
        "remove": {"type": "array", "items": {"type": "string"}},
        "modify": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "changes": {"type": "object"}},
                "required": ["id", "changes"],
            },
        },
    },
}

# <id> <path> = '<value>'
_EXPLICIT_EDIT = re.compile(r"([a-zA-Z0-9_-]+)\s+([a-zA-Z0-9_.]+)\s*=\s*'([^']+)'")


def simplify_for_agent(elements: list[Element]) -> dict[str, list[dict[str, Any]]]:
    """Compact view of live elements: shapes and text as nodes, connectors as edges."""
    nodes: list[dict[str, Any]] = []
    edges: list[dict[str, Any]] = []
    for element in elements:
        if is_deleted(element):
            continue
        label = element_label(element, elements)
        if is_connector(element):
            edges.append(
                {
                    "id": element.get("id"),
                    "from": binding_target(element, "start"),
                    "to": binding_target(element, "end"),
                    "label": label,
                }
            )
        else:
            nodes.append({"id": element.get("id"), "type": element.get("type"), "label": label})
    return {"nodes": nodes, "edges": edges}


def build_modification_prompt(request: str, elements: list[Element]) -> str:
    return "\n".join(
        [
            f"Modification request: {request}",
            "",
            f"Diagram summary: {format_summary(summarize_elements(elements))}",
            "",
            "Nodes and edges (for reasoning):",
            json.dumps(simplify_for_agent(elements)),
            "",
            "Full elements (for reference):",
            json.dumps(elements),
        ]
    )


@dataclass(frozen=True)
class ExplicitEdit:
    """A literal ``<id> <path> = '<value>'`` instruction found in a request."""

    element_id: str
    path: str
    value: str


def extract_explicit_edits(request: str) -> list[ExplicitEdit]:
    return [
        ExplicitEdit(element_id=m.group(1), path=m.group(2), value=m.group(3))
        for m in _EXPLICIT_EDIT.finditer(request)
    ]


def _set_path(target: dict[str, Any], path: str, value: Any) -> None:
    parts = [part for part in path.split(".") if part]
    current = target
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    if parts:
        current[parts[-1]] = value


def explicit_edits_to_diff(edits: list[ExplicitEdit]) -> ModificationDiff:
    """Group edits per element into a ``modify``-only diff."""
    changes_by_id: dict[str, dict[str, Any]] = {}
    for edit in edits:
        _set_path(changes_by_id.setdefault(edit.element_id, {}), edit.path, edit.value)
    return ModificationDiff(
        modify=[ElementChange(id=element_id, changes=changes) for element_id, changes in changes_by_id.items()]
    )


def apply_explicit_edits(
    elements: list[Element],
    request: str,
) -> tuple[list[Element], ModificationDiff, ChangeSet] | None:
    """
    Apply literal edits from ``request`` without a generator call.

    Only edits addressed to existing ids are used. Returns ``None`` when the
    request holds none.

    Raises:
        InvalidDiffError: if the edits cannot be applied
    """
    ids = {el.get("id") for el in elements}
    edits = [edit for edit in extract_explicit_edits(request) if edit.element_id in ids]
    if not edits:
        return None
    diff = explicit_edits_to_diff(edits)
    updated, changes = apply_diff(elements, diff)
    return updated, diff, changes


@dataclass
class ModificationResult:
    """Outcome of a successful modification."""

    diagram: Diagram
    diff: ModificationDiff
    changes: ChangeSet
    usage: TokenUsage = field(default_factory=TokenUsage)
    duration_ms: float = 0.0
    explicit: bool = False


class DiagramModifier:
    """
    Drives a generator to rewrite a diagram.

    Args:
        generator: LLM backend
        policy: Retry bounds for the generation step
        timeout_ms: Per-attempt generation timeout
        prefer_explicit_edits: Apply ``<id> <path> = '<value>'`` edits found in
            the request directly, skipping the generator
    """

    def __init__(
        self,
        generator: Generator,
        policy: RetryPolicy | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        *,
        prefer_explicit_edits: bool = False,
    ) -> None:
        self.generator = generator
        self.policy = policy or RetryPolicy()
        self.timeout_ms = timeout_ms
        self.prefer_explicit_edits = prefer_explicit_edits

    async def modify(
        self,
        diagram: Diagram,
        request: str,
        *,
        abort: asyncio.Event | None = None,
        trace_id: str | None = None,
    ) -> Diagram:
        """Return a new diagram with ``request`` applied; ``diagram`` is not changed."""
        result = await self.modify_detailed(diagram, request, abort=abort, trace_id=trace_id)
        return result.diagram

    async def modify_detailed(
        self,
        diagram: Diagram,
        request: str,
        *,
        abort: asyncio.Event | None = None,
        trace_id: str | None = None,
    ) -> ModificationResult:
        """
        Like :meth:`modify`, also reporting the diff, change set and usage.

        Raises:
            InvalidDiagramError: the input has missing or duplicate ids, or
                references an element that does not exist
            InvalidDiffError / DuplicateIdError: the generated diff is unusable
            RetryExhaustedError: generation kept failing
            OperationCancelledError: ``abort`` was set
        """
        started = time.monotonic()
        elements = diagram.elements
        input_issues = validate_elements(elements)
        if input_issues:
            raise InvalidDiagramError(
                f"Cannot modify diagram: {input_issues[0].message}",
                operation="modify",
                issues=[issue.to_dict() for issue in input_issues],
            )

        if self.prefer_explicit_edits:
            explicit = apply_explicit_edits(elements, request)
            if explicit is not None:
                updated, diff, changes = explicit
                logger.debug("[%s] Applied %d explicit edit(s)", trace_id, len(diff.modify or []))
                return ModificationResult(
                    diagram=Diagram(elements=updated, app_state=copy.deepcopy(diagram.app_state)),
                    diff=diff,
                    changes=changes,
                    duration_ms=(time.monotonic() - started) * 1000,
                    explicit=True,
                )

        prompt = build_modification_prompt(request, elements)
        logger.debug("[%s] Requesting diff for %d elements", trace_id, len(elements))
        result = await generate_object_with_retry(
            self.generator,
            prompt,
            schema=DIFF_SCHEMA,
            system=MODIFICATION_SYSTEM_PROMPT,
            validator=parse_diff,
            policy=self.policy,
            timeout_ms=self.timeout_ms,
            abort=abort,
        )
        diff: ModificationDiff = result.object
        updated, changes = apply_diff(elements, diff)

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "[%s] Applied diff: +%d -%d ~%d (%d tokens, %.0fms)",
            trace_id,
            len(changes.added_ids),
            len(changes.removed_ids),
            len(changes.modified_ids),
            result.usage.total_tokens,
            duration_ms,
        )
        return ModificationResult(
            diagram=Diagram(elements=updated, app_state=copy.deepcopy(diagram.app_state)),
            diff=diff,
            changes=changes,
            usage=result.usage,
            duration_ms=duration_ms,
        )
