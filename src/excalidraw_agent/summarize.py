"""
Structural and geometric summaries of a diagram.

Used both as quick context for an agent and to sanity-check generated
output: tombstoned elements, arrows missing a binding at either end, and
overlapping shapes.
"""

from __future__ import annotations

from excalidraw_agent.models import (
    ZERO_BOX,
    BoundingBox,
    Diagram,
    DiagramSummary,
    Element,
    binding_target,
    is_deleted,
    is_shape,
)


def _is_fully_bound(element: Element) -> bool:
    start = element.get("startBinding")
    end = element.get("endBinding")
    return bool(
        isinstance(start, dict)
        and start.get("elementId")
        and isinstance(end, dict)
        and end.get("elementId")
    )


def count_overlaps(boxes: list[BoundingBox | None]) -> int:
    """Count overlapping unordered pairs; ``None`` entries never overlap."""
    pairs = 0
    for i, a in enumerate(boxes):
        if a is None:
            continue
        for b in boxes[i + 1 :]:
            if b is not None and a.overlaps(b):
                pairs += 1
    return pairs


def summarize_elements(elements: list[Element]) -> DiagramSummary:
    """Summarize a list of elements.

    Only the nine shape kinds take part in overlap detection; text and arrows
    are left out even though they occupy space.
    """
    deleted_count = 0
    arrow_count = 0
    text_count = 0
    unbound_arrow_count = 0
    shapes: list[Element] = []
    bounds: BoundingBox | None = None

    for element in elements:
        if not isinstance(element, dict):
            continue
        if is_deleted(element):
            deleted_count += 1
            continue

        element_type = element.get("type")
        if element_type == "arrow":
            arrow_count += 1
            if not _is_fully_bound(element):
                unbound_arrow_count += 1
        elif element_type == "text":
            text_count += 1
        elif is_shape(element):
            shapes.append(element)

        box = BoundingBox.of(element)
        if box is not None:
            bounds = box if bounds is None else bounds.union(box)

    return DiagramSummary(
        element_count=len(elements),
        shape_count=len(shapes),
        arrow_count=arrow_count,
        text_count=text_count,
        deleted_count=deleted_count,
        unbound_arrow_count=unbound_arrow_count,
        overlap_pairs=count_overlaps([BoundingBox.of(shape) for shape in shapes]),
        bounds=bounds or ZERO_BOX,
    )


def summarize_diagram(diagram: Diagram) -> DiagramSummary:
    return summarize_elements(diagram.elements)


def format_summary(summary: DiagramSummary) -> str:
    """One-line description suitable for an agent's context window."""
    b = summary.bounds
    width = b.max_x - b.min_x
    height = b.max_y - b.min_y
    parts = [
        f"{summary.element_count} elements",
        f"{summary.shape_count} shapes",
        f"{summary.arrow_count} arrows ({summary.unbound_arrow_count} unbound)",
        f"{summary.text_count} text",
        f"{summary.deleted_count} deleted",
        f"{summary.overlap_pairs} overlapping shape pairs",
        f"bounds {width:g}x{height:g} at ({b.min_x:g}, {b.min_y:g})",
    ]
    return ", ".join(parts)


def find_dangling_bindings(elements: list[Element]) -> list[tuple[str, str]]:
    """Return ``(arrow_id, missing_id)`` for bindings to ids not in the list."""
    ids = {element.get("id") for element in elements if not is_deleted(element)}
    dangling: list[tuple[str, str]] = []
    for element in elements:
        if is_deleted(element) or element.get("type") not in ("arrow", "line"):
            continue
        for end in ("start", "end"):
            target = binding_target(element, end)
            if target is not None and target not in ids:
                dangling.append((element.get("id", ""), target))
    return dangling
