"""
Core data models for diagrams, summaries and diffs.

Elements stay plain ``dict`` objects (Excalidraw JSON, every unknown field
passed through). Polymorphism over the ``type`` discriminant is expressed as
capability helpers (``has_geometry``, ``is_connector``, ``is_shape``) rather
than a class hierarchy.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Literal

from excalidraw_agent.errors import InvalidDiagramError

Element = dict[str, Any]

SHAPE_TYPES = frozenset(
    {
        "rectangle",
        "diamond",
        "ellipse",
        "roundRectangle",
        "parallelogram",
        "hexagon",
        "octagon",
        "triangle",
        "trapezoid",
    }
)

CONNECTOR_TYPES = frozenset({"arrow", "line"})

BindingEnd = Literal["start", "end"]


# ---------------------------------------------------------------------------
# Element capability view
# ---------------------------------------------------------------------------


def _is_finite(value: int | float) -> bool:
    # ints are always finite; math.isfinite overflows on very large ones
    return isinstance(value, int) or math.isfinite(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and _is_finite(value)


def has_geometry(element: Element) -> bool:
    """True when ``x``, ``y``, ``width`` and ``height`` are all finite numbers."""
    return all(_is_number(element.get(key)) for key in ("x", "y", "width", "height"))


def is_connector(element: Element) -> bool:
    return element.get("type") in CONNECTOR_TYPES


def is_shape(element: Element) -> bool:
    return element.get("type") in SHAPE_TYPES


def is_deleted(element: Element) -> bool:
    return element.get("isDeleted") is True


def binding_target(element: Element, end: BindingEnd) -> str | None:
    """Return the id an arrow endpoint is bound to, or ``None``.

    Reads ``startBinding.elementId`` / ``endBinding.elementId`` first and falls
    back to the skeleton form ``start.id`` / ``end.id``.
    """
    binding = element.get(f"{end}Binding")
    if isinstance(binding, dict) and isinstance(binding.get("elementId"), str):
        return binding["elementId"] or None
    legacy = element.get(end)
    if isinstance(legacy, dict) and isinstance(legacy.get("id"), str):
        return legacy["id"] or None
    return None


def element_label(element: Element, elements: list[Element] | None = None) -> str | None:
    """Best-effort human label for an element.

    Checks the skeleton ``label.text``, then ``text`` on text elements, then the
    text of a bound text element whose ``containerId`` points at this element.
    """
    label = element.get("label")
    if isinstance(label, dict) and isinstance(label.get("text"), str):
        return label["text"]
    if element.get("type") == "text" and isinstance(element.get("text"), str):
        return element["text"]
    if elements:
        element_id = element.get("id")
        for candidate in elements:
            if (
                candidate.get("type") == "text"
                and candidate.get("containerId") == element_id
                and not is_deleted(candidate)
                and isinstance(candidate.get("text"), str)
            ):
                return candidate["text"]
    return None


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box derived from an element's ``x/y/width/height``."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def of(cls, element: Element) -> BoundingBox | None:
        """Box for an element, or ``None`` when it has no geometry."""
        if not has_geometry(element):
            return None
        x, y = element["x"], element["y"]
        max_x, max_y = x + element["width"], y + element["height"]
        if not (_is_finite(max_x) and _is_finite(max_y)):
            return None
        return cls(min_x=x, min_y=y, max_x=max_x, max_y=max_y)

    def overlaps(self, other: BoundingBox) -> bool:
        """Strict overlap test; boxes that only share an edge do not overlap."""
        return not (
            self.max_x <= other.min_x
            or self.min_x >= other.max_x
            or self.max_y <= other.min_y
            or self.min_y >= other.max_y
        )

    def union(self, other: BoundingBox) -> BoundingBox:
        return BoundingBox(
            min_x=min(self.min_x, other.min_x),
            min_y=min(self.min_y, other.min_y),
            max_x=max(self.max_x, other.max_x),
            max_y=max(self.max_y, other.max_y),
        )

    def to_dict(self) -> dict[str, float]:
        return {"minX": self.min_x, "minY": self.min_y, "maxX": self.max_x, "maxY": self.max_y}


ZERO_BOX = BoundingBox(0, 0, 0, 0)


# ---------------------------------------------------------------------------
# Diagram
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Diagram:
    """An Excalidraw scene: ordered elements plus display settings.

    Pipeline stages never mutate a diagram they were given; they return a new
    one.
    """

    elements: list[Element]
    app_state: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, *, source: str = "payload") -> Diagram:
        """Normalize a decoded scene.

        A missing ``appState`` becomes ``{}``. A missing or non-list
        ``elements`` is an error, never an empty diagram.
        """
        if not isinstance(data, dict):
            raise InvalidDiagramError(
                f"Invalid diagram {source}: expected an object",
                operation="parse_diagram",
            )
        elements = data.get("elements")
        if not isinstance(elements, list):
            raise InvalidDiagramError(
                f"Invalid diagram {source}: missing elements array",
                operation="parse_diagram",
            )
        app_state = data.get("appState")
        if not isinstance(app_state, dict):
            app_state = {}
        return cls(
            elements=[element for element in elements if isinstance(element, dict)],
            app_state=app_state,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"elements": self.elements, "appState": self.app_state}

    def copy(self) -> Diagram:
        return Diagram(
            elements=copy.deepcopy(self.elements),
            app_state=copy.deepcopy(self.app_state),
        )

    def get_element(self, element_id: str) -> Element | None:
        for element in self.elements:
            if element.get("id") == element_id:
                return element
        return None


@dataclass(frozen=True)
class ShareLinkReference:
    """A share URL and, for ``#json=`` links, its embedded id and key."""

    url: str
    share_id: str | None = None
    encryption_key: str | None = None

    @property
    def has_embedded_key(self) -> bool:
        return self.share_id is not None and self.encryption_key is not None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "shareId": self.share_id, "encryptionKey": self.encryption_key}


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiagramSummary:
    """Immutable snapshot of element counts and consistency signals.

    ``element_count`` is the raw input length, tombstoned elements included;
    every other count only covers live elements.
    """

    element_count: int
    shape_count: int
    arrow_count: int
    text_count: int
    deleted_count: int
    unbound_arrow_count: int
    overlap_pairs: int
    bounds: BoundingBox

    def to_dict(self) -> dict[str, Any]:
        return {
            "elementCount": self.element_count,
            "shapeCount": self.shape_count,
            "arrowCount": self.arrow_count,
            "textCount": self.text_count,
            "deletedCount": self.deleted_count,
            "unboundArrowCount": self.unbound_arrow_count,
            "overlapPairs": self.overlap_pairs,
            "bounds": self.bounds.to_dict(),
        }


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


@dataclass
class ElementChange:
    """A partial update addressed to one element."""

    id: str
    changes: dict[str, Any]


@dataclass
class ModificationDiff:
    """Add/remove/modify instructions. ``None`` means no-op for a category."""

    add: list[Element] | None = None
    remove: list[str] | None = None
    modify: list[ElementChange] | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.add or self.remove or self.modify)

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting empty categories."""
        data: dict[str, Any] = {}
        if self.add:
            data["add"] = self.add
        if self.remove:
            data["remove"] = self.remove
        if self.modify:
            data["modify"] = [{"id": m.id, "changes": m.changes} for m in self.modify]
        return data


@dataclass
class ChangeSet:
    """Ids touched by an applied diff."""

    added_ids: list[str] = field(default_factory=list)
    removed_ids: list[str] = field(default_factory=list)
    modified_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "addedIds": self.added_ids,
            "removedIds": self.removed_ids,
            "modifiedIds": self.modified_ids,
        }
