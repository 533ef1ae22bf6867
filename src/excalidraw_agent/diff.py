"""
Element-level diffs: validation and application.

``apply_diff`` is all-or-nothing. It works on a deep copy, checks every
instruction before touching anything, and runs a referential-integrity pass
over the result; any problem raises and the caller's elements are untouched.
"""

from __future__ import annotations

import copy
import random
import re
import time
from typing import Any

from excalidraw_agent.errors import DiffIssue, DuplicateIdError, InvalidDiffError
from excalidraw_agent.models import (
    ChangeSet,
    Element,
    ElementChange,
    ModificationDiff,
    binding_target,
)

_INDEX_NUMBER = re.compile(r"(\d+)")

_BINDING_FIELDS = (
    ("startBinding", "elementId"),
    ("endBinding", "elementId"),
    ("start", "id"),
    ("end", "id"),
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _issue(path: str, message: str) -> DiffIssue:
    return DiffIssue(code="invalid-diff", message=message, path=path)


def parse_diff(raw: Any) -> ModificationDiff:
    """
    Validate the container shape of a generated diff.

    Each present top-level field must be the right kind: ``add`` a list of
    objects with string ``id`` and ``type``, ``remove`` a list of strings,
    ``modify`` a list of ``{id: str, changes: object}``. Unknown top-level
    fields are ignored.

    Raises:
        InvalidDiffError: listing every violation found
    """
    if not isinstance(raw, dict):
        raise InvalidDiffError(
            "Diff must be a JSON object",
            [_issue("", f"expected object, got {type(raw).__name__}")],
            operation="parse_diff",
        )

    issues: list[DiffIssue] = []
    add = raw.get("add")
    remove = raw.get("remove")
    modify = raw.get("modify")

    if add is not None:
        if not isinstance(add, list):
            issues.append(_issue("add", "add must be an array"))
        else:
            for i, element in enumerate(add):
                if not isinstance(element, dict):
                    issues.append(_issue(f"add.{i}", "added element must be an object"))
                    continue
                for key in ("id", "type"):
                    if not isinstance(element.get(key), str) or not element[key]:
                        issues.append(_issue(f"add.{i}.{key}", f"added element needs a string {key}"))

    if remove is not None:
        if not isinstance(remove, list):
            issues.append(_issue("remove", "remove must be an array"))
        else:
            for i, element_id in enumerate(remove):
                if not isinstance(element_id, str):
                    issues.append(_issue(f"remove.{i}", "removed id must be a string"))

    if modify is not None:
        if not isinstance(modify, list):
            issues.append(_issue("modify", "modify must be an array"))
        else:
            for i, entry in enumerate(modify):
                if not isinstance(entry, dict):
                    issues.append(_issue(f"modify.{i}", "modification must be an object"))
                    continue
                if not isinstance(entry.get("id"), str):
                    issues.append(_issue(f"modify.{i}.id", "modification needs a string id"))
                if not isinstance(entry.get("changes"), dict):
                    issues.append(_issue(f"modify.{i}.changes", "changes must be an object"))

    if issues:
        raise InvalidDiffError(
            f"Invalid diff: {len(issues)} issue(s)", issues, operation="parse_diff"
        )

    return ModificationDiff(
        add=copy.deepcopy(add) if add is not None else None,
        remove=list(remove) if remove is not None else None,
        modify=(
            [ElementChange(id=entry["id"], changes=copy.deepcopy(entry["changes"])) for entry in modify]
            if modify is not None
            else None
        ),
    )


# ---------------------------------------------------------------------------
# Referential integrity
# ---------------------------------------------------------------------------


def _references(element: Element) -> list[tuple[str, str]]:
    """``(target_id, path)`` for every id this element points at."""
    refs: list[tuple[str, str]] = []
    for field_name, key in _BINDING_FIELDS:
        ref = element.get(field_name)
        if isinstance(ref, dict) and isinstance(ref.get(key), str) and ref[key]:
            refs.append((ref[key], f"{field_name}.{key}"))
    if isinstance(element.get("containerId"), str):
        refs.append((element["containerId"], "containerId"))
    bound = element.get("boundElements")
    if isinstance(bound, list):
        for entry in bound:
            if isinstance(entry, dict) and isinstance(entry.get("id"), str):
                refs.append((entry["id"], "boundElements"))
    return refs


def validate_elements(elements: list[Element]) -> list[DiffIssue]:
    """Report missing ids, duplicate ids and dangling references."""
    issues: list[DiffIssue] = []
    ids: set[str] = set()

    for element in elements:
        element_id = element.get("id")
        if not isinstance(element_id, str) or not element_id:
            issues.append(DiffIssue(code="invalid-element", message="Element missing id"))
            continue
        if element_id in ids:
            issues.append(
                DiffIssue(
                    code="duplicate-id",
                    message=f"Duplicate element id '{element_id}'",
                    element_id=element_id,
                )
            )
        ids.add(element_id)

    for element in elements:
        element_id = element.get("id")
        for target_id, path in _references(element):
            if target_id not in ids:
                issues.append(
                    DiffIssue(
                        code="dangling-reference",
                        message=f"Element '{element_id}' references missing id '{target_id}' via {path}",
                        element_id=element_id if isinstance(element_id, str) else None,
                        path=path,
                    )
                )
    return issues


def _collect_issues(
    existing_ids: set[str],
    diff: ModificationDiff,
) -> list[DiffIssue]:
    issues: list[DiffIssue] = []

    for change in diff.modify or []:
        if change.id not in existing_ids:
            issues.append(
                DiffIssue(
                    code="missing-element",
                    message=f"Cannot modify missing element '{change.id}'",
                    element_id=change.id,
                )
            )
        new_id = change.changes.get("id")
        if new_id and new_id != change.id:
            issues.append(
                DiffIssue(
                    code="immutable-id",
                    message=f"Cannot change id '{change.id}' to '{new_id}'",
                    element_id=change.id,
                )
            )

    added: set[str] = set()
    for element in diff.add or []:
        element_id = element["id"]
        if element_id in existing_ids:
            issues.append(
                DiffIssue(
                    code="duplicate-id",
                    message=f"Cannot add element '{element_id}' because it already exists",
                    element_id=element_id,
                )
            )
        elif element_id in added:
            issues.append(
                DiffIssue(
                    code="duplicate-id",
                    message=f"Duplicate add element id '{element_id}'",
                    element_id=element_id,
                )
            )
        added.add(element_id)

    return issues


def _clear_references(element: Element, removed: set[str]) -> None:
    """Drop bindings, container links and bound entries to removed ids."""
    for field_name, key in _BINDING_FIELDS:
        ref = element.get(field_name)
        if isinstance(ref, dict) and ref.get(key) in removed:
            element[field_name] = None
    if element.get("containerId") in removed:
        element["containerId"] = None
    bound = element.get("boundElements")
    if isinstance(bound, list):
        kept = [entry for entry in bound if not (isinstance(entry, dict) and entry.get("id") in removed)]
        if len(kept) != len(bound):
            element["boundElements"] = kept or None


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def _flip_arrow_points(before: Element, after: Element, changes: dict[str, Any]) -> Element:
    """Reverse ``points`` when an arrow's endpoints were swapped without new points."""
    if before.get("type") != "arrow" or "points" in changes:
        return after

    before_start = binding_target(before, "start")
    before_end = binding_target(before, "end")
    after_start = binding_target(after, "start")
    after_end = binding_target(after, "end")
    if not (before_start and before_end and after_start and after_end):
        return after
    if before_start != after_end or before_end != after_start:
        return after

    points = after.get("points")
    if not isinstance(points, list) or len(points) < 2:
        return after
    return {**after, "points": list(reversed(points))}


def _index_generator(elements: list[Element]):
    highest = 0
    for element in elements:
        index = element.get("index")
        if isinstance(index, str):
            match = _INDEX_NUMBER.search(index)
            if match:
                highest = max(highest, int(match.group(1)))

    def next_index() -> str:
        nonlocal highest
        highest += 1
        return f"a{highest}"

    return next_index


def _seed() -> int:
    return random.randint(0, 999_999_999)


def build_default_element(element: Element, index: str) -> Element:
    """Fill in the Excalidraw fields a generated element usually leaves out."""
    element_type = element["type"]
    is_text = element_type == "text"
    width = element["width"] if isinstance(element.get("width"), (int, float)) else (100 if is_text else 160)
    height = element["height"] if isinstance(element.get("height"), (int, float)) else (24 if is_text else 100)

    base: Element = {
        "id": element["id"],
        "type": element_type,
        "x": element["x"] if isinstance(element.get("x"), (int, float)) else 0,
        "y": element["y"] if isinstance(element.get("y"), (int, float)) else 0,
        "width": width,
        "height": height,
        "angle": element["angle"] if isinstance(element.get("angle"), (int, float)) else 0,
        "strokeColor": element.get("strokeColor") or "#1971c2",
        "backgroundColor": element.get("backgroundColor") or ("transparent" if is_text else "#a5d8ff"),
        "fillStyle": element.get("fillStyle", "solid"),
        "strokeWidth": element.get("strokeWidth", 2),
        "strokeStyle": element.get("strokeStyle", "solid"),
        "roughness": element.get("roughness", 1),
        "opacity": element.get("opacity", 100),
        "groupIds": element.get("groupIds", []),
        "frameId": element.get("frameId"),
        "index": element.get("index", index),
        "roundness": element.get("roundness", None if is_text else {"type": 3}),
        "seed": element.get("seed", _seed()),
        "version": element.get("version", 1),
        "versionNonce": element.get("versionNonce", _seed()),
        "isDeleted": element.get("isDeleted", False),
        "boundElements": element.get("boundElements"),
        "updated": element.get("updated", int(time.time() * 1000)),
        "link": element.get("link"),
        "locked": element.get("locked", False),
    }

    if element_type == "arrow":
        points = element.get("points")
        if not isinstance(points, list) or len(points) < 2:
            points = [[0, 0], [width, height]]
        return {
            **base,
            **element,
            "points": points,
            "backgroundColor": element.get("backgroundColor", "transparent"),
            "startArrowhead": element.get("startArrowhead"),
            "endArrowhead": element.get("endArrowhead", "arrow"),
            "elbowed": element.get("elbowed", False),
        }

    if is_text:
        text = element.get("text")
        if not isinstance(text, str):
            label = element.get("label")
            text = str(label.get("text", "")) if isinstance(label, dict) else ""
        return {
            **base,
            **element,
            "text": text,
            "fontSize": element.get("fontSize", 16),
            "fontFamily": element.get("fontFamily", 5),
            "textAlign": element.get("textAlign", "center"),
            "verticalAlign": element.get("verticalAlign", "middle"),
            "containerId": element.get("containerId"),
            "originalText": element.get("originalText", text),
            "autoResize": element.get("autoResize", True),
            "lineHeight": element.get("lineHeight", 1.25),
            "backgroundColor": element.get("backgroundColor", "transparent"),
        }

    return {**base, **element}


def apply_diff(
    elements: list[Element],
    diff: ModificationDiff,
) -> tuple[list[Element], ChangeSet]:
    """
    Apply ``diff`` to a copy of ``elements``.

    Removals run first and clear every reference to the removed ids, then
    modifications are merged shallowly (``id`` and ``type`` are preserved),
    then additions are normalized and appended.

    Raises:
        DuplicateIdError: an added id already exists or is added twice
        InvalidDiffError: a modification targets a missing element or changes
            an id, or the result would hold a dangling reference
    """
    existing_ids = {el["id"] for el in elements if isinstance(el.get("id"), str)}
    issues = _collect_issues(existing_ids, diff)
    if issues:
        duplicates = [issue for issue in issues if issue.code == "duplicate-id"]
        if duplicates:
            raise DuplicateIdError(duplicates[0].element_id or "", issues)
        raise InvalidDiffError(f"Diff cannot be applied: {issues[0].message}", issues)

    working = copy.deepcopy(elements)

    removed = {element_id for element_id in diff.remove or [] if element_id in existing_ids}
    if removed:
        working = [el for el in working if el.get("id") not in removed]
        for element in working:
            _clear_references(element, removed)

    modified_ids: list[str] = []
    positions = {el.get("id"): i for i, el in reversed(list(enumerate(working)))}
    for change in diff.modify or []:
        position = positions.get(change.id)
        if position is None:
            # removed by the same diff
            continue
        current = working[position]
        merged = {**current, **copy.deepcopy(change.changes), "id": current["id"], "type": current.get("type")}
        merged = _flip_arrow_points(current, merged, change.changes)
        if merged != current:
            working[position] = merged
            if change.id not in modified_ids:
                modified_ids.append(change.id)

    next_index = _index_generator(working)
    added_ids: list[str] = []
    for element in diff.add or []:
        working.append(build_default_element(copy.deepcopy(element), next_index()))
        added_ids.append(element["id"])

    post_issues = validate_elements(working)
    if post_issues:
        raise InvalidDiffError(
            f"Diff would leave the diagram inconsistent: {post_issues[0].message}", post_issues
        )

    changes = ChangeSet(
        added_ids=added_ids,
        removed_ids=[element_id for element_id in diff.remove or [] if element_id in removed],
        modified_ids=modified_ids,
    )
    return working, changes
