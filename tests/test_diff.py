"""Tests for diff parsing and application."""

import copy

import pytest

from excalidraw_agent.diff import (
    apply_diff,
    build_default_element,
    parse_diff,
    validate_elements,
)
from excalidraw_agent.errors import DuplicateIdError, InvalidDiffError
from excalidraw_agent.models import ElementChange, ModificationDiff


def by_id(elements: list[dict]) -> dict[str, dict]:
    return {element["id"]: element for element in elements}


class TestParseDiff:
    """Tests for parse_diff."""

    def test_full_diff(self) -> None:
        diff = parse_diff(
            {
                "add": [{"id": "n1", "type": "rectangle"}],
                "remove": ["old"],
                "modify": [{"id": "api", "changes": {"strokeColor": "#000"}}],
            }
        )

        assert diff.add == [{"id": "n1", "type": "rectangle"}]
        assert diff.remove == ["old"]
        assert diff.modify == [ElementChange(id="api", changes={"strokeColor": "#000"})]

    def test_missing_categories_are_none(self) -> None:
        diff = parse_diff({"remove": ["a"]})

        assert diff.add is None
        assert diff.modify is None
        assert not diff.is_empty

    def test_empty_object(self) -> None:
        assert parse_diff({}).is_empty

    def test_unknown_fields_ignored(self) -> None:
        assert parse_diff({"explanation": "nothing to do"}).is_empty

    def test_not_an_object(self) -> None:
        with pytest.raises(InvalidDiffError) as exc_info:
            parse_diff(["add"])

        assert exc_info.value.operation == "parse_diff"

    def test_collects_every_issue(self) -> None:
        with pytest.raises(InvalidDiffError) as exc_info:
            parse_diff(
                {
                    "add": [{"type": "rectangle"}, "nope"],
                    "remove": "a",
                    "modify": [{"id": 1, "changes": []}],
                }
            )

        paths = [issue.path for issue in exc_info.value.issues]
        assert paths == ["add.0.id", "add.1", "remove", "modify.0.id", "modify.0.changes"]
        assert {issue.code for issue in exc_info.value.issues} == {"invalid-diff"}

    def test_result_does_not_alias_input(self) -> None:
        raw = {"modify": [{"id": "a", "changes": {"label": {"text": "x"}}}]}

        diff = parse_diff(raw)
        raw["modify"][0]["changes"]["label"]["text"] = "changed"

        assert diff.modify[0].changes == {"label": {"text": "x"}}


class TestValidateElements:
    """Tests for validate_elements."""

    def test_consistent(self, elements) -> None:
        assert validate_elements(elements) == []

    def test_duplicate_and_missing_ids(self) -> None:
        issues = validate_elements([{"id": "a"}, {"id": "a"}, {"type": "rectangle"}])

        assert [issue.code for issue in issues] == ["duplicate-id", "invalid-element"]

    def test_dangling_references(self) -> None:
        issues = validate_elements(
            [
                {"id": "t", "type": "text", "containerId": "box"},
                {"id": "r", "type": "arrow", "endBinding": {"elementId": "box"}},
            ]
        )

        assert [(issue.element_id, issue.path) for issue in issues] == [
            ("t", "containerId"),
            ("r", "endBinding.elementId"),
        ]


class TestApplyDiff:
    """Tests for apply_diff."""

    def test_empty_diff_is_identity(self, elements) -> None:
        updated, changes = apply_diff(elements, ModificationDiff())

        assert updated == elements
        assert updated is not elements
        assert changes.to_dict() == {"addedIds": [], "removedIds": [], "modifiedIds": []}

    def test_remove_clears_bindings(self, elements) -> None:
        updated, changes = apply_diff(elements, ModificationDiff(remove=["api"]))

        result = by_id(updated)
        assert "api" not in result
        assert result["a1"]["endBinding"] is None
        assert result["a1"]["startBinding"] == {"elementId": "web"}
        assert changes.removed_ids == ["api"]
        assert validate_elements(updated) == []

    def test_remove_clears_container_and_bound_elements(self, elements) -> None:
        updated, _ = apply_diff(elements, ModificationDiff(remove=["web-label", "a1"]))

        result = by_id(updated)
        assert result["web"]["boundElements"] is None
        assert result["api"]["boundElements"] is None

    def test_remove_container_detaches_text(self, elements) -> None:
        updated, _ = apply_diff(elements, ModificationDiff(remove=["web"]))

        result = by_id(updated)
        assert result["web-label"]["containerId"] is None
        assert result["a1"]["startBinding"] is None

    def test_remove_missing_id_is_noop(self, elements) -> None:
        updated, changes = apply_diff(elements, ModificationDiff(remove=["ghost"]))

        assert updated == elements
        assert changes.removed_ids == []

    def test_modify_merges_shallowly(self, elements) -> None:
        diff = ModificationDiff(
            modify=[ElementChange(id="api", changes={"label": {"text": "Gateway"}, "type": "ellipse"})]
        )

        updated, changes = apply_diff(elements, diff)

        api = by_id(updated)["api"]
        assert api["label"] == {"text": "Gateway"}
        assert api["type"] == "rectangle"
        assert api["width"] == 100
        assert changes.modified_ids == ["api"]

    def test_noop_modification_not_reported(self, elements) -> None:
        diff = ModificationDiff(modify=[ElementChange(id="api", changes={"width": 100})])

        _, changes = apply_diff(elements, diff)

        assert changes.modified_ids == []

    def test_modify_missing_element(self, elements) -> None:
        diff = ModificationDiff(modify=[ElementChange(id="ghost", changes={"x": 1})])

        with pytest.raises(InvalidDiffError) as exc_info:
            apply_diff(elements, diff)

        assert exc_info.value.issues[0].code == "missing-element"

    def test_id_is_immutable(self, elements) -> None:
        diff = ModificationDiff(modify=[ElementChange(id="api", changes={"id": "gateway"})])

        with pytest.raises(InvalidDiffError) as exc_info:
            apply_diff(elements, diff)

        assert exc_info.value.issues[0].code == "immutable-id"

    def test_swapping_arrow_ends_reverses_points(self, elements) -> None:
        diff = ModificationDiff(
            modify=[
                ElementChange(
                    id="a1",
                    changes={
                        "startBinding": {"elementId": "api"},
                        "endBinding": {"elementId": "web"},
                    },
                )
            ]
        )

        updated, _ = apply_diff(elements, diff)

        assert by_id(updated)["a1"]["points"] == [[100, 0], [0, 0]]

    def test_explicit_points_are_kept_when_swapping(self, elements) -> None:
        diff = ModificationDiff(
            modify=[
                ElementChange(
                    id="a1",
                    changes={
                        "startBinding": {"elementId": "api"},
                        "endBinding": {"elementId": "web"},
                        "points": [[0, 0], [50, 50]],
                    },
                )
            ]
        )

        updated, _ = apply_diff(elements, diff)

        assert by_id(updated)["a1"]["points"] == [[0, 0], [50, 50]]

    def test_modify_to_dangling_binding_rejected(self, elements) -> None:
        diff = ModificationDiff(
            modify=[ElementChange(id="a1", changes={"endBinding": {"elementId": "ghost"}})]
        )

        with pytest.raises(InvalidDiffError) as exc_info:
            apply_diff(elements, diff)

        assert exc_info.value.issues[0].code == "dangling-reference"

    def test_add_fills_defaults(self, elements) -> None:
        diff = ModificationDiff(add=[{"id": "db", "type": "rectangle", "x": 400, "y": 0}])

        updated, changes = apply_diff(elements, diff)

        db = updated[-1]
        assert db["id"] == "db"
        assert (db["x"], db["y"], db["width"], db["height"]) == (400, 0, 160, 100)
        assert db["isDeleted"] is False
        assert db["index"] == "a1"
        assert changes.added_ids == ["db"]

    def test_add_text_and_arrow_defaults(self, elements) -> None:
        diff = ModificationDiff(
            add=[
                {"id": "note", "type": "text", "label": {"text": "hello"}},
                {
                    "id": "a2",
                    "type": "arrow",
                    "startBinding": {"elementId": "web"},
                    "endBinding": {"elementId": "api"},
                },
            ]
        )

        updated, _ = apply_diff(elements, diff)

        result = by_id(updated)
        assert result["note"]["text"] == "hello"
        assert result["note"]["originalText"] == "hello"
        assert result["note"]["fontSize"] == 16
        assert result["a2"]["points"] == [[0, 0], [160, 100]]
        assert result["a2"]["endArrowhead"] == "arrow"

    def test_add_duplicate_of_existing(self, elements) -> None:
        diff = ModificationDiff(add=[{"id": "api", "type": "rectangle"}])

        with pytest.raises(DuplicateIdError) as exc_info:
            apply_diff(elements, diff)

        assert exc_info.value.element_id == "api"

    def test_add_duplicate_within_diff(self, elements) -> None:
        diff = ModificationDiff(
            add=[{"id": "n", "type": "rectangle"}, {"id": "n", "type": "ellipse"}]
        )

        with pytest.raises(DuplicateIdError):
            apply_diff(elements, diff)

    def test_readding_removed_id_is_duplicate(self, elements) -> None:
        diff = ModificationDiff(remove=["api"], add=[{"id": "api", "type": "ellipse"}])

        with pytest.raises(DuplicateIdError):
            apply_diff(elements, diff)

    def test_add_with_dangling_binding_rejected(self, elements) -> None:
        diff = ModificationDiff(
            add=[{"id": "a2", "type": "arrow", "startBinding": {"elementId": "ghost"}}]
        )

        with pytest.raises(InvalidDiffError):
            apply_diff(elements, diff)

    def test_failure_leaves_input_untouched(self, elements) -> None:
        snapshot = copy.deepcopy(elements)
        diff = ModificationDiff(
            remove=["web"],
            modify=[ElementChange(id="a1", changes={"endBinding": {"elementId": "ghost"}})],
        )

        with pytest.raises(InvalidDiffError):
            apply_diff(elements, diff)

        assert elements == snapshot

    def test_success_leaves_input_untouched(self, elements) -> None:
        snapshot = copy.deepcopy(elements)

        apply_diff(elements, ModificationDiff(remove=["api"]))

        assert elements == snapshot


class TestBuildDefaultElement:
    """Tests for build_default_element."""

    def test_supplied_fields_win(self) -> None:
        element = build_default_element(
            {"id": "x", "type": "ellipse", "strokeColor": "#e03131", "width": 40, "seed": 7},
            "a9",
        )

        assert element["strokeColor"] == "#e03131"
        assert element["width"] == 40
        assert element["seed"] == 7
        assert element["index"] == "a9"
        assert element["roundness"] == {"type": 3}

    def test_next_index_follows_existing(self, elements) -> None:
        elements[0]["index"] = "a7"

        updated, _ = apply_diff(elements, ModificationDiff(add=[{"id": "n", "type": "diamond"}]))

        assert updated[-1]["index"] == "a8"
