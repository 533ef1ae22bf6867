"""Tests for LLM output repair."""

import json

import pytest

from excalidraw_agent.errors import InvalidDiffError, OutputRepairError
from excalidraw_agent.utils.json_repair import (
    extract_json_text,
    parse_structured_output,
    repair_structural_closure,
)


class TestRepairStructuralClosure:
    """Tests for repair_structural_closure."""

    def test_balanced_text_unchanged(self) -> None:
        text = '{"add": [{"id": "a"}], "remove": []}'

        assert repair_structural_closure(text) == text

    def test_truncated_array_closed(self) -> None:
        text = '{"add": [{"id": "a"}, {"id": "b"}'

        repaired = repair_structural_closure(text)

        assert repaired.startswith(text)
        assert json.loads(repaired) == {"add": [{"id": "a"}, {"id": "b"}]}

    def test_open_string_closed(self) -> None:
        repaired = repair_structural_closure('{"remove": ["a", "b')

        assert json.loads(repaired) == {"remove": ["a", "b"]}

    def test_brackets_inside_strings_ignored(self) -> None:
        text = '{"text": "a } ] [ {", "list": ['

        assert json.loads(repair_structural_closure(text)) == {"text": "a } ] [ {", "list": []}

    def test_escaped_quote(self) -> None:
        text = '{"text": "say \\"hi\\"", "x": {'

        assert json.loads(repair_structural_closure(text)) == {"text": 'say "hi"', "x": {}}

    def test_mismatched_closer_unchanged(self) -> None:
        text = '{"add": [}'

        assert repair_structural_closure(text) == text

    def test_only_appends(self) -> None:
        for text in ['{"a": [1, 2', '[[{"b": "c', '{"d": {"e": [']:
            assert repair_structural_closure(text).startswith(text)

    def test_dangling_comma_unchanged(self) -> None:
        assert repair_structural_closure("[1, 2,") == "[1, 2,"
        assert repair_structural_closure('{"a": "x,"') == '{"a": "x,"}'

    def test_dangling_comma_parses_after_extraction(self) -> None:
        assert parse_structured_output("[1, 2,") == [1, 2]


class TestExtractJsonText:
    """Tests for extract_json_text."""

    def test_strips_fences(self) -> None:
        assert extract_json_text('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_leading_prose(self) -> None:
        assert extract_json_text('Here is the diff:\n{"a": 1}') == '{"a": 1}'

    def test_cuts_trailing_prose(self) -> None:
        assert extract_json_text('{"a": 1}\nLet me know if you need more.') == '{"a": 1}'

    def test_trims_dangling_comma(self) -> None:
        assert extract_json_text('{"a": [1, 2,') == '{"a": [1, 2'

    def test_no_json(self) -> None:
        assert extract_json_text("no json here") == "no json here"


class TestParseStructuredOutput:
    """Tests for parse_structured_output."""

    def test_valid(self) -> None:
        assert parse_structured_output('{"remove": ["x"]}') == {"remove": ["x"]}

    def test_fenced_and_truncated(self) -> None:
        text = '```json\n{"add": [{"id": "n1", "type": "rectangle"}'

        assert parse_structured_output(text) == {"add": [{"id": "n1", "type": "rectangle"}]}

    def test_empty(self) -> None:
        with pytest.raises(OutputRepairError):
            parse_structured_output("   ")

    def test_unrepairable(self) -> None:
        with pytest.raises(OutputRepairError) as exc_info:
            parse_structured_output('{"add": [}')

        assert isinstance(exc_info.value, InvalidDiffError)
        assert exc_info.value.issues[0].code == "unparseable-response"
