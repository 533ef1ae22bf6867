"""Best-effort repair of truncated JSON emitted by a language model."""
from __future__ import annotations

import json
import re
from typing import Any

from excalidraw_agent.errors import OutputRepairError

_FENCE_START = re.compile(r"^```(?:json|javascript|js)?\s*\n?", re.IGNORECASE)
_FENCE_END = re.compile(r"\n?```\s*$")
_JSON_START = re.compile(r"[\[{]")
_TRAILING_COMMA = re.compile(r",\s*$")

_CLOSERS = {"{": "}", "[": "]"}


def _scan(text: str) -> tuple[list[str], bool, int | None, bool]:
    """Walk ``text`` tracking open brackets and string state.

    Returns ``(stack, in_string, end, mismatched)`` where ``end`` is the index
    just past the first complete top-level document (or ``None``), and
    ``mismatched`` reports a closer that does not match the stack.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    started = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
            started = True
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return stack, in_string, None, True
            stack.pop()
            if started and not stack:
                return stack, in_string, i + 1, False

    return stack, in_string, None, False


def repair_structural_closure(text: str) -> str:
    """Append the closers a truncated document is missing.

    The text is returned unchanged when it is already balanced, or when
    balancing it would require removing characters (a stray or mismatched
    closer, or a dangling comma that ``extract_json_text`` trims). Nothing
    is ever dropped; only a closing quote and ``]``/``}`` characters are
    appended.

    Example:
        >>> repair_structural_closure('{"add": [{"id": "a"}')
        '{"add": [{"id": "a"}]}'
    """
    stack, in_string, _end, mismatched = _scan(text)
    if mismatched or (not stack and not in_string):
        return text
    if not in_string and text.rstrip().endswith(","):
        return text

    closers = '"' if in_string else ""
    closers += "".join(reversed(stack))
    return text + closers


def extract_json_text(text: str) -> str:
    """Isolate the JSON document inside a model response.

    Strips markdown fences and any prose before the first ``{``/``[``, cuts
    text after the first complete top-level document and trims a dangling
    trailing comma left by truncation.
    """
    cleaned = _FENCE_END.sub("", _FENCE_START.sub("", text.strip())).strip()
    match = _JSON_START.search(cleaned)
    if match is None:
        return cleaned
    cleaned = cleaned[match.start() :]

    _stack, _in_string, end, _mismatched = _scan(cleaned)
    if end is not None:
        return cleaned[:end]
    return _TRAILING_COMMA.sub("", cleaned)


def parse_structured_output(text: str) -> Any:
    """Extract, repair and parse a model response.

    Raises:
        OutputRepairError: if the repaired text still does not parse. The
            caller should fail the operation rather than retry on the same
            text.
    """
    if not text or not text.strip():
        raise OutputRepairError("Generator returned an empty response")
    repaired = repair_structural_closure(extract_json_text(text))
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as exc:
        raise OutputRepairError(f"Response is not valid JSON after repair: {exc.msg}") from exc
