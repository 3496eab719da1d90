"""Resilient JSON parsing for model output.

Model completions are free-form text: the JSON we asked for may be wrapped in
markdown fences, followed by commentary, written with unquoted keys or single
quotes, or cut off mid-object when the token budget runs out.

parse_model_json() works through three stages, each more aggressive than the
last, and returns as soon as one of them yields valid JSON:

1. Extraction and direct parse
2. Textual repair of a complete candidate (json_repair)
3. Bracket-balance recovery of a truncated candidate (character-scanning
   state machine)

Recovery only restores syntactic validity. It never invents values: an
incomplete trailing value is dropped, never completed, and string contents
are never rewritten.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import json_repair
from loguru import logger

from app.planning.errors import ParseError

_FENCE_RE = re.compile(r"```[a-zA-Z]*")
_SCALAR_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null")

_CLOSERS = {"{": "}", "[": "]"}

# Applied outside string literals only, before json_repair
_PLACEHOLDER_REPAIRS: list[tuple[re.Pattern[str], str]] = [
    # Bare "..." placeholders inside arrays/objects
    (re.compile(r"(?<=[\[{,])\s*\.\.\.\s*,?"), " "),
    # Empty values
    (re.compile(r":\s*,"), ": null,"),
    (re.compile(r":\s*}"), ": null}"),
]


def extract_json_candidate(text: str) -> str:
    """Strip fences and return the largest brace-delimited substring.

    Candidates are found with the same string-aware scanner used for recovery,
    so braces inside string values never split a candidate. A candidate that
    never closes (truncated output) runs to the end of the text.
    """
    cleaned = _FENCE_RE.sub("", text).strip()

    spans: list[tuple[int, int]] = []
    index = 0
    while index < len(cleaned):
        start = _find_opener(cleaned, index)
        if start == -1:
            break
        end = _find_matching_close(cleaned, start)
        if end == -1:
            spans.append((start, len(cleaned)))
            break
        spans.append((start, end + 1))
        index = end + 1

    if not spans:
        return cleaned

    start, end = max(spans, key=lambda span: span[1] - span[0])
    return cleaned[start:end]


def _find_opener(text: str, start: int) -> int:
    positions = [pos for pos in (text.find("{", start), text.find("[", start)) if pos != -1]
    return min(positions) if positions else -1


def _find_matching_close(text: str, start: int) -> int:
    depth = 0
    in_string = False
    escape = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return index
    return -1


def is_truncated(candidate: str) -> bool:
    """True when the candidate opens a container that never closes."""
    start = _find_opener(candidate, 0)
    return start != -1 and _find_matching_close(candidate, start) == -1


def _map_outside_strings(text: str, repair: Callable[[str], str]) -> str:
    out: list[str] = []
    segment_start = 0
    in_string = False
    escape = False
    for index, char in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
                out.append(text[segment_start : index + 1])
                segment_start = index + 1
        elif char == '"':
            out.append(repair(text[segment_start:index]))
            segment_start = index
            in_string = True

    tail = text[segment_start:]
    out.append(tail if in_string else repair(tail))
    return "".join(out)


def _patch_placeholders(segment: str) -> str:
    for pattern, replacement in _PLACEHOLDER_REPAIRS:
        segment = pattern.sub(replacement, segment)
    return segment


def repair_json_text(candidate: str) -> Any | None:
    """Repair a complete but malformed JSON candidate.

    Ellipsis placeholders and empty values are patched outside string
    literals, then json_repair fixes quoting, trailing or missing commas and
    raw newlines inside strings. Returns None when nothing usable comes back.
    """
    prepared = _map_outside_strings(candidate, _patch_placeholders)
    try:
        repaired = json_repair.repair_json(prepared, return_objects=True)
    except Exception as e:
        logger.debug("json_repair failed", error_type=type(e).__name__, error=str(e))
        return None

    if isinstance(repaired, (dict, list)) and repaired:
        return repaired
    return None


@dataclass
class _Frame:
    opener: str
    # object: key -> colon -> value -> comma ; array: value -> comma
    state: str


@dataclass
class _ScanState:
    stack: list[_Frame] = field(default_factory=list)
    safe_index: int = 0
    safe_openers: tuple[str, ...] = ()

    def mark_safe(self, index: int) -> None:
        self.safe_index = index
        self.safe_openers = tuple(frame.opener for frame in self.stack)

    def value_completed(self, end: int) -> None:
        if self.stack:
            self.stack[-1].state = "comma"
        self.mark_safe(end)


def recover_truncated_json(text: str) -> str:
    """Balance truncated JSON by cutting back to the last complete value.

    Scans character by character, tracking string/escape state and a stack of
    open containers. Every completed value (and every freshly opened
    container) is a safe cut point. At the end of the input, anything after
    the last safe point is discarded (a dangling string, a key without a
    value, a trailing comma, a scalar that reaches the end of input) and the
    exact closers for the containers still open at that point are appended,
    innermost first.

    Returns the input unchanged when it contains no container at all.
    """
    start = _find_opener(text, 0)
    if start == -1:
        return text

    scan = _ScanState()
    in_string = False
    escape = False
    string_start = -1
    scalar_start = -1

    def finish_scalar(end: int) -> None:
        nonlocal scalar_start
        if scalar_start == -1:
            return
        token = text[scalar_start:end]
        if _SCALAR_RE.fullmatch(token):
            scan.value_completed(end)
        scalar_start = -1

    index = start
    while index < len(text):
        char = text[index]

        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
                frame = scan.stack[-1] if scan.stack else None
                if frame is not None and frame.opener == "{" and frame.state == "key":
                    frame.state = "colon"
                else:
                    scan.value_completed(index + 1)
            index += 1
            continue

        if char in " \t\r\n":
            finish_scalar(index)
        elif char == '"':
            finish_scalar(index)
            in_string = True
            string_start = index
        elif char in "{[":
            finish_scalar(index)
            if scan.stack:
                scan.stack[-1].state = "comma"
            scan.stack.append(_Frame(char, "key" if char == "{" else "value"))
            scan.mark_safe(index + 1)
        elif char in "}]":
            finish_scalar(index)
            if scan.stack:
                scan.stack.pop()
            if not scan.stack:
                return text[start : index + 1]
            scan.value_completed(index + 1)
        elif char == ":":
            finish_scalar(index)
            if scan.stack:
                scan.stack[-1].state = "value"
        elif char == ",":
            finish_scalar(index)
            if scan.stack:
                frame = scan.stack[-1]
                frame.state = "key" if frame.opener == "{" else "value"
        elif scalar_start == -1:
            scalar_start = index
        index += 1

    # A string or scalar running into the end of input may have been cut short
    if in_string:
        logger.debug("Dropping dangling string during JSON recovery", string_start=string_start)
    elif scalar_start != -1:
        logger.debug("Dropping trailing scalar during JSON recovery", token=text[scalar_start:])

    body = text[start : scan.safe_index].rstrip()
    closers = "".join(_CLOSERS[opener] for opener in reversed(scan.safe_openers))
    return body + closers


def parse_model_json(text: str) -> Any:
    """Parse JSON out of free-form model text.

    Args:
        text: Raw model completion

    Returns:
        Parsed JSON value (normally a dict)

    Raises:
        ParseError: If no stage produces valid JSON
    """
    if not text or not text.strip():
        raise ParseError("JSON_PARSE_ERROR: empty model response", text or "")

    candidate = extract_json_candidate(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug("Direct JSON parse failed", error=str(e))

    if not is_truncated(candidate):
        repaired = repair_json_text(candidate)
        if repaired is not None:
            logger.info("JSON parsed after text repairs", length=len(text))
            return repaired
        logger.debug("Text repairs did not produce JSON, attempting bracket recovery")

    recovered = recover_truncated_json(candidate)
    try:
        parsed = json.loads(recovered)
    except json.JSONDecodeError:
        # Truncated and malformed: repair the balanced remainder
        parsed = repair_json_text(recovered)

    if parsed is not None:
        logger.warning(
            "JSON recovered from truncated or malformed output",
            original_length=len(candidate),
            recovered_length=len(recovered),
        )
        return parsed

    logger.error("All JSON parse stages failed", preview=text[:500], length=len(text))
    raise ParseError("JSON_PARSE_ERROR: model output could not be parsed", text)
