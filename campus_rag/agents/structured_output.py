"""
Structured Output Parsing
=========================

The planner and verifier are asked for "JSON only", but models still wrap
it in code fences, preface it with prose or trail off after it. This module
pulls the first balanced top-level JSON object out of such text.

Decoding never raises. It returns either Parsed(value) or Fallback(reason)
and the caller picks its safe default on Fallback.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Union

from campus_rag.exceptions import MalformedStructuredOutput

_FENCE_OPEN = re.compile(r"```json\s*", re.IGNORECASE)
_FENCE_ANY = re.compile(r"```\s*")


@dataclass(frozen=True)
class Parsed:
    value: dict[str, Any]


@dataclass(frozen=True)
class Fallback:
    reason: str


ParseOutcome = Union[Parsed, Fallback]


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` markers wherever they occur."""
    return _FENCE_ANY.sub("", _FENCE_OPEN.sub("", text)).strip()


def scan_first_object(text: str) -> str:
    """
    Return the source text of the first balanced ``{...}`` in ``text``.

    Braces inside JSON string literals do not count towards the depth.

    Raises:
        MalformedStructuredOutput: If there is no opening brace or the
            object never closes
    """
    start = text.find("{")
    if start == -1:
        raise MalformedStructuredOutput("no JSON object found")

    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    raise MalformedStructuredOutput("unbalanced braces")


def _decode(text: str) -> dict[str, Any]:
    candidate = scan_first_object(strip_code_fences(text))
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedStructuredOutput(f"invalid JSON: {e.msg}") from e
    return value


def extract_first_json_object(text: Any) -> ParseOutcome:
    """
    Decode the first JSON object in a model response.

    Args:
        text: Raw model output (anything falsy yields Fallback)

    Returns:
        Parsed with the decoded dict, or Fallback with the reason
    """
    if not text:
        return Fallback("empty output")

    try:
        return Parsed(_decode(str(text)))
    except MalformedStructuredOutput as e:
        return Fallback(str(e))
