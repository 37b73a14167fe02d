"""
JSON Extractor
==============
Pulls the first JSON object out of free-form model output.

Models wrap their JSON in prose, code fences, or both. A greedy `\\{.*\\}`
regex spans from the first `{` to the LAST `}` in the text and breaks as
soon as the prose after the object contains a brace. Instead this module
scans with a brace-depth counter that understands JSON string literals and
escapes, so braces inside string values never move the depth.

Heuristic, not a parser:
    - The first `{` that opens a balanced region wins.
    - If that region is not valid JSON, a light repair (trailing commas) is
      attempted once; nothing else is guessed.
    - No object found → None; invalid object → ValueError.
"""
import json
import re
from typing import Any, Optional

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def find_first_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced `{...}` substring of *text*, or None.

    Scanning restarts after an unbalanced opening brace so a stray `{` in
    leading prose does not hide a well-formed object later on.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        end = _scan_balanced(text, start)
        if end is not None:
            return text[start:end + 1]
        start = text.find("{", start + 1)
    return None


def _scan_balanced(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
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
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def parse_json_object(text: str) -> Optional[dict]:
    """
    Extract and decode the first JSON object in *text*.

    Returns
    -------
    dict | None
        Decoded object, or None when the text holds no balanced object.

    Raises
    ------
    ValueError
        A balanced object was found but is not valid JSON even after repair.
    """
    candidate = find_first_json_object(text)
    if candidate is None:
        return None

    try:
        data: Any = json.loads(candidate)
    except json.JSONDecodeError:
        try:
            data = json.loads(_TRAILING_COMMA.sub(r"\1", candidate))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON object: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("Extracted JSON is not an object")
    return data
