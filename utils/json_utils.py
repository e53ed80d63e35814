"""Shared JSON parsing helpers for recognition responses."""
from __future__ import annotations

import json
import re
from typing import Any

from core.exceptions import OutputFormatError

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def extract_first_json_object(text: str) -> str:
    """Extract the first {...} object from text (brace-balanced)."""
    start = text.find("{")
    if start < 0:
        return text
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def fix_json(s: str) -> str:
    """Remove trailing commas and other common invalid JSON."""
    s = re.sub(r",\s*}", "}", s)
    s = re.sub(r",\s*]", "]", s)
    return s


def parse_json_object(text: str, trace_id: str = "") -> dict[str, Any]:
    """
    Parse a JSON object from model output; strips markdown fences and trailing commas.
    Raises OutputFormatError when no object can be parsed.
    """
    stripped = (text or "").strip()
    m = _FENCE.search(stripped)
    if m:
        stripped = m.group(1).strip()
    stripped = fix_json(extract_first_json_object(stripped))
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise OutputFormatError(f"Invalid JSON: {e}", trace_id=trace_id) from e
    if not isinstance(data, dict):
        raise OutputFormatError(f"Expected JSON object, got {type(data).__name__}", trace_id=trace_id)
    return data
