"""Helpers for turning raw classifier output into usable values."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*$")


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object out of an LLM response.

    Tries in order:
    1. Drop markdown code fence lines, then json.loads
    2. Take the substring between the first '{' and the last '}'
    3. Give up and return an empty dict

    Anything that parses but is not a JSON object also yields an empty dict.
    """
    if not raw:
        return {}

    text = "\n".join(line for line in raw.splitlines() if not _FENCE_RE.match(line))

    for candidate in (text, _outer_braces(raw)):
        if not candidate:
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return data if isinstance(data, dict) else {}

    return {}


def _outer_braces(raw: str) -> str:
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        return raw[start:end]
    return ""


def coerce_confidence(value: Any) -> float:
    """Read a confidence value; missing or malformed counts as 0, the rest is clamped to [0, 1]."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return min(max(confidence, 0.0), 1.0)
