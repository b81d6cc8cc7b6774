"""Lenient JSON decoding of generative responses.

Handles common LLM quirks like markdown code blocks and leading prose.
"""

import json
import re
from typing import Any

from bookkeeping.shared.errors import ResponseParseError

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_json_object(response_text: str) -> dict[str, Any]:
    """Extract and parse the JSON object from an LLM response.

    Args:
        response_text: Raw LLM response

    Returns:
        Parsed JSON object

    Raises:
        ResponseParseError: If no JSON object can be decoded
    """
    candidates = []
    fenced = _FENCED.search(response_text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    braces = _OBJECT.search(response_text)
    if braces:
        candidates.append(braces.group(0))
    candidates.append(response_text.strip())

    last_error: Exception | None = None
    for candidate in candidates:
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(result, dict):
            return result
        last_error = ValueError(f"expected JSON object, got {type(result).__name__}")

    raise ResponseParseError("parse_json_object", f"no JSON object in response: {last_error}")


def coerce_str(value: Any) -> str:
    """Render a loosely typed JSON value as a stripped string; None becomes ''."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return ""
    return str(value).strip()


def coerce_float(value: Any, default: float) -> float:
    """Interpret a string or number as float, falling back to ``default``."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default
