"""
JSON Extraction Helpers

Language model responses usually wrap JSON in a markdown code block, sometimes
with a leading explanation. ``extract_json`` tries, in order:

1. a ```json fenced block
2. a plain ``` fenced block
3. a bare ``{...}`` (or ``[...]``) span
4. the whole response with any fence markers stripped
"""

import json
import re
from typing import Any

_JSON_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_PLAIN_FENCE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)
_BARE_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_BARE_ARRAY = re.compile(r"\[.*\]", re.DOTALL)
_FENCE_MARKERS = re.compile(r"```(?:json)?", re.IGNORECASE)


def _try_loads(candidate: str):
    try:
        return True, json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return False, None


def extract_json(content: str) -> Any:
    """
    Extract the first parseable JSON value from an LLM response.

    Args:
        content: Raw response text

    Returns:
        Parsed JSON value (dict or list)

    Raises:
        ValueError: If no strategy yields valid JSON

    Example:
        ```python
        extract_json('Here you go:\\n```json\\n{"action": 2}\\n```')
        # {'action': 2}
        ```
    """
    if not isinstance(content, str) or not content.strip():
        raise ValueError("Empty response")

    for pattern in (_JSON_FENCE, _PLAIN_FENCE):
        match = pattern.search(content)
        if match:
            ok, value = _try_loads(match.group(1))
            if ok:
                return value

    # Prefer whichever bare span opens first
    spans = [m for m in (_BARE_OBJECT.search(content), _BARE_ARRAY.search(content)) if m]
    for match in sorted(spans, key=lambda m: m.start()):
        ok, value = _try_loads(match.group(0))
        if ok:
            return value

    ok, value = _try_loads(_FENCE_MARKERS.sub("", content).strip())
    if ok:
        return value

    raise ValueError("No valid JSON found in response")


def extract_json_object(content: str) -> dict:
    """Like ``extract_json`` but requires a JSON object."""
    value = extract_json(content)
    if not isinstance(value, dict):
        raise ValueError(f"Expected a JSON object, got {type(value).__name__}")
    return value
