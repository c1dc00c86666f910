"""JSON recovery helpers for backend responses.

Responses often arrive wrapped in markdown code fences, or with raw control
characters inside string values. These helpers try progressively looser
strategies before giving up.
"""

import json
import re
from typing import Any

# Precompiled regex for JSON extraction
_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_FENCE_TOKEN_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

# Lenient decoder that allows control characters (raw newlines, tabs) inside
# JSON strings.
_LENIENT_DECODER = json.JSONDecoder(strict=False)


def _try_loads(text: str) -> Any:
    """Try parsing JSON, first strictly then leniently."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return _LENIENT_DECODER.decode(text)
    except json.JSONDecodeError:
        pass
    raise json.JSONDecodeError("", text, 0)


def strip_code_fences(text: str) -> str:
    """Remove every ```json / ``` token and trim."""
    return _FENCE_TOKEN_RE.sub("", text or "").strip()


def parse_json_response(text: str) -> Any:
    """Extract and parse JSON from response text.

    Returns whatever the payload decodes to (object or array).

    Raises:
        ValueError: If no strategy yields valid JSON.
    """
    text = (text or "").strip()

    try:
        return _try_loads(text)
    except json.JSONDecodeError:
        pass

    match = _JSON_FENCE_RE.search(text)
    if match:
        try:
            return _try_loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

    # Try finding JSON object or array boundaries
    for start_char, end_char in [("{", "}"), ("[", "]")]:
        start = text.find(start_char)
        end = text.rfind(end_char)
        if start != -1 and end != -1 and end > start:
            try:
                return _try_loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue

    raise ValueError(f"Failed to parse JSON from response: {text[:200]}...")


def ensure_dict(result: Any) -> dict:
    """Coerce a decoded payload to a dict.

    A list yields its first dict element; anything else is wrapped.
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, list):
        for item in result:
            if isinstance(item, dict):
                return item
        return {"items": result}
    return {"value": result}
