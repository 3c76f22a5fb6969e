"""Recovering JSON from model output.

Outlines and character states come back as JSON, but models wrap it in
markdown fences, surround it with prose, or leave raw newlines inside
strings. ``parse_json`` tries each plausible slice of the text in turn.
"""

import json
import re
from typing import Any, Iterator

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

# strict=False accepts control characters inside strings
_LENIENT_DECODER = json.JSONDecoder(strict=False)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _LENIENT_DECODER.decode(text)


def _candidates(text: str) -> Iterator[str]:
    """Slices of ``text`` that may hold the JSON value, most likely first."""
    yield text

    fenced = _JSON_FENCE_RE.search(text)
    if fenced:
        yield fenced.group(1).strip()

    # Bracketed spans, earliest opening bracket first
    spans = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, end))
    for start, end in sorted(spans):
        yield text[start:end + 1]


def parse_json(text: str) -> Any:
    """Parse the JSON object or array in a model response.

    Raises:
        ValueError: No slice of the response decodes as JSON.
    """
    text = text.strip()
    for candidate in _candidates(text):
        try:
            return _loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError(f"No JSON found in model response: {text[:200]}...")


def parse_json_response(text: str) -> dict:
    """``parse_json`` for callers that need an object.

    An array yields its first object; anything else is wrapped as
    ``{"items": ...}`` or ``{"value": ...}``.
    """
    result = parse_json(text)
    if isinstance(result, dict):
        return result
    if isinstance(result, list):
        return next((item for item in result if isinstance(item, dict)), {"items": result})
    return {"value": result}
