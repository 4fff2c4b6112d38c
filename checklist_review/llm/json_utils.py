"""Shared JSON extraction and repair utilities for LLM providers.

Models are asked for structured output but still wrap it in commentary or code
fences, truncate it, or nest the list we want under an arbitrary key. These
helpers recover the payload without trusting the model's formatting.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable

from json_repair import repair_json

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_json_response(text: str) -> Any:
    """Extract and repair JSON content from LLM response text.

    The outermost object or array is located (whichever opens first), repaired
    with :func:`json_repair.repair_json` and parsed. A fenced ```json block takes
    precedence over the surrounding text.

    Raises:
        ValueError: If JSON delimiters are not found or text is invalid
        json.JSONDecodeError: If the repaired text still cannot be parsed

    Example:
        >>> parse_json_response('Result: {"key": "value"} Thanks!')["key"]
        'value'
    """
    if not isinstance(text, str):
        raise ValueError(f"Expected string input, got {type(text)}")

    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)

    start_obj = text.find("{")
    start_arr = text.find("[")

    if start_obj == -1 and start_arr == -1:
        raise ValueError("Response text does not contain JSON object or array delimiters.")

    # Prefer whichever delimiter opens first; arrays win ties.
    if start_obj == -1 or (start_arr != -1 and start_arr <= start_obj):
        start, end_char = start_arr, "]"
    else:
        start, end_char = start_obj, "}"

    end = text.rfind(end_char)
    if end <= start:
        # Truncated output: hand the tail to the repairer and let it close brackets.
        fragment = text[start:]
    else:
        fragment = text[start : end + 1]

    repaired = repair_json(fragment)
    return json.loads(repaired)


def coerce_json_list(data: Any, keys: Iterable[str] = ("items", "results")) -> list[Any]:
    """Return the list of entries from a parsed response.

    Accepts a bare list, a dict wrapping the list under one of ``keys``, a dict
    holding exactly one list value, or a single entry dict. Anything else yields
    an empty list.
    """
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
        list_values = [v for v in data.values() if isinstance(v, list)]
        if len(list_values) == 1:
            return list_values[0]
        return [data]
    return []
