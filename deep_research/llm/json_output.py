"""Helpers for pulling JSON out of chat model replies."""

import json
import re
from typing import Any, Optional

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_json_reply(text: str, expect: str = "object") -> Optional[Any]:
    """Parse the first JSON object (or array) in a model reply.

    Handles fenced code blocks and leading prose. Returns None when nothing
    parseable is found.
    """
    if not text:
        return None
    m = _FENCE.search(text)
    body = m.group(1) if m else text
    open_ch, close_ch = ("{", "}") if expect == "object" else ("[", "]")
    start = body.find(open_ch)
    end = body.rfind(close_ch)
    if start == -1 or end <= start:
        return None
    try:
        value = json.loads(body[start:end + 1])
    except json.JSONDecodeError:
        return None
    if expect == "object" and not isinstance(value, dict):
        return None
    if expect == "array" and not isinstance(value, list):
        return None
    return value
