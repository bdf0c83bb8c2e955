from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?|\n?\s*```\s*$")
_decoder = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def _skip_ws(text: str, index: int) -> int:
    while index < len(text) and text[index] in " \t\r\n":
        index += 1
    return index


def _find_array_start(text: str, key: str | None) -> int | None:
    """Index just past the ``[`` that opens the array to salvage."""
    start = _skip_ws(text, 0)
    if start < len(text) and text[start] == "[":
        return start + 1
    if key is None:
        return None
    match = re.search(r'"' + re.escape(key) + r'"\s*:\s*\[', text)
    if not match:
        return None
    return match.end()


def salvage_array_items(text: str, *, key: str | None = "sections") -> list[Any]:
    """Return the array elements that decode completely before a truncation.

    Accepts either a top-level array or an object holding the array under
    ``key``. Decoding walks the array element by element with
    ``JSONDecoder.raw_decode`` and stops at the first element that does not
    parse, so a response cut off mid-object keeps everything before it.
    """
    body = strip_code_fences(text)
    index = _find_array_start(body, key)
    if index is None:
        return []

    items: list[Any] = []
    while True:
        index = _skip_ws(body, index)
        if index >= len(body) or body[index] == "]":
            break
        try:
            item, index = _decoder.raw_decode(body, index)
        except json.JSONDecodeError:
            break
        items.append(item)
        index = _skip_ws(body, index)
        if index < len(body) and body[index] == ",":
            index += 1
            continue
        break
    return items
