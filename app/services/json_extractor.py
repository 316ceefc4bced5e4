"""Recover a JSON value from a model's free-form reply.

Best effort only: assumes at most one top-level value and does not balance
braces that appear inside string literals.
"""
from __future__ import annotations
from typing import Any, Optional
import json
import re

EMPTY_JSON = "{}"

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*")


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
        return True
    except (ValueError, TypeError):
        return False


def extract_json(raw_text: Optional[str]) -> str:
    """Return a string holding valid JSON, or ``"{}"`` when nothing is recoverable."""
    if not raw_text or not isinstance(raw_text, str):
        return EMPTY_JSON
    direct = raw_text.strip()
    if _is_json(direct):
        return direct
    cleaned = _strip_fences(raw_text)
    if not cleaned:
        return EMPTY_JSON
    if _is_json(cleaned):
        return cleaned

    obj_start = cleaned.find("{")
    arr_start = cleaned.find("[")
    if obj_start == -1 and arr_start == -1:
        return EMPTY_JSON
    if arr_start == -1 or (obj_start != -1 and obj_start < arr_start):
        start, closer = obj_start, "}"
    else:
        start, closer = arr_start, "]"
    end = cleaned.rfind(closer)
    if end <= start:
        return EMPTY_JSON
    candidate = cleaned[start:end + 1].strip()
    return candidate if _is_json(candidate) else EMPTY_JSON


def parse_json(raw_text: Optional[str]) -> Any:
    return json.loads(extract_json(raw_text))
