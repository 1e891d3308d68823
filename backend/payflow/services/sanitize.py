"""Input sanitization for decoded request data."""

import re
from typing import Any

_SCRIPT_BLOCK_RE = re.compile(r"<\s*script\b[^>]*>.*?<\s*/\s*script\s*>", re.IGNORECASE | re.DOTALL)
_JS_SCHEME_RE = re.compile(r"javascript\s*:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon[a-z]+\s*=", re.IGNORECASE)


def sanitize_string(value: str) -> str:
    """Neutralize markup and script vectors in a single string."""
    if not value:
        return value
    result = value.replace("\x00", "")
    result = _SCRIPT_BLOCK_RE.sub("", result)
    result = result.replace("<", "").replace(">", "")
    result = _JS_SCHEME_RE.sub("", result)
    result = _EVENT_HANDLER_RE.sub("", result)
    return result


def sanitize_value(value: Any) -> Any:
    """Recursively sanitize strings inside dicts and lists.

    Dict keys are sanitized as well; numbers, booleans and None pass
    through untouched.
    """
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        return {
            (sanitize_string(k) if isinstance(k, str) else k): sanitize_value(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [sanitize_value(v) for v in value]
    return value
