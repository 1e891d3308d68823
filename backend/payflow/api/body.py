"""Request body decoding.

JSON and url-encoded bodies are decoded up to the configured size
ceiling.  The security shell has already capped and sanitized the raw
body by the time a handler asks for it.  Form bodies use
bracket notation for nesting: ``owner[name]=ada&tags[]=a&tags[]=b``.
"""

import json
import re
from typing import Any, Iterable, Tuple
from urllib.parse import parse_qsl

from fastapi import Request

from payflow.exceptions import InvalidPayloadError, PayloadTooLargeError, UnsupportedContentTypeError
from payflow.middleware.security import media_type

_KEY_PART_RE = re.compile(r"\[([^\]]*)\]")
# Guard against pathological nesting in form keys
MAX_FORM_DEPTH = 20


def _split_key(key: str) -> list[str]:
    """``a[b][]`` -> ``["a", "b", ""]``."""
    head, sep, _ = key.partition("[")
    if not sep or not head:
        return [key]
    parts = [head]
    consumed = len(head)
    for match in _KEY_PART_RE.finditer(key, consumed):
        if match.start() != consumed:
            break
        parts.append(match.group(1))
        consumed = match.end()
    if len(parts) == 1:
        return [key]
    if consumed != len(key):
        # Trailing text after the last bracket group stays a literal segment
        parts.append(key[consumed:])
    return parts[: MAX_FORM_DEPTH + 1]


def _assign(container: dict, parts: list[str], value: str) -> None:
    node: Any = container
    for i, part in enumerate(parts):
        last = i == len(parts) - 1
        next_is_list = not last and parts[i + 1] == ""

        if isinstance(node, list):
            if last:
                node.append(value)
                return
            child: Any = [] if next_is_list else {}
            node.append(child)
            node = child
            continue

        if last:
            if part in node:
                existing = node[part]
                if isinstance(existing, list):
                    existing.append(value)
                else:
                    node[part] = [existing, value]
            else:
                node[part] = value
            return

        child = node.get(part)
        if next_is_list:
            if not isinstance(child, list):
                child = [] if child is None else [child]
                node[part] = child
        elif not isinstance(child, dict):
            child = {} if child is None else {"": child}
            node[part] = child
        node = child


def parse_nested_form(pairs: Iterable[Tuple[str, str]]) -> dict:
    """Build nested dicts and lists from bracket-notation form pairs."""
    result: dict = {}
    for key, value in pairs:
        _assign(result, _split_key(key), value)
    return result


async def read_body(request: Request, max_bytes: int) -> bytes:
    """Read the raw body, failing as soon as it passes ``max_bytes``."""
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise PayloadTooLargeError()
        chunks.append(chunk)
    return b"".join(chunks)


async def decode_body(request: Request, max_bytes: int) -> Any:
    raw = await read_body(request, max_bytes)
    if not raw.strip():
        return {}

    kind = media_type(request.headers.get("content-type"))
    if kind == "application/json":
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidPayloadError("Invalid JSON payload") from e
    elif kind == "application/x-www-form-urlencoded":
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidPayloadError("Form body is not valid UTF-8") from e
        data = parse_nested_form(parse_qsl(text, keep_blank_values=True))
    else:
        raise UnsupportedContentTypeError()
    return data


async def decoded_body(request: Request) -> Any:
    """FastAPI dependency: the decoded request body."""
    settings = request.app.state.settings
    return await decode_body(request, settings.max_body_bytes)

