"""Security shell: defensive headers, request guards, input sanitization
and access logging.

Each middleware either passes the request through or short-circuits it
with a JSON error envelope.  The guard and the sanitizer are plain ASGI
middleware because they have to read the body before any route does and
replay it downstream.
"""

import json
import logging
import time
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from payflow.api.routes import longest_prefix
from payflow.exceptions import (
    InvalidPayloadError,
    PayflowError,
    PayloadTooLargeError,
    UnsupportedContentTypeError,
    error_envelope,
)
from payflow.middleware.rate_limit import client_identity
from payflow.services.sanitize import sanitize_string, sanitize_value

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
JSON_TYPE = "application/json"
FORM_TYPE = "application/x-www-form-urlencoded"
ALLOWED_CONTENT_TYPES = frozenset({JSON_TYPE, FORM_TYPE})


def media_type(content_type: str | None) -> str:
    """``application/json; charset=utf-8`` -> ``application/json``."""
    return (content_type or "").split(";", 1)[0].strip().lower()


async def read_capped_body(receive: Receive, max_bytes: Optional[int] = None) -> Optional[bytes]:
    """Drain the request body from ``receive``.

    Raises PayloadTooLargeError as soon as more than ``max_bytes`` have
    arrived.  Returns None if the client disconnects first.
    """
    chunks: list[bytes] = []
    size = 0
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return None
        chunk = message.get("body", b"")
        size += len(chunk)
        if max_bytes is not None and size > max_bytes:
            raise PayloadTooLargeError()
        chunks.append(chunk)
        if not message.get("more_body", False):
            return b"".join(chunks)


def replay_body(body: bytes, receive: Receive) -> Receive:
    """Hand ``body`` downstream as one message, then defer to the server."""
    sent = False

    async def _receive() -> Message:
        nonlocal sent
        if sent:
            return await receive()
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return _receive


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response: Response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if "x-powered-by" in response.headers:
            del response.headers["x-powered-by"]
        return response


class RequestGuardMiddleware:
    """Reject oversized bodies and unexpected content types before routing.

    The body is read here, never more than ``max_body_bytes`` of it, and
    replayed to the rest of the chain.  A chunked upload with no declared
    length is cut off as soon as it passes the ceiling.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int = 1024 * 1024):
        self.app = app
        self._max_body_bytes = max_body_bytes

    def _declared_length(self, request: Request) -> Optional[int]:
        declared = request.headers.get("content-length")
        if declared is None:
            return None
        try:
            length = int(declared)
        except ValueError:
            raise InvalidPayloadError("Invalid Content-Length header")
        if length < 0:
            raise InvalidPayloadError("Invalid Content-Length header")
        if length > self._max_body_bytes:
            raise PayloadTooLargeError()
        return length

    async def _guard(self, request: Request, receive: Receive) -> Optional[Receive]:
        length = self._declared_length(request)
        chunked = "chunked" in request.headers.get("transfer-encoding", "").lower()
        if request.method not in BODY_METHODS and not length and not chunked:
            return receive

        body = await read_capped_body(receive, self._max_body_bytes)
        if body is None:
            return None
        if (
            body
            and request.method in BODY_METHODS
            and media_type(request.headers.get("content-type")) not in ALLOWED_CONTENT_TYPES
        ):
            raise UnsupportedContentTypeError()
        return replay_body(body, receive)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        try:
            guarded = await self._guard(request, receive)
        except PayflowError as exc:
            logger.warning(
                "Rejected %s %s from %s: %s",
                request.method, request.url.path, client_identity(request), exc.message,
            )
            response = JSONResponse(error_envelope(exc.message), status_code=exc.status_code)
            await response(scope, receive, send)
            return

        if guarded is None:
            logger.info("Client %s disconnected during upload", client_identity(request))
            return
        await self.app(scope, guarded, send)


def _sanitize_pairs(pairs: list[tuple[str, str]]) -> list[tuple[str, str]]:
    return [(sanitize_string(k), sanitize_string(v)) for k, v in pairs]


def sanitize_query_string(query_string: bytes) -> bytes:
    if not query_string:
        return query_string
    pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
    cleaned = _sanitize_pairs(pairs)
    if cleaned == pairs:
        return query_string
    return urlencode(cleaned).encode("latin-1")


def sanitize_body(body: bytes, kind: str) -> bytes:
    """Sanitized copy of a JSON or form body; anything unparseable is left
    for the decoder to reject."""
    if kind == JSON_TYPE:
        try:
            data = json.loads(body)
        except ValueError:
            return body
        cleaned = sanitize_value(data)
        return body if cleaned == data else json.dumps(cleaned).encode("utf-8")

    if kind == FORM_TYPE:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            return body
        pairs = parse_qsl(text, keep_blank_values=True)
        cleaned = _sanitize_pairs(pairs)
        return body if cleaned == pairs else urlencode(cleaned).encode("utf-8")

    return body


def _with_content_length(headers: list[tuple[bytes, bytes]], length: int) -> list[tuple[bytes, bytes]]:
    kept = [(k, v) for k, v in headers if k.lower() not in (b"content-length", b"transfer-encoding")]
    kept.append((b"content-length", str(length).encode("latin-1")))
    return kept


class InputSanitizerMiddleware:
    """Neutralize markup in the query string and in JSON or form bodies
    before any route sees them."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        scope["query_string"] = sanitize_query_string(scope.get("query_string", b""))

        request = Request(scope)
        kind = media_type(request.headers.get("content-type"))
        if request.method in BODY_METHODS and kind in ALLOWED_CONTENT_TYPES:
            body = await read_capped_body(receive)
            if body is None:
                return
            cleaned = sanitize_body(body, kind)
            if cleaned is not body:
                scope["headers"] = _with_content_length(list(scope["headers"]), len(cleaned))
            receive = replay_body(cleaned, receive)

        await self.app(scope, receive, send)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access-log line per request."""

    def __init__(self, app: ASGIApp, route_prefixes: Iterable[str] = ()):
        super().__init__(app)
        self._prefixes = tuple(route_prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            group = longest_prefix(request.url.path, self._prefixes) or "-"
            logger.info(
                '%s "%s %s" %d %.1fms group=%s ua="%s"',
                client_identity(request),
                request.method,
                request.url.path,
                status_code,
                duration_ms,
                group,
                request.headers.get("user-agent", "-"),
            )
