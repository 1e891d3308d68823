"""Per-client rate gate for API routes.

Counts requests per peer address inside a sliding window and rejects
the excess with 429.  The limiter lives on ``app.state.rate_limiter``;
the lifespan swaps in a Redis-backed one when Redis is reachable.
"""

import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from payflow.exceptions import RateLimitExceededError, error_envelope

logger = logging.getLogger(__name__)


def client_identity(request: Request) -> str:
    return request.client.host if request.client and request.client.host else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding window rate limiter for everything under ``api_prefix``."""

    def __init__(self, app: ASGIApp, api_prefix: str = "/api"):
        super().__init__(app)
        self._prefix = api_prefix.rstrip("/")

    def applies_to(self, path: str) -> bool:
        return path == self._prefix or path.startswith(self._prefix + "/")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.applies_to(request.url.path):
            return await call_next(request)

        limiter = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            logger.warning("No rate limiter configured; allowing %s", request.url.path)
            return await call_next(request)

        client_id = client_identity(request)
        result = await limiter.hit(client_id)
        reset_at = str(int(time.time() + result.reset_after))

        if not result.allowed:
            logger.warning("Rate limit exceeded for %s on %s", client_id, request.url.path)
            exc = RateLimitExceededError()
            return JSONResponse(
                error_envelope(exc.message),
                status_code=exc.status_code,
                headers={
                    "Retry-After": str(result.reset_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": reset_at,
                },
            )

        response = await call_next(request)

        # Add rate limit headers
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = reset_at

        return response
