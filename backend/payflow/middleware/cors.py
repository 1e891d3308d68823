"""Origin policy gate.

Decides per request whether the declared Origin may receive a
cross-origin response.  Requests from untrusted origins are rejected
outright with 403 before any CORS header is produced.  Allowed requests
continue to Starlette's CORSMiddleware, which answers preflights and
adds the credentialed CORS headers; OPTIONS requests that are not CORS
preflights are answered here with 204, so no OPTIONS request reaches
rate limiting or route handlers.
"""

import logging
import re
from typing import Iterable, Optional

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from payflow.exceptions import OriginNotAllowedError, error_envelope

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "Authorization", "X-Requested-With")
PREFLIGHT_MAX_AGE = 600


class OriginPolicy:
    """Allow-list of exact origins plus one full-match pattern."""

    def __init__(self, allowed_origins: Iterable[str], preview_pattern: Optional[str] = None):
        self._allowed = {o.rstrip("/") for o in allowed_origins if o}
        self._pattern = re.compile(preview_pattern) if preview_pattern else None

    @property
    def allowed_origins(self) -> frozenset[str]:
        return frozenset(self._allowed)

    @property
    def preview_pattern(self) -> Optional[str]:
        return self._pattern.pattern if self._pattern else None

    def is_allowed(self, origin: Optional[str]) -> bool:
        # No Origin header: same-origin or server-to-server call
        if not origin:
            return True
        if origin in self._allowed:
            return True
        return bool(self._pattern and self._pattern.fullmatch(origin))

    def check(self, origin: Optional[str]) -> None:
        if not self.is_allowed(origin):
            raise OriginNotAllowedError()

    def middleware_options(self) -> dict:
        """Keyword arguments for Starlette's CORSMiddleware."""
        return {
            "allow_origins": sorted(self._allowed),
            "allow_origin_regex": self.preview_pattern,
            "allow_credentials": True,
            "allow_methods": list(ALLOWED_METHODS),
            "allow_headers": list(ALLOWED_HEADERS),
            "max_age": PREFLIGHT_MAX_AGE,
        }


def is_preflight(request: Request) -> bool:
    return (
        request.method == "OPTIONS"
        and "origin" in request.headers
        and "access-control-request-method" in request.headers
    )


class CORSPolicyMiddleware(BaseHTTPMiddleware):
    """Reject untrusted origins. Runs first (add last), in front of CORSMiddleware."""

    def __init__(self, app: ASGIApp, policy: OriginPolicy):
        super().__init__(app)
        self._policy = policy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        origin = (request.headers.get("origin") or "").strip() or None

        try:
            self._policy.check(origin)
        except OriginNotAllowedError as exc:
            logger.warning(
                "CORS rejected origin=%s method=%s path=%s", origin, request.method, request.url.path
            )
            return JSONResponse(error_envelope(exc.message), status_code=exc.status_code)

        # Preflights are answered by CORSMiddleware; any other OPTIONS stops here
        if request.method == "OPTIONS" and not is_preflight(request):
            return Response(status_code=204)

        return await call_next(request)
