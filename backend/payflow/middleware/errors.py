"""Centralized error handling.

Anything raised downstream and not handled is normalized to HTTP 500
with the ``{"success": false, "message": ...}`` envelope.  The message
is the exception text outside production and a fixed string in it; the
full error is always logged.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from payflow.exceptions import ErrorReport, PayflowError, error_envelope

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Internal server error"


def unhandled_error_response(request: Request, exc: Exception, show_details: bool) -> JSONResponse:
    report = ErrorReport.from_exception(exc)
    logger.error(
        "Unhandled error on %s %s: %s",
        request.method,
        request.url.path,
        report,
        exc_info=exc,
        extra={"error_report": report.as_dict()},
    )
    message = (str(exc) or report.kind) if show_details else GENERIC_ERROR_MESSAGE
    return JSONResponse(error_envelope(message), status_code=500)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Innermost catch-all so 500s still pass through CORS and security headers."""

    def __init__(self, app: ASGIApp, show_details: bool = False):
        super().__init__(app)
        self._show_details = show_details

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return unhandled_error_response(request, exc, self._show_details)


def register_exception_handlers(app: FastAPI, show_details: bool) -> None:
    """Install JSON envelope handlers for known error types."""

    @app.exception_handler(PayflowError)
    async def payflow_error_handler(request: Request, exc: PayflowError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s", ErrorReport.from_exception(exc), request.method, request.url.path)
        else:
            logger.info("%s on %s %s", exc.kind, request.method, request.url.path)
        return JSONResponse(error_envelope(exc.message), status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            error_envelope(str(exc.detail)),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            error_envelope("Validation failed", errors=errors),
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        return unhandled_error_response(request, exc, show_details)
