"""
PayFlow exception hierarchy.

All custom exceptions inherit from PayflowError so callers can catch a
single base type.  Each class carries the HTTP status it maps to and a
short ``kind`` used in logs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class PayflowError(Exception):
    """Base exception for all PayFlow errors."""

    status_code: int = 500
    kind: str = "payflow_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(PayflowError, ValueError):
    """Raised when configuration is invalid or cannot be loaded."""

    kind = "configuration_error"


class OriginNotAllowedError(PayflowError):
    """Raised when a cross-origin request comes from an untrusted origin."""

    status_code = 403
    kind = "cors_violation"
    default_message = "Not allowed by CORS"


class RateLimitExceededError(PayflowError):
    status_code = 429
    kind = "rate_limit_exceeded"
    default_message = "Too many requests, please try again later."


class PayloadTooLargeError(PayflowError):
    status_code = 413
    kind = "payload_too_large"
    default_message = "Request entity too large"


class UnsupportedContentTypeError(PayflowError):
    status_code = 415
    kind = "unsupported_content_type"
    default_message = "Unsupported content type"


class InvalidPayloadError(PayflowError):
    status_code = 400
    kind = "invalid_payload"
    default_message = "Invalid request payload"


class NotFoundError(PayflowError):
    status_code = 404
    kind = "not_found"
    default_message = "Route not found"


class AccountNotFoundError(NotFoundError):
    kind = "account_not_found"
    default_message = "Account not found"


class ConflictError(PayflowError):
    status_code = 409
    kind = "conflict"
    default_message = "Resource already exists"


class AccountExistsError(ConflictError):
    kind = "account_exists"
    default_message = "Account already exists"


class ServiceUnavailableError(PayflowError):
    status_code = 503
    kind = "service_unavailable"
    default_message = "Service unavailable"


class StartupStepError(PayflowError):
    """Raised when a startup step fails or exceeds its time budget."""

    kind = "startup_step_failed"


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, PayflowError):
        return exc.kind
    return type(exc).__name__


@dataclass
class ErrorReport:
    """Structured view of an exception and its cause chain, for logging."""

    kind: str
    message: str
    causes: List[Tuple[str, str]] = field(default_factory=list)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorReport":
        causes: List[Tuple[str, str]] = []
        seen = {id(exc)}
        current = exc.__cause__ or exc.__context__
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            causes.append((error_kind(current), str(current)))
            current = current.__cause__ or current.__context__
        return cls(kind=error_kind(exc), message=str(exc), causes=causes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "causes": [{"kind": k, "message": m} for k, m in self.causes],
        }

    def __str__(self) -> str:
        text = f"{self.kind}: {self.message}"
        for kind, message in self.causes:
            text += f" <- {kind}: {message}"
        return text


def error_envelope(message: str, **extra: Any) -> Dict[str, Any]:
    """JSON body used for every error response."""
    return {"success": False, "message": message, **extra}
