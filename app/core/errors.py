"""
Application error taxonomy and FastAPI exception handlers.

Services raise these errors; routes never build HTTP responses for them.
Client-facing messages are safe to echo. Server-side failures are logged
and answered with a generic message.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error carrying an HTTP status and a client-safe message."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "bad_request"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Malformed input the user can correct."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class Unauthorized(AppError):
    """Bad credentials, invalid/expired/revoked token or deactivated account."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized", details: Optional[Any] = None):
        super().__init__(message, details)


class Forbidden(Unauthorized):
    """Authenticated, but the account's role does not allow the action."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class TokenInvalid(Unauthorized):
    """Expired, malformed or badly signed token. Callers must not tell these apart."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class RefreshInvalid(Unauthorized):
    def __init__(self, message: str = "Refresh token invalid or expired"):
        super().__init__(message)


class AccountDeactivated(Unauthorized):
    def __init__(self, message: str = "Account is deactivated."):
        super().__init__(message)


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class SignatureInvalid(AppError):
    """Webhook payload failed signature verification."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_signature"

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class UpstreamError(AppError):
    """Payment gateway or store failed in a way the client cannot fix."""
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_error"


class NotConfigured(AppError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED
    code = "not_configured"


def _field_errors(exc: RequestValidationError) -> list:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        body = {"error": "Upstream service unavailable"} if isinstance(exc, UpstreamError) else exc.to_dict()
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        body = exc.to_dict()
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _field_errors(exc)
    message = details[0]["message"] if details else "Validation error"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message, "details": details},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach JSON error handlers to the FastAPI app."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
