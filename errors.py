"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors raised by services and routers.
Every error, including FastAPI's own HTTPException and request validation
failures, is rendered as ``{"success": false, "message": ...}``.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils.logger_factory import new_logger


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message}


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class InvalidOrExpiredCode(AppError):
    """No live record, or the submitted code does not match it.

    Both cases share one status and message so callers cannot tell which
    emails have pending codes.
    """

    status_code = 400
    default_message = "Invalid or expired OTP"


class PasswordTooWeak(ValidationError):
    default_message = "Password must be at least 6 characters"


class PasswordMismatch(ValidationError):
    default_message = "Passwords do not match"


class NoVerifiedRequest(AppError):
    status_code = 400
    default_message = "No verified reset request found"


class InvalidCredentials(AppError):
    status_code = 401
    default_message = "Invalid email or password"


class AccountNotFound(AppError):
    status_code = 404
    default_message = "Account not found"


class ProfileNotFound(AppError):
    status_code = 404
    default_message = "Profile not found"


class StorageError(AppError):
    status_code = 500
    default_message = "Database error. Please try again later."


class EmailDeliveryFailed(AppError):
    status_code = 500
    default_message = "Failed to send email. Please try again later."


FIELD_LABELS = {
    "email": "Email",
    "otp": "OTP",
    "reset_code": "Reset code",
    "password": "Password",
    "newPassword": "New password",
    "new_password": "New password",
    "confirm_password": "Confirm password",
}


def describe_validation_error(exc: RequestValidationError) -> str:
    """Turn the first request-schema error into a short human message."""
    errors = exc.errors()
    if not errors:
        return ValidationError.default_message
    first = errors[0]
    loc = [part for part in first.get("loc", ()) if part not in ("body", "query", "path", "form")]
    field = str(loc[-1]) if loc else None
    if first.get("type") == "missing":
        if field is None:
            return "Request body is required"
        label = FIELD_LABELS.get(field, field.replace("_", " ").capitalize())
        return f"{label} is required"
    msg = first.get("msg", ValidationError.default_message)
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return msg


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""
    log = new_logger("error_handler")

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        message = describe_validation_error(exc)
        log.info(f"Rejected {request.method} {request.url.path}: {message}")
        return JSONResponse(status_code=400, content={"success": False, "message": message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        log.error(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Server error"},
        )
