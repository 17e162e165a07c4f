"""
Error handling and sanitization

- StorefrontError subclasses → their own status code and a JSON envelope
- HTTPException (404 routes, 405, ...) → same envelope
- Validation errors → 400 INVALID_REQUEST, field errors kept (safe to expose)
- Anything else → logged with traceback, generic 500 returned
"""
import logging
import traceback
import uuid
from typing import Union

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.core.config import settings
from storefront.core.exceptions import InternalError, StorefrontError

logger = logging.getLogger(__name__)

# Patterns that indicate internal/sensitive error information
SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "token",
    "key",
    "credential",
    "sqlalchemy",
    "asyncpg",
    "postgresql",
    "traceback",
    "file \"",
    "line ",
]

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def is_sensitive_error(message: str) -> bool:
    """Check if error message contains sensitive information."""
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """
    Sanitize an error message for safe client exposure.

    In debug mode the full message is returned. Otherwise messages containing
    sensitive patterns are replaced and very long ones truncated.
    """
    message = error if isinstance(error, str) else str(error)

    if settings.DEBUG:
        return message

    if is_sensitive_error(message):
        return "An internal error occurred. Please try again later."

    if len(message) > 200:
        return message[:200] + "..."

    return message


def error_body(code: str, message: str, details: dict = None) -> dict:
    body = {"success": False, "error": code, "message": message}
    if details:
        body["details"] = details
    return body


def _new_error_id() -> str:
    return uuid.uuid4().hex[:12]


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if isinstance(exc, InternalError) or exc.status_code >= 500:
        error_id = _new_error_id()
        logger.error(
            "%s [%s] on %s %s: %s",
            exc.code, error_id, request.method, request.url.path, exc.message,
        )
        message = exc.message if not isinstance(exc, InternalError) else GENERIC_ERROR_MESSAGE
        details = {k: v for k, v in exc.details.items() if not isinstance(v, Exception)}
        details["error_id"] = error_id
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(error_body(exc.code, sanitize_error_message(message), details)),
        )

    logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.code, exc.message, exc.details)),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = {
        400: "INVALID_REQUEST",
        401: "NOT_AUTHENTICATED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        429: "RATE_LIMITED",
    }.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "Endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors"""
    errors = jsonable_encoder(exc.errors())
    logger.info("Validation error on %s %s: %s", request.method, request.url.path, errors)
    return JSONResponse(
        status_code=400,
        content=error_body("INVALID_REQUEST", "Request validation failed", {"errors": errors}),
    )


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Middleware to catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            error_id = _new_error_id()
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            content = error_body("INTERNAL_ERROR", GENERIC_ERROR_MESSAGE, {"error_id": error_id})
            if settings.DEBUG:
                content["message"] = str(e)
                content["details"]["type"] = type(e).__name__
            return JSONResponse(status_code=500, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
