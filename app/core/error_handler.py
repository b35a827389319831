"""
Error handling and sanitization

- QuillBaseError subclasses -> their own HTTP status with {"detail", "code"}
- Unhandled exceptions -> generic 500, full details logged only
- Validation errors -> kept as-is (safe to expose)
"""
import logging
import traceback
from typing import Union

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.exceptions import QuillBaseError

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
    "sqlite",
    "traceback",
    "file \"",
    "line ",
    "/app/",
]


def is_sensitive_error(message: str) -> bool:
    """Check if error message contains sensitive information."""
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """
    Sanitize an error message for safe client exposure.

    Returns the full message in debug mode, a generic message when the text
    looks like it leaks internals, and a truncated message otherwise.
    """
    message = error if isinstance(error, str) else str(error)

    if settings.DEBUG:
        return message

    if is_sensitive_error(message):
        return "An internal error occurred. Please try again later."

    if len(message) > 200:
        return message[:200] + "..."

    return message


async def quill_error_handler(request: Request, exc: QuillBaseError) -> JSONResponse:
    """Render a domain error with the HTTP status it declares."""
    if exc.http_status >= 500:
        logger.error(f"{exc!r} on {request.method} {request.url.path}: {exc.details}")
        message = sanitize_error_message(exc.message)
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        message = exc.message

    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": message, "code": exc.code},
    )


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except HTTPException:
            raise
        except Exception as e:
            error_id = f"{request.client.host if request.client else 'unknown'}-{id(e)}"
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            if settings.DEBUG:
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": "internal_error",
                        "message": str(e),
                        "type": type(e).__name__,
                        "error_id": error_id,
                    }
                )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": "An unexpected error occurred. Please try again later.",
                    "error_id": error_id,
                }
            )
