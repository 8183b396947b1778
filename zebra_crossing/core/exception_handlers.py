"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → 429 text/plain with X-RateLimit-* headers
- StoreUnavailableError → 503 (store down and fail-open disabled)
- AuthenticationAppError → 403, InvalidConfigurationError → 500
- Other AppError → 400
- Unexpected Exception → generic 500 (safety net)
- JSON error bodies include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from zebra_crossing.core.errors import (
    AppError,
    AuthenticationAppError,
    InvalidConfigurationError,
    RateLimitExceededError,
    StoreUnavailableError,
)
from zebra_crossing.core.logging import get_request_id

logger = logging.getLogger(__name__)


def status_code_for(exc: AppError) -> int:
    """Map a domain error to its HTTP status code."""
    if isinstance(exc, RateLimitExceededError):
        return 429
    if isinstance(exc, StoreUnavailableError):
        return 503
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, InvalidConfigurationError):
        return 500
    return 400


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> Response:
    """Answer a rejected request with 429 and the rate limit headers.

    Logging already happened in the rate limit dependency.
    """
    return PlainTextResponse(exc.message, status_code=429, headers=exc.headers)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status_code_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs the failure and returns a generic message without implementation
    details.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Handlers are resolved by exception MRO, so the specific 429 handler wins
    over the AppError handler for rate limit rejections.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
