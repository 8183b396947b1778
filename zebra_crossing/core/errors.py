"""Application-level exception types.

This module defines domain errors used across the limiter, stores and HTTP
layer, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what it knows.
    """

    code: str
    message: str
    hint: str
    field: str
    actual_value: Any
    backend: str
    operation: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class InvalidConfigurationError(AppError):
    """Raised at construction time when limiter or store options are invalid."""


class StoreUnavailableError(AppError):
    """Raised when the backing store cannot be reached or times out."""


class MalformedRecordError(AppError):
    """Raised when a stored window record cannot be decoded.

    Never surfaces past a store or limiter: callers treat it as an absent
    record.
    """


@dataclass
class RateLimitExceededError(AppError):
    """Raised by the HTTP layer when a client exhausted its window.

    Attributes:
        headers: X-RateLimit-* and Retry-After headers for the 429 response.
    """

    headers: dict[str, str] = field(default_factory=dict)


class AuthenticationAppError(AppError):
    """Raised when admin authentication fails."""
