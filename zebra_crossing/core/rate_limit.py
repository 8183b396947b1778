"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiter adapter into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only; the limiter
  never sees the request, only the resolved client key.
- Swap-friendly: the limiter (and its store) is created once at startup and
  read from ``app.state``.
- Caller policy lives here: client key resolution, response headers, and the
  fail-open/fail-closed choice when the store is unavailable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from fastapi import Request, Response

from zebra_crossing.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from zebra_crossing.core.config import settings
from zebra_crossing.core.errors import RateLimitExceededError, StoreUnavailableError
from zebra_crossing.core.logging import hash_identifier

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT_KEY = "unknown"

ClientKeyResolver = Callable[[Request], str]


def resolve_client_key(request: Request) -> str:
    """Resolve the caller identity used to partition rate limit counters.

    Prefers ``X-Real-IP``, then the first hop of ``X-Forwarded-For``, then
    the socket peer. Falls back to a fixed sentinel so the limiter always
    receives a non-empty key.

    Args:
        request: Incoming request.

    Returns:
        str: Client key.
    """

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_KEY


def format_reset(reset_at_ms: int) -> str:
    """Render epoch milliseconds as ISO-8601 UTC, e.g. ``2024-01-01T00:01:00.000Z``."""

    instant = datetime.fromtimestamp(reset_at_ms // 1000, tz=timezone.utc)
    instant += timedelta(milliseconds=reset_at_ms % 1000)
    return instant.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    """Build the X-RateLimit-* headers (and Retry-After when rejected)."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": format_reset(decision.reset_at),
    }
    if decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the process-wide limiter created at application startup."""

    return request.app.state.rate_limiter


async def enforce_rate_limit(request: Request, response: Response) -> None:
    """FastAPI dependency enforcing the fixed-window limit.

    Counts one request for the resolved client. Admitted requests get the
    X-RateLimit-* headers on their response; rejected ones short-circuit
    before the route handler runs.

    Args:
        request: FastAPI request.
        response: Response whose headers are merged into the final response.

    Raises:
        RateLimitExceededError: When the client exhausted its window (429).
        StoreUnavailableError: When the store fails and fail_open is off (503).
    """

    if not settings.rate_limit.enabled:
        return

    limiter = get_rate_limiter(request)
    resolver: ClientKeyResolver = getattr(
        request.app.state, "client_key_resolver", resolve_client_key
    )
    client_key = resolver(request) or UNKNOWN_CLIENT_KEY
    key_hash = hash_identifier(client_key)

    try:
        decision = await limiter.check(client_key)
    except StoreUnavailableError as exc:
        logger.warning(
            "rate_limit.store_unavailable",
            extra={
                "key_hash": key_hash,
                "fail_open": settings.rate_limit.fail_open,
                "error_code": exc.code,
            },
        )
        if settings.rate_limit.fail_open:
            return
        raise

    headers = build_rate_limit_headers(decision)

    if decision.admitted:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "reset_at": decision.reset_at,
            },
        )
        response.headers.update(headers)
        return

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "retry_after_s": decision.retry_after_seconds,
        },
    )
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message="Too Many Requests",
        headers=headers,
    )
