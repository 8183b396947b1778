from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from zebra_crossing.core.auth import verify_admin_key
from zebra_crossing.core.logging import hash_identifier
from zebra_crossing.core.rate_limit import get_rate_limiter
from zebra_crossing.schemas.limits import RateLimitPolicyResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Limits"])


@router.get("/limits", response_model=RateLimitPolicyResponse)
async def get_policy(request: Request) -> RateLimitPolicyResponse:
    """Describe the active rate limit policy.

    The call itself is counted, so the response carries the caller's
    X-RateLimit-* headers.
    """

    options = get_rate_limiter(request).options
    return RateLimitPolicyResponse(
        limit=options.max_requests,
        window_ms=options.window_ms,
        key_prefix=options.key_prefix,
        reset_expiry_on_change=options.reset_expiry_on_change,
    )


@router.delete(
    "/limits/{client_key}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_admin_key)],
)
async def reset_client_window(client_key: str, request: Request) -> None:
    """Clear the current window of one client (admin only).

    Returns None so the caller's X-RateLimit-* headers, set by the route
    dependency, are kept on the 204 response.
    """

    await get_rate_limiter(request).reset(client_key)
    logger.info("rate_limit.window_reset", extra={"key_hash": hash_identifier(client_key)})
