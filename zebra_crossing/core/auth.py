"""Admin API key authentication.

Administrative endpoints (e.g., clearing a client's window) require an
``X-Admin-Key`` header matching one of the comma-separated keys configured
in ``ADMIN_API_KEYS``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header

from zebra_crossing.core.config import settings
from zebra_crossing.core.errors import AuthenticationAppError
from zebra_crossing.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key1"))
        ['key1', 'key2']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_admin_key(provided_key: str | None) -> None:
    """Validate a provided admin key against configured keys.

    Args:
        provided_key: Key from the request header, possibly missing.

    Raises:
        AuthenticationAppError: If no keys are configured or the key does not
            match.
    """
    valid_keys = parse_api_keys(settings.admin.api_keys)

    if not valid_keys:
        logger.error(
            "admin_auth.failed",
            extra={"reason": "admin_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_keys_not_configured",
            message="Admin endpoints are disabled: no admin keys are configured",
            details={"hint": "Set ADMIN_API_KEYS to enable admin endpoints"},
        )

    if not provided_key or provided_key not in valid_keys:
        logger.warning(
            "admin_auth.failed",
            extra={
                "reason": "invalid_admin_key",
                "admin_key_hash": hash_identifier(provided_key) if provided_key else None,
            },
        )
        raise AuthenticationAppError(
            code="invalid_admin_key",
            message="Invalid or missing admin key",
        )


async def verify_admin_key(
    x_admin_key: Annotated[str | None, Header(alias="X-Admin-Key")] = None,
) -> None:
    """FastAPI dependency guarding admin endpoints.

    Usage:
        @router.delete("/limits/{client_key}", dependencies=[Depends(verify_admin_key)])

    Raises:
        AuthenticationAppError: Rendered as 403 by the exception handlers.
    """
    validate_admin_key(x_admin_key)
    logger.info("admin_auth.success", extra={"admin_key_hash": hash_identifier(x_admin_key or "")})
