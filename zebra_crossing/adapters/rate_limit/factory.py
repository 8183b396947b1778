"""Factory for building the configured rate limiter and its store."""

from __future__ import annotations

from zebra_crossing.adapters.rate_limit.base import AbstractRateLimiter, RateLimiterOptions
from zebra_crossing.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from zebra_crossing.adapters.rate_limit.in_memory import InMemoryWindowStore
from zebra_crossing.adapters.rate_limit.redis_script import RedisScriptRateLimiter
from zebra_crossing.adapters.rate_limit.redis_store import RedisWindowStore, build_redis_client
from zebra_crossing.core.config import RateLimitSettings, StoreSettings, settings
from zebra_crossing.core.errors import InvalidConfigurationError


def build_options(rate_limit: RateLimitSettings) -> RateLimiterOptions:
    """Translate settings into validated limiter options."""
    return RateLimiterOptions(
        window_ms=rate_limit.window_ms,
        max_requests=rate_limit.max_requests,
        key_prefix=rate_limit.key_prefix,
        reset_expiry_on_change=rate_limit.reset_expiry_on_change,
    )


def create_rate_limiter(
    rate_limit: RateLimitSettings | None = None,
    store: StoreSettings | None = None,
) -> AbstractRateLimiter:
    """Instantiate the limiter for the configured store backend.

    Called once at application startup; the returned limiter owns the store
    handle and must be closed on shutdown.

    Args:
        rate_limit: Limiter settings; defaults to global settings.
        store: Store settings; defaults to global settings.

    Returns:
        AbstractRateLimiter: Configured limiter instance.

    Raises:
        InvalidConfigurationError: If the options or backend combination
            are invalid.
    """
    rate_limit = rate_limit or settings.rate_limit
    store = store or settings.store
    options = build_options(rate_limit)

    if store.backend == "memory":
        if rate_limit.atomic:
            raise InvalidConfigurationError(
                code="invalid_configuration",
                message="Atomic rate limiting requires the redis store backend",
                details={"field": "atomic", "backend": store.backend},
            )
        return FixedWindowRateLimiter(
            InMemoryWindowStore(max_entries=store.memory_max_entries),
            options,
        )

    if store.backend == "redis":
        client = build_redis_client(
            store.redis_url,
            socket_timeout_seconds=store.socket_timeout_seconds,
        )
        if rate_limit.atomic:
            return RedisScriptRateLimiter(client, options)
        return FixedWindowRateLimiter(RedisWindowStore(client), options)

    raise InvalidConfigurationError(
        code="invalid_configuration",
        message=f"Unknown store backend: '{store.backend}'. Supported backends: memory, redis",
        details={"field": "backend", "backend": store.backend},
    )
