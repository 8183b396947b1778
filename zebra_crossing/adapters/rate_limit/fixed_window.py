"""Fixed-window rate limiter over a get/set window store.

Notes:
- Read-modify-write is two store round trips and is not atomic. Concurrent
  bursts from one client can overshoot ``max_requests`` by the number of
  requests in flight at once. Use the scripted Redis limiter when that
  matters.
- Rejected requests still count toward the decision but are never written
  back, so a flood of rejected traffic cannot grow the stored counter.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from zebra_crossing.adapters.rate_limit.base import (
    AbstractRateLimiter,
    AbstractWindowStore,
    RateLimitDecision,
    RateLimiterOptions,
    WindowState,
)

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    """Current UNIX time in whole milliseconds."""
    return int(time.time() * 1000)


def build_decision(
    options: RateLimiterOptions,
    *,
    hits: int,
    expires_at: int,
    now_ms: int,
) -> RateLimitDecision:
    """Turn a post-increment hit count into a decision.

    Shared by every limiter implementation so headers and retry hints are
    computed identically regardless of the store.
    """
    admitted = hits <= options.max_requests
    retry_after = None
    if not admitted:
        retry_after = max(0, math.ceil((expires_at - now_ms) / 1000))
    return RateLimitDecision(
        admitted=admitted,
        limit=options.max_requests,
        remaining=max(0, options.max_requests - hits),
        reset_at=expires_at,
        retry_after_seconds=retry_after,
    )


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Count requests per client in fixed windows of ``window_ms``.

    The limiter holds no per-client state of its own; everything lives in
    the injected store, which is shared across all concurrent calls.
    """

    def __init__(
        self,
        store: AbstractWindowStore,
        options: RateLimiterOptions,
        *,
        clock: Callable[[], int] = wall_clock_ms,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Window store, opened once by the application.
            options: Validated limiter configuration.
            clock: Time source returning UNIX time in milliseconds.
        """
        self._store = store
        self._options = options
        self._clock = clock

    @property
    def options(self) -> RateLimiterOptions:
        return self._options

    def _keep_ttl(self, *, new_window: bool) -> bool:
        return not (new_window or self._options.reset_expiry_on_change)

    async def check(self, client_key: str) -> RateLimitDecision:
        """Count one request for ``client_key`` and decide admission.

        Args:
            client_key: Resolved caller identity.

        Returns:
            RateLimitDecision with limit, remaining and reset metadata.

        Raises:
            ValueError: If client_key is empty.
            StoreUnavailableError: If the store read or write fails.
        """
        if not client_key:
            raise ValueError("client_key must be a non-empty string")

        key = self._options.storage_key(client_key)
        state = await self._store.get(key)
        now = self._clock()

        new_window = state is None or state.is_expired(now)
        if new_window:
            hits, expires_at = 0, now + self._options.window_ms
        else:
            hits, expires_at = state.hits, state.expires_at

        hits += 1
        decision = build_decision(self._options, hits=hits, expires_at=expires_at, now_ms=now)

        if not decision.admitted:
            logger.debug("rate_limit.window_full", extra={"hits": hits, "reset_at": expires_at})
            return decision

        # Equals window_ms for a new window; the fallback expiry otherwise
        await self._store.set(
            key,
            WindowState(hits=hits, expires_at=expires_at),
            max(0, expires_at - now),
            keep_ttl=self._keep_ttl(new_window=new_window),
        )
        return decision

    async def reset(self, client_key: str) -> None:
        await self._store.delete(self._options.storage_key(client_key))

    async def close(self) -> None:
        await self._store.close()
