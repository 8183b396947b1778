"""Redis-backed window store (plain GET/SET).

Shared across workers and processes, but read-modify-write still takes two
round trips; see ``redis_script`` for the atomic variant.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from zebra_crossing.adapters.rate_limit.base import AbstractWindowStore, WindowState
from zebra_crossing.core.errors import MalformedRecordError, StoreUnavailableError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def translate_redis_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise any redis client failure as StoreUnavailableError."""
    try:
        yield
    except RedisError as exc:
        raise StoreUnavailableError(
            code="store_unavailable",
            message="Rate limit store is unavailable",
            details={"backend": "redis", "operation": operation},
        ) from exc


def build_redis_client(url: str, *, socket_timeout_seconds: float | None = None) -> Redis:
    """Create the process-wide async Redis client.

    Args:
        url: Redis connection URL (e.g., ``redis://localhost:6379/0``).
        socket_timeout_seconds: Per-operation socket timeout.

    Returns:
        Redis client with string responses.
    """
    return Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout_seconds,
        socket_connect_timeout=socket_timeout_seconds,
    )


class RedisWindowStore(AbstractWindowStore):
    """Store window records as JSON strings with native key expiry."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @property
    def client(self) -> Redis:
        return self._client

    async def get(self, key: str) -> WindowState | None:
        async with translate_redis_errors("get"):
            try:
                raw = await self._client.get(key)
            except ResponseError as exc:
                # Key holds a hash, list, etc.; the next SET replaces it
                if not str(exc).startswith("WRONGTYPE"):
                    raise
                logger.warning("window_store.malformed_record", extra={"error_message": str(exc)})
                return None
        if raw is None:
            return None
        try:
            return WindowState.from_json(raw)
        except MalformedRecordError as exc:
            logger.warning("window_store.malformed_record", extra={"error_message": exc.message})
            return None

    async def set(
        self,
        key: str,
        state: WindowState,
        ttl_ms: int,
        *,
        keep_ttl: bool = False,
    ) -> None:
        # Redis rejects PX 0
        px = max(1, ttl_ms)
        async with translate_redis_errors("set"):
            if not keep_ttl:
                await self._client.set(key, state.to_json(), px=px)
                return
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(key, state.to_json(), keepttl=True).pttl(key)
                _, remaining_ms = await pipe.execute()
            # KEEPTTL on a key that lapsed after the read leaves it persistent
            if remaining_ms < 0:
                await self._client.pexpire(key, px)

    async def delete(self, key: str) -> None:
        async with translate_redis_errors("delete"):
            await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()
