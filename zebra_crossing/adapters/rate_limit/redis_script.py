"""Atomic fixed-window limiter using a server-side Redis script.

The whole read-modify-write runs inside one Lua script, so concurrent
requests for the same client are serialized by Redis and ``max_requests``
is enforced exactly. The script is loaded once with SCRIPT LOAD and invoked
with EVALSHA; if the server's script cache was flushed it is reloaded.

Records use the same JSON format as ``RedisWindowStore`` so the two can be
switched without flushing existing windows.
"""

from __future__ import annotations

import logging
from typing import Callable

from redis.asyncio import Redis
from redis.exceptions import NoScriptError

from zebra_crossing.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitDecision,
    RateLimiterOptions,
)
from zebra_crossing.adapters.rate_limit.fixed_window import build_decision, wall_clock_ms
from zebra_crossing.adapters.rate_limit.redis_store import translate_redis_errors

logger = logging.getLogger(__name__)

# KEYS[1] storage key
# ARGV now_ms, window_ms, max_requests, reset_expiry_on_change (0/1)
# Returns {hits, expires_at}; hits > max_requests means rejected (not stored).
FIXED_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local max_requests = tonumber(ARGV[3])
local reset_expiry = ARGV[4] == '1'

local function valid(n)
  return type(n) == 'number' and n >= 0 and math.floor(n) == n
end

local hits = 0
local expires_at = now + window
local new_window = true

-- pcall: a key of another type (WRONGTYPE) counts as absent
local raw = redis.pcall('GET', key)
if type(raw) == 'string' then
  local ok, record = pcall(cjson.decode, raw)
  if ok and type(record) == 'table' and valid(record.hits) and valid(record.expiresAt) then
    if now <= record.expiresAt then
      hits = record.hits
      expires_at = record.expiresAt
      new_window = false
    end
  end
end

hits = hits + 1
if hits > max_requests then
  return {hits, expires_at}
end

local value = string.format('{"hits": %d, "expiresAt": %d}', hits, expires_at)
if new_window or reset_expiry or redis.call('PTTL', key) < 0 then
  redis.call('SET', key, value, 'PX', math.max(1, expires_at - now))
else
  redis.call('SET', key, value, 'KEEPTTL')
end
return {hits, expires_at}
"""


class RedisScriptRateLimiter(AbstractRateLimiter):
    """Fixed-window limiter whose state transition runs atomically in Redis."""

    def __init__(
        self,
        client: Redis,
        options: RateLimiterOptions,
        *,
        clock: Callable[[], int] = wall_clock_ms,
    ) -> None:
        """Initialize the limiter.

        Args:
            client: Shared async Redis client, opened once by the application.
            options: Validated limiter configuration.
            clock: Time source returning UNIX time in milliseconds. The
                application clock is used rather than Redis TIME so every
                limiter implementation sees the same notion of "now".
        """
        self._client = client
        self._options = options
        self._clock = clock
        self._sha: str | None = None

    @property
    def options(self) -> RateLimiterOptions:
        return self._options

    async def _load_script(self) -> str:
        async with translate_redis_errors("script_load"):
            self._sha = await self._client.script_load(FIXED_WINDOW_LUA)
        logger.info("rate_limit.script_loaded", extra={"script_sha": self._sha})
        return self._sha

    async def _run_script(self, key: str, now_ms: int) -> list[int]:
        sha = self._sha or await self._load_script()
        args = (
            now_ms,
            self._options.window_ms,
            self._options.max_requests,
            1 if self._options.reset_expiry_on_change else 0,
        )
        async with translate_redis_errors("evalsha"):
            try:
                return await self._client.evalsha(sha, 1, key, *args)
            except NoScriptError:
                logger.warning("rate_limit.script_missing", extra={"script_sha": sha})
                sha = await self._load_script()
                return await self._client.evalsha(sha, 1, key, *args)

    async def check(self, client_key: str) -> RateLimitDecision:
        """Count one request for ``client_key`` in a single round trip.

        Raises:
            ValueError: If client_key is empty.
            StoreUnavailableError: If Redis cannot be reached.
        """
        if not client_key:
            raise ValueError("client_key must be a non-empty string")

        now = self._clock()
        hits, expires_at = await self._run_script(self._options.storage_key(client_key), now)
        return build_decision(self._options, hits=int(hits), expires_at=int(expires_at), now_ms=now)

    async def reset(self, client_key: str) -> None:
        async with translate_redis_errors("delete"):
            await self._client.delete(self._options.storage_key(client_key))

    async def close(self) -> None:
        await self._client.aclose()
