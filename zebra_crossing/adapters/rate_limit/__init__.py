"""Rate limiting adapters.

Fixed-window limiters over interchangeable window stores: in-memory for a
single process, Redis GET/SET for shared best-effort limiting, and a Redis
script for atomic limiting.
"""

from zebra_crossing.adapters.rate_limit.base import (
    AbstractRateLimiter,
    AbstractWindowStore,
    RateLimitDecision,
    RateLimiterOptions,
    WindowState,
)
from zebra_crossing.adapters.rate_limit.factory import create_rate_limiter
from zebra_crossing.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from zebra_crossing.adapters.rate_limit.in_memory import InMemoryWindowStore
from zebra_crossing.adapters.rate_limit.redis_script import RedisScriptRateLimiter
from zebra_crossing.adapters.rate_limit.redis_store import RedisWindowStore

__all__ = [
    "AbstractRateLimiter",
    "AbstractWindowStore",
    "FixedWindowRateLimiter",
    "InMemoryWindowStore",
    "RateLimitDecision",
    "RateLimiterOptions",
    "RedisScriptRateLimiter",
    "RedisWindowStore",
    "WindowState",
    "create_rate_limiter",
]
