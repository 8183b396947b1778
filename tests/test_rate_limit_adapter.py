"""Unit tests for the fixed-window rate limiter over the in-memory store."""

from unittest.mock import AsyncMock, Mock

import pytest

from zebra_crossing.adapters.rate_limit.base import (
    AbstractWindowStore,
    RateLimiterOptions,
    WindowState,
)
from zebra_crossing.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from zebra_crossing.adapters.rate_limit.in_memory import InMemoryWindowStore, _Entry
from zebra_crossing.core.errors import InvalidConfigurationError, StoreUnavailableError


def _limiter(clock: Mock, *, max_requests: int = 3, window_ms: int = 60_000, **kwargs):
    store = InMemoryWindowStore(clock=clock)
    options = RateLimiterOptions(window_ms=window_ms, max_requests=max_requests, **kwargs)
    return FixedWindowRateLimiter(store, options, clock=clock), store


@pytest.mark.asyncio
async def test_allows_up_to_limit_in_same_window(clock: Mock) -> None:
    limiter, _ = _limiter(clock, max_requests=3)

    remaining = []
    for _ in range(3):
        decision = await limiter.check("k")
        assert decision.admitted is True
        assert decision.limit == 3
        assert decision.retry_after_seconds is None
        remaining.append(decision.remaining)

    assert remaining == [2, 1, 0]


@pytest.mark.asyncio
async def test_blocks_when_over_limit(clock: Mock) -> None:
    limiter, _ = _limiter(clock, max_requests=2)

    assert (await limiter.check("k")).admitted is True
    assert (await limiter.check("k")).admitted is True

    blocked = await limiter.check("k")
    assert blocked.admitted is False
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds == 60


@pytest.mark.asyncio
async def test_two_per_minute_scenario(clock: Mock) -> None:
    limiter, _ = _limiter(clock, max_requests=2, window_ms=60_000)

    clock.return_value = 0
    first = await limiter.check("client")
    assert (first.admitted, first.remaining, first.reset_at) == (True, 1, 60_000)

    clock.return_value = 10
    second = await limiter.check("client")
    assert (second.admitted, second.remaining, second.reset_at) == (True, 0, 60_000)

    clock.return_value = 20
    third = await limiter.check("client")
    assert (third.admitted, third.remaining, third.reset_at) == (False, 0, 60_000)

    clock.return_value = 61_000
    fourth = await limiter.check("client")
    assert (fourth.admitted, fourth.remaining, fourth.reset_at) == (True, 1, 121_000)


@pytest.mark.asyncio
async def test_window_boundary_is_inclusive(clock: Mock) -> None:
    limiter, _ = _limiter(clock, max_requests=1, window_ms=1_000)

    assert (await limiter.check("k")).admitted is True

    clock.return_value = 1_000
    still_blocked = await limiter.check("k")
    assert still_blocked.admitted is False
    assert still_blocked.reset_at == 1_000

    clock.return_value = 1_001
    fresh = await limiter.check("k")
    assert fresh.admitted is True
    assert fresh.remaining == 0
    assert fresh.reset_at == 2_001


@pytest.mark.asyncio
async def test_reset_at_stable_within_window(clock: Mock) -> None:
    limiter, _ = _limiter(clock, max_requests=5, window_ms=10_000)

    resets = set()
    for t in (100, 2_000, 9_999, 10_100):
        clock.return_value = t
        resets.add((await limiter.check("k")).reset_at)

    assert resets == {10_100}


@pytest.mark.asyncio
async def test_isolated_by_key(clock: Mock) -> None:
    limiter, _ = _limiter(clock, max_requests=1)

    assert (await limiter.check("k1")).admitted is True
    assert (await limiter.check("k1")).admitted is False

    other = await limiter.check("k2")
    assert other.admitted is True
    assert other.remaining == 0


@pytest.mark.asyncio
async def test_rejected_requests_are_not_persisted(clock: Mock) -> None:
    limiter, store = _limiter(clock, max_requests=2)

    for _ in range(5):
        await limiter.check("k")

    state = await store.get("rate-limit:k")
    assert state == WindowState(hits=2, expires_at=60_000)


@pytest.mark.asyncio
async def test_replay_is_deterministic(clock: Mock) -> None:
    timeline = [0, 5, 10, 15, 70_000, 70_001]

    async def run() -> list:
        limiter, _ = _limiter(clock, max_requests=2)
        decisions = []
        for t in timeline:
            clock.return_value = t
            decisions.append(await limiter.check("k"))
        return decisions

    assert await run() == await run()


@pytest.mark.asyncio
async def test_malformed_record_is_treated_as_absent(clock: Mock) -> None:
    limiter, store = _limiter(clock, max_requests=2)
    store._entries["rate-limit:k"] = _Entry(raw='{"hits": "lots"}', deadline_ms=60_000)

    decision = await limiter.check("k")

    assert decision.admitted is True
    assert decision.remaining == 1
    assert decision.reset_at == 60_000


@pytest.mark.asyncio
async def test_reset_clears_client_window(clock: Mock) -> None:
    limiter, _ = _limiter(clock, max_requests=1)

    assert (await limiter.check("k")).admitted is True
    assert (await limiter.check("k")).admitted is False

    await limiter.reset("k")
    assert (await limiter.check("k")).admitted is True


@pytest.mark.asyncio
async def test_uses_key_prefix() -> None:
    store = AsyncMock(spec=AbstractWindowStore)
    store.get.return_value = None
    limiter = FixedWindowRateLimiter(
        store,
        RateLimiterOptions(window_ms=1_000, max_requests=1, key_prefix="rl:"),
        clock=Mock(return_value=0),
    )

    await limiter.check("1.2.3.4")

    store.get.assert_awaited_once_with("rl:1.2.3.4")
    store.set.assert_awaited_once_with(
        "rl:1.2.3.4", WindowState(hits=1, expires_at=1_000), 1_000, keep_ttl=False
    )


@pytest.mark.asyncio
async def test_continuing_window_keeps_ttl_with_fallback() -> None:
    store = AsyncMock(spec=AbstractWindowStore)
    store.get.return_value = WindowState(hits=1, expires_at=1_000)
    limiter = FixedWindowRateLimiter(
        store,
        RateLimiterOptions(window_ms=1_000, max_requests=5),
        clock=Mock(return_value=400),
    )

    await limiter.check("k")

    store.set.assert_awaited_once_with(
        "rate-limit:k", WindowState(hits=2, expires_at=1_000), 600, keep_ttl=True
    )


@pytest.mark.asyncio
async def test_record_lapsing_between_read_and_write_still_expires() -> None:
    # store reads: first check get/set, then get at the window end, set 1 ms later
    store = InMemoryWindowStore(clock=Mock(side_effect=[0, 0, 1_000, 1_001, 1_002]))
    limiter = FixedWindowRateLimiter(
        store,
        RateLimiterOptions(window_ms=1_000, max_requests=5),
        clock=Mock(side_effect=[0, 1_000]),
    )

    await limiter.check("k")
    second = await limiter.check("k")

    assert second.admitted is True
    assert second.reset_at == 1_000
    assert store._entries["rate-limit:k"].deadline_ms == 1_001
    assert await store.get("rate-limit:k") is None


@pytest.mark.asyncio
async def test_reset_expiry_on_change_refreshes_ttl() -> None:
    store = AsyncMock(spec=AbstractWindowStore)
    store.get.return_value = WindowState(hits=1, expires_at=1_000)
    limiter = FixedWindowRateLimiter(
        store,
        RateLimiterOptions(window_ms=1_000, max_requests=5, reset_expiry_on_change=True),
        clock=Mock(return_value=400),
    )

    await limiter.check("k")

    store.set.assert_awaited_once_with(
        "rate-limit:k", WindowState(hits=2, expires_at=1_000), 600, keep_ttl=False
    )


@pytest.mark.asyncio
async def test_store_errors_propagate() -> None:
    store = AsyncMock(spec=AbstractWindowStore)
    store.get.side_effect = StoreUnavailableError(code="store_unavailable", message="down")
    limiter = FixedWindowRateLimiter(
        store,
        RateLimiterOptions(window_ms=1_000, max_requests=1),
        clock=Mock(return_value=0),
    )

    with pytest.raises(StoreUnavailableError):
        await limiter.check("k")

    store.set.assert_not_awaited()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_requests": 0, "window_ms": 60_000},
        {"max_requests": 1, "window_ms": 0},
        {"max_requests": -5, "window_ms": 60_000},
        {"max_requests": 1, "window_ms": 1.5},
    ],
)
def test_invalid_options(kwargs: dict) -> None:
    with pytest.raises(InvalidConfigurationError) as exc_info:
        RateLimiterOptions(**kwargs)

    assert exc_info.value.code == "invalid_configuration"


@pytest.mark.asyncio
async def test_empty_client_key_rejected(clock: Mock) -> None:
    limiter, _ = _limiter(clock)

    with pytest.raises(ValueError):
        await limiter.check("")
