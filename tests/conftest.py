"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so settings never load a local .env file, and provides a
limiter wired to a controllable millisecond clock.
"""

import os
from unittest.mock import Mock

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_FAIL_OPEN", "true")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from fastapi.testclient import TestClient

from zebra_crossing.adapters.rate_limit.base import RateLimiterOptions
from zebra_crossing.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from zebra_crossing.adapters.rate_limit.in_memory import InMemoryWindowStore
from zebra_crossing.core.app_factory import create_app


@pytest.fixture
def clock() -> Mock:
    """Millisecond clock starting at the epoch; set ``return_value`` to move it."""
    return Mock(return_value=0)


@pytest.fixture
def memory_store(clock: Mock) -> InMemoryWindowStore:
    return InMemoryWindowStore(clock=clock)


@pytest.fixture
def limiter(memory_store: InMemoryWindowStore, clock: Mock) -> FixedWindowRateLimiter:
    """60 s window admitting 2 requests per client."""
    return FixedWindowRateLimiter(
        memory_store,
        RateLimiterOptions(window_ms=60_000, max_requests=2),
        clock=clock,
    )


@pytest.fixture
def client(limiter: FixedWindowRateLimiter):
    app = create_app(rate_limiter=limiter, configure_logs=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_redis() -> FakeAsyncRedis:
    """Isolated in-process Redis server with Lua scripting."""
    return FakeAsyncRedis(server=FakeServer(), decode_responses=True)
