"""Shared pytest fixtures for jobmetrics tests."""

from __future__ import annotations

import fakeredis
import pytest

from jobmetrics.clock import FixedClock
from jobmetrics.config import MetricsConfig
from jobmetrics.keys import KeySpace
from jobmetrics.repository import MetricsRepository

# 2023-11-14 22:14:00 UTC, exactly on a minute boundary
MINUTE_START = 1_700_000_040
CURRENT_MINUTE = MINUTE_START // 60


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    """In-memory Redis with Lua scripting."""
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at second 0 of CURRENT_MINUTE."""
    return FixedClock(MINUTE_START)


@pytest.fixture
def keys() -> KeySpace:
    return KeySpace()


@pytest.fixture
def config() -> MetricsConfig:
    return MetricsConfig(retention_minutes=10)


@pytest.fixture
def repo(redis_client, config, clock) -> MetricsRepository:
    return MetricsRepository(redis_client, config=config, clock=clock)
