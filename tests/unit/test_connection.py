"""Tests for Redis client construction and error translation."""

from __future__ import annotations

import pytest
import redis.exceptions

from jobmetrics.connection import backend_call, get_redis_client
from jobmetrics.errors import BackendUnavailableError


class TestGetRedisClient:
    def test_decodes_responses(self) -> None:
        client = get_redis_client("redis://cache:6380/2")
        kwargs = client.connection_pool.connection_kwargs
        assert kwargs["decode_responses"] is True
        assert kwargs["host"] == "cache"
        assert kwargs["db"] == 2


class TestBackendCall:
    @pytest.mark.parametrize(
        "error", [redis.exceptions.ConnectionError("refused"), redis.exceptions.TimeoutError("slow")]
    )
    def test_transport_errors_translated(self, error) -> None:
        with pytest.raises(BackendUnavailableError, match="bucket read") as exc_info:
            with backend_call("bucket read"):
                raise error
        assert exc_info.value.__cause__ is error

    def test_other_redis_errors_propagate(self) -> None:
        with pytest.raises(redis.exceptions.ResponseError):
            with backend_call("bucket read"):
                raise redis.exceptions.ResponseError("WRONGTYPE")
