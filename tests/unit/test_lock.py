"""Tests for RedisLock."""

from __future__ import annotations

from jobmetrics.keys import KeySpace
from jobmetrics.lock import RedisLock


class TestRedisLock:
    def test_acquire_once(self, redis_client) -> None:
        lock = RedisLock(redis_client, ttl_seconds=60)
        assert lock.try_acquire("monitor:time-to-clear") is True
        assert lock.try_acquire("monitor:time-to-clear") is False

    def test_lock_expires(self, redis_client) -> None:
        RedisLock(redis_client, ttl_seconds=60).try_acquire("job")
        assert 0 < redis_client.ttl("lock:job") <= 60

    def test_locks_are_independent(self, redis_client) -> None:
        lock = RedisLock(redis_client)
        assert lock.try_acquire("a") is True
        assert lock.try_acquire("b") is True

    def test_prefixed_key(self, redis_client) -> None:
        RedisLock(redis_client, keys=KeySpace("app:")).try_acquire("a")
        assert redis_client.exists("app:lock:a") == 1
