"""
Non-blocking maintenance locks.

Maintenance routines receive a ``MaintenanceLock`` explicitly; ``RedisLock``
is the Redis implementation (``SET key 1 NX EX ttl``).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from .connection import backend_call
from .keys import KeySpace

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)

WAIT_TIME_MONITOR_LOCK = "monitor:time-to-clear"
SNAPSHOT_ROLL_LOCK = "metrics:snapshot"


class MaintenanceLock(Protocol):
    """Acquire a named lock without blocking."""

    def try_acquire(self, name: str) -> bool: ...


class RedisLock:
    """Expiring Redis lock; the holder simply lets it lapse after ``ttl_seconds``."""

    def __init__(self, redis: Redis[Any], ttl_seconds: int = 300, keys: KeySpace | None = None):
        self._redis = redis
        self._ttl = ttl_seconds
        self._keys = keys or KeySpace()

    def try_acquire(self, name: str) -> bool:
        """Returns ``True`` if the lock was acquired."""
        with backend_call("lock acquire"):
            acquired = bool(self._redis.set(self._keys.lock(name), "1", nx=True, ex=self._ttl))
        if not acquired:
            logger.debug(f"Lock already held: {name}")
        return acquired
