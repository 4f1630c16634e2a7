"""
Registry of entities that have produced at least one measurement.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .connection import backend_call
from .keys import EntityKind, KeySpace

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)


class MeasuredEntityRegistry:
    """
    Tracks measured job and queue names in two Redis sets.

    Sets only grow; SADD is idempotent so concurrent writers need no locking.
    """

    def __init__(self, redis: Redis[Any], keys: KeySpace | None = None):
        self._redis = redis
        self._keys = keys or KeySpace()

    def names(self, kind: EntityKind) -> set[str]:
        """Return the names measured for ``kind`` without their member prefix."""
        with backend_call("registry read"):
            members = self._redis.smembers(self._keys.registry(kind))
        return {KeySpace.strip_registry_member(kind, member) for member in members}

    def list_jobs(self) -> set[str]:
        return self.names(EntityKind.JOB)

    def list_queues(self) -> set[str]:
        return self.names(EntityKind.QUEUE)

    def ensure_registered(self, kind: EntityKind, name: str) -> None:
        with backend_call("registry write"):
            added = self._redis.sadd(
                self._keys.registry(kind), KeySpace.registry_member(kind, name)
            )
        if added:
            logger.debug(f"Registered measured {kind.label}: {name}")
