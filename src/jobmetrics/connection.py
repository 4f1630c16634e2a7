"""
Redis client construction and backend error translation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import redis.exceptions

from .errors import BackendUnavailableError

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)


def get_redis_client(url: str) -> Redis[Any]:
    """Get Redis client, handling TLS ``rediss://`` URLs."""
    import redis as redis_lib

    ssl_params = {}
    if url.startswith("rediss://"):
        import ssl

        ssl_params = {"ssl_cert_reqs": ssl.CERT_NONE}

    return redis_lib.from_url(url, decode_responses=True, **ssl_params)


@contextmanager
def backend_call(operation: str) -> Iterator[None]:
    """Translate transport failures into BackendUnavailableError."""
    try:
        yield
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
        logger.error(f"Redis unavailable during {operation}: {e}")
        raise BackendUnavailableError(f"Redis unavailable during {operation}: {e}") from e
