"""
Atomic per-minute counters.

Each increment bumps the completion count and summed duration of the
current minute bucket and refreshes its expiry in one Lua script, so a
reader never sees a count without its matching duration.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import TYPE_CHECKING, Any

from .clock import Clock
from .connection import backend_call
from .errors import InvalidMeasurementError
from .keys import EntityKind, KeySpace, runtime_field, throughput_field
from .registry import MeasuredEntityRegistry

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)

# KEYS[1] bucket, ARGV: count field, duration field, duration units, ttl seconds
INCREMENT_SCRIPT = """
redis.call('HINCRBY', KEYS[1], ARGV[1], 1)
redis.call('HINCRBY', KEYS[1], ARGV[2], ARGV[3])
redis.call('EXPIRE', KEYS[1], ARGV[4])
return 1
"""


class MetricCounter:
    """Increments (count, total duration) pairs in minute buckets."""

    def __init__(
        self,
        redis: Redis[Any],
        registry: MeasuredEntityRegistry,
        clock: Clock | None = None,
        keys: KeySpace | None = None,
        bucket_ttl_seconds: int = 86400,
    ):
        self._redis = redis
        self._registry = registry
        self._clock = clock or Clock()
        self._keys = keys or KeySpace()
        self._bucket_ttl = bucket_ttl_seconds
        self._script = redis.register_script(INCREMENT_SCRIPT)
        # Entities already registered by this process
        self._seen: set[tuple[EntityKind, str]] = set()
        self._seen_lock = threading.Lock()

    def increment(self, kind: EntityKind, name: str, duration_units: int) -> None:
        """
        Record one completion of ``name`` taking ``duration_units`` microseconds.

        Raises:
            InvalidMeasurementError: empty name or negative/missing duration
            BackendUnavailableError: Redis could not be reached
        """
        if not name:
            raise InvalidMeasurementError("Entity name must not be empty")
        if duration_units is None or isinstance(duration_units, bool):
            raise InvalidMeasurementError(f"Missing duration for {kind.label} {name!r}")
        if not isinstance(duration_units, int):
            if isinstance(duration_units, float) and math.isfinite(duration_units):
                duration_units = round(duration_units)
            else:
                raise InvalidMeasurementError(
                    f"Invalid duration for {kind.label} {name!r}: {duration_units!r}"
                )
        if duration_units < 0:
            raise InvalidMeasurementError(
                f"Negative duration for {kind.label} {name!r}: {duration_units}"
            )

        self._register_once(kind, name)

        bucket = self._keys.bucket(kind, self._clock.current_minute())
        with backend_call("metric increment"):
            self._script(
                keys=[bucket],
                args=[throughput_field(name), runtime_field(name), duration_units, self._bucket_ttl],
            )

    def _register_once(self, kind: EntityKind, name: str) -> None:
        entry = (kind, name)
        with self._seen_lock:
            if entry in self._seen:
                return
        self._registry.ensure_registered(kind, name)
        with self._seen_lock:
            self._seen.add(entry)

    def reset_registrations(self) -> None:
        """Forget which entities were registered, so the next increment re-registers."""
        with self._seen_lock:
            self._seen.clear()
