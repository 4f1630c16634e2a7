"""
Live per-minute rates derived from the current and previous minute buckets.

The lookback window is the whole previous minute plus the elapsed part of
the current one, so rates update continuously instead of jumping at each
minute boundary.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, NamedTuple

from .clock import Clock
from .connection import backend_call
from .keys import (
    DURATION_UNITS_PER_MS,
    RUNTIME_TAG,
    THROUGHPUT_TAG,
    EntityKind,
    KeySpace,
    parse_field,
    runtime_field,
    throughput_field,
)

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)

METRIC_TAGS = {
    "throughput": THROUGHPUT_TAG,
    "runtime": RUNTIME_TAG,
    THROUGHPUT_TAG: THROUGHPUT_TAG,
    RUNTIME_TAG: RUNTIME_TAG,
}


def round_half_up(value: float) -> int:
    """Round a non-negative value, sending .5 up."""
    return math.floor(value + 0.5)


class Rate(NamedTuple):
    """Smoothed throughput and average runtime."""

    throughput_per_minute: int
    avg_runtime_ms: int


def _to_int(field: str, value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Skipping malformed metric field {field}={value!r}")
        return None


class RateCalculator:
    """Reads minute buckets and turns them into per-minute rates."""

    def __init__(
        self,
        redis: Redis[Any],
        clock: Clock | None = None,
        keys: KeySpace | None = None,
    ):
        self._redis = redis
        self._clock = clock or Clock()
        self._keys = keys or KeySpace()

    def _read_bucket(self, key: str, name: str | None) -> Iterable[tuple[str, Any]]:
        if name is None:
            with backend_call("bucket read"):
                return self._redis.hgetall(key).items()
        fields = [throughput_field(name), runtime_field(name)]
        with backend_call("bucket read"):
            values = self._redis.hmget(key, fields)
        return [(field, value) for field, value in zip(fields, values) if value is not None]

    def rate_per_minute(self, kind: EntityKind, name: str | None = None) -> Rate:
        """
        Throughput per minute and average runtime for one entity, or for
        every entity of ``kind`` when ``name`` is None.
        """
        minute = self._clock.current_minute()
        window = 60 + self._clock.seconds_into_minute()

        count = 0
        duration = 0
        for bucket_minute in (minute, minute - 1):
            key = self._keys.bucket(kind, bucket_minute)
            for field, raw in self._read_bucket(key, name):
                parsed = parse_field(field)
                if parsed is None:
                    logger.warning(f"Skipping malformed metric field {field!r} in {key}")
                    continue
                value = _to_int(field, raw)
                if value is None:
                    continue
                if parsed[0] == THROUGHPUT_TAG:
                    count += value
                else:
                    duration += value

        throughput = round_half_up(count / window * 60)
        runtime = round_half_up(duration / count / DURATION_UNITS_PER_MS) if count else 0
        return Rate(throughput, runtime)

    def entity_with_maximum(self, kind: EntityKind, metric: str) -> str | None:
        """
        Entity with the highest raw ``metric`` value in the last completed minute.

        Ties go to whichever entity Redis enumerates last; the order is not
        guaranteed to be stable.
        """
        try:
            tag = METRIC_TAGS[metric]
        except KeyError:
            raise ValueError(f"Unknown metric: {metric!r}") from None

        key = self._keys.bucket(kind, self._clock.current_minute() - 1)
        with backend_call("bucket read"):
            items = self._redis.hgetall(key)

        best_name: str | None = None
        best_value = 0
        for field, raw in items.items():
            parsed = parse_field(field)
            if parsed is None or parsed[0] != tag:
                continue
            value = _to_int(field, raw)
            if value is None:
                continue
            if best_name is None or value >= best_value:
                best_name, best_value = parsed[1], value
        return best_name
