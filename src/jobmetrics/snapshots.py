"""
Rolls elapsed minute buckets into long-lived per-entity snapshot series.

Every fully elapsed minute after the ``last_snapshot`` watermark becomes
one point per entity in ``snapshot:{kind}:{name}`` (a sorted set scored by
the end-of-minute timestamp). Points for a minute are written in one
MULTI/EXEC pipeline that first clears the score, so re-rolling a minute
overwrites rather than duplicates.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from .clock import Clock
from .connection import backend_call
from .keys import (
    DURATION_UNITS_PER_MS,
    THROUGHPUT_TAG,
    EntityKind,
    KeySpace,
    parse_field,
)

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)

# KEYS[1] watermark, ARGV[1] candidate minute. Only ever moves forward.
ADVANCE_WATERMARK_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]))
if current == nil or current < tonumber(ARGV[1]) then
    redis.call('SET', KEYS[1], ARGV[1])
    return 1
end
return 0
"""


class SnapshotPoint(BaseModel):
    """One compacted minute of history for an entity."""

    kind: str
    name: str
    time: int
    throughput: int
    runtime: float

    def to_member(self) -> str:
        """Sorted-set member encoding."""
        return json.dumps(
            {"throughput": self.throughput, "runtime": self.runtime, "time": self.time}
        )


class _StoredPoint(BaseModel):
    throughput: int
    runtime: float
    time: int


class SnapshotRoller:
    """Converts elapsed minute buckets into snapshot points."""

    def __init__(
        self,
        redis: Redis[Any],
        clock: Clock | None = None,
        keys: KeySpace | None = None,
        retention_minutes: int = 1440,
    ):
        self._redis = redis
        self._clock = clock or Clock()
        self._keys = keys or KeySpace()
        self._retention_minutes = retention_minutes
        self._advance = redis.register_script(ADVANCE_WATERMARK_SCRIPT)

    def watermark(self) -> int | None:
        """Last minute index already rolled, or None if never rolled."""
        with backend_call("watermark read"):
            raw = self._redis.get(self._keys.watermark())
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed snapshot watermark {raw!r}")
            return None

    def roll(self) -> int:
        """
        Roll every fully elapsed minute after the watermark.

        Returns:
            Number of minutes rolled (0 when already up to date)
        """

        now = self._clock.current_minute()
        last = self.watermark()
        horizon = now - self._retention_minutes
        # Buckets older than the retention horizon have already expired
        last = horizon if last is None else max(last, horizon)

        rolled = 0
        for minute in range(last + 1, now):
            for kind in (EntityKind.QUEUE, EntityKind.JOB):
                self._store_minute(kind, minute)
            rolled += 1

        with backend_call("watermark write"):
            self._advance(keys=[self._keys.watermark()], args=[now - 1])

        if rolled:
            logger.info(f"Rolled {rolled} minute(s) into snapshots (through minute {now - 1})")
        return rolled

    def points_for_minute(self, kind: EntityKind, minute: int) -> list[SnapshotPoint]:
        """Derive snapshot points from one raw minute bucket."""
        key = self._keys.bucket(kind, minute)
        with backend_call("bucket read"):
            items = self._redis.hgetall(key)

        totals: dict[str, dict[str, int]] = defaultdict(dict)
        for field, raw in items.items():
            parsed = parse_field(field)
            if parsed is None:
                logger.warning(f"Skipping malformed metric field {field!r} in {key}")
                continue
            try:
                totals[parsed[1]][parsed[0]] = int(raw)
            except (TypeError, ValueError):
                logger.warning(f"Skipping malformed metric field {field}={raw!r} in {key}")

        timestamp = (minute + 1) * 60
        points = []
        for name, values in totals.items():
            count = values.get(THROUGHPUT_TAG, 0)
            if count <= 0:
                continue
            duration = sum(v for tag, v in values.items() if tag != THROUGHPUT_TAG)
            points.append(
                SnapshotPoint(
                    kind=kind.label,
                    name=name,
                    time=timestamp,
                    throughput=count,
                    runtime=duration / count / DURATION_UNITS_PER_MS,
                )
            )
        return points

    def _store_minute(self, kind: EntityKind, minute: int) -> None:
        points = self.points_for_minute(kind, minute)
        if not points:
            return

        with backend_call("snapshot write"):
            pipe = self._redis.pipeline(transaction=True)
            for point in points:
                key = self._keys.snapshot(kind, point.name)
                pipe.zremrangebyscore(key, point.time, point.time)
                pipe.zadd(key, {point.to_member(): point.time})
            pipe.execute()
        logger.debug(f"Stored {len(points)} {kind.label} snapshot(s) for minute {minute}")

    def snapshots_for(self, kind: EntityKind, name: str) -> list[SnapshotPoint]:
        """Roll pending minutes, then return the entity's history oldest-first."""
        self.roll()

        with backend_call("snapshot read"):
            members = self._redis.zrange(self._keys.snapshot(kind, name), 0, -1)

        points = []
        for member in members:
            try:
                stored = _StoredPoint.model_validate_json(member)
            except ValidationError:
                logger.warning(f"Skipping undecodable snapshot for {kind.label} {name}: {member!r}")
                continue
            points.append(SnapshotPoint(kind=kind.label, name=name, **stored.model_dump()))
        return points
