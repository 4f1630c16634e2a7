"""
Metrics repository: the single entry point used by workers, schedulers
and the command line.

Wires the registry, counter, rate calculator and snapshot roller around
one Redis client and one clock.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from .clock import Clock
from .config import MetricsConfig
from .connection import backend_call, get_redis_client
from .counter import MetricCounter
from .errors import InvalidMeasurementError
from .keys import DURATION_UNITS_PER_MS, EntityKind, KeySpace
from .lock import SNAPSHOT_ROLL_LOCK, WAIT_TIME_MONITOR_LOCK, MaintenanceLock, RedisLock
from .rates import RateCalculator
from .registry import MeasuredEntityRegistry
from .snapshots import SnapshotPoint, SnapshotRoller

if TYPE_CHECKING:
    from redis import Redis

logger = logging.getLogger(__name__)


def _duration_units(runtime_ms: float) -> int:
    """Convert a runtime in milliseconds to integer duration units."""
    if runtime_ms is None or isinstance(runtime_ms, bool):
        raise InvalidMeasurementError("Missing runtime")
    try:
        value = float(runtime_ms)
    except (TypeError, ValueError):
        raise InvalidMeasurementError(f"Invalid runtime: {runtime_ms!r}") from None
    if not math.isfinite(value) or value < 0:
        raise InvalidMeasurementError(f"Invalid runtime: {runtime_ms!r}")
    return round(value * DURATION_UNITS_PER_MS)


class MetricsRepository:
    """
    Redis-backed job and queue metrics.

    Example::

        repo = MetricsRepository.from_config(MetricsConfig.from_env())
        repo.increment_job("SendInvoice", runtime_ms=42.5)
        repo.throughput_for_job("SendInvoice")
        repo.snapshots_for_job("SendInvoice")
    """

    def __init__(
        self,
        redis: Redis[Any],
        config: MetricsConfig | None = None,
        clock: Clock | None = None,
        lock: MaintenanceLock | None = None,
    ):
        self.config = config or MetricsConfig()
        self._redis = redis
        self._clock = clock or Clock()
        self._keys = KeySpace(self.config.key_prefix)
        self.lock: MaintenanceLock = lock or RedisLock(
            redis, ttl_seconds=self.config.lock_ttl_seconds, keys=self._keys
        )
        self.registry = MeasuredEntityRegistry(redis, self._keys)
        self.counter = MetricCounter(
            redis,
            self.registry,
            clock=self._clock,
            keys=self._keys,
            bucket_ttl_seconds=self.config.bucket_ttl_seconds,
        )
        self.rates = RateCalculator(redis, clock=self._clock, keys=self._keys)
        self.roller = SnapshotRoller(
            redis,
            clock=self._clock,
            keys=self._keys,
            retention_minutes=self.config.retention_minutes,
        )

    @classmethod
    def from_config(cls, config: MetricsConfig, **kwargs: Any) -> MetricsRepository:
        """Create a repository connected to ``config.redis_url``."""
        return cls(get_redis_client(config.redis_url), config=config, **kwargs)

    # Registry

    def measured_jobs(self) -> set[str]:
        return self.registry.list_jobs()

    def measured_queues(self) -> set[str]:
        return self.registry.list_queues()

    # Recording

    def increment_job(self, job: str, runtime_ms: float) -> None:
        """Record one completed run of ``job``."""
        self.counter.increment(EntityKind.JOB, job, _duration_units(runtime_ms))

    def increment_queue(self, queue: str, runtime_ms: float) -> None:
        """Record one job completed on ``queue``."""
        self.counter.increment(EntityKind.QUEUE, queue, _duration_units(runtime_ms))

    # Live rates

    def throughput(self) -> int:
        """Jobs completed per minute across every queue."""
        return self.rates.rate_per_minute(EntityKind.QUEUE).throughput_per_minute

    def jobs_processed_per_minute(self) -> int:
        """Jobs completed per minute across every job class."""
        return self.rates.rate_per_minute(EntityKind.JOB).throughput_per_minute

    def throughput_for_job(self, job: str) -> int:
        return self.rates.rate_per_minute(EntityKind.JOB, job).throughput_per_minute

    def throughput_for_queue(self, queue: str) -> int:
        return self.rates.rate_per_minute(EntityKind.QUEUE, queue).throughput_per_minute

    def runtime_for_job(self, job: str) -> int:
        """Average runtime of ``job`` in milliseconds."""
        return self.rates.rate_per_minute(EntityKind.JOB, job).avg_runtime_ms

    def runtime_for_queue(self, queue: str) -> int:
        """Average runtime of jobs on ``queue`` in milliseconds."""
        return self.rates.rate_per_minute(EntityKind.QUEUE, queue).avg_runtime_ms

    def queue_with_maximum_runtime(self) -> str | None:
        return self.rates.entity_with_maximum(EntityKind.QUEUE, "runtime")

    def queue_with_maximum_throughput(self) -> str | None:
        return self.rates.entity_with_maximum(EntityKind.QUEUE, "throughput")

    def job_with_maximum_runtime(self) -> str | None:
        return self.rates.entity_with_maximum(EntityKind.JOB, "runtime")

    def job_with_maximum_throughput(self) -> str | None:
        return self.rates.entity_with_maximum(EntityKind.JOB, "throughput")

    # Snapshots

    def snapshot(self) -> int:
        """Roll elapsed minutes into snapshots; returns minutes rolled."""
        return self.roller.roll()

    def snapshot_exclusive(self) -> int | None:
        """
        Roll under the snapshot lock.

        Returns ``None`` without rolling when another process took the lock
        within its TTL.
        """
        if not self.lock.try_acquire(SNAPSHOT_ROLL_LOCK):
            logger.info("Snapshot lock held elsewhere, skipping roll")
            return None
        return self.roller.roll()

    def snapshots_for_job(self, job: str) -> list[SnapshotPoint]:
        return self.roller.snapshots_for(EntityKind.JOB, job)

    def snapshots_for_queue(self, queue: str) -> list[SnapshotPoint]:
        return self.roller.snapshots_for(EntityKind.QUEUE, queue)

    # Maintenance

    def acquire_wait_time_monitor_lock(self) -> bool:
        """Attempt to acquire the lock guarding queue wait-time monitoring."""
        return self.lock.try_acquire(WAIT_TIME_MONITOR_LOCK)

    def forget(self, key: str) -> None:
        """Delete one metrics key."""
        with backend_call("forget"):
            self._redis.delete(key)
        if key in {self._keys.registry(kind) for kind in EntityKind}:
            self.counter.reset_registrations()
        logger.info(f"Forgot metrics key {key}")

    def clear(self) -> int:
        """
        Delete every metrics key: live buckets inside the retention window,
        registry sets, snapshot series and the watermark.

        Returns:
            Number of keys deleted
        """
        now = self._clock.current_minute()
        keys = [self._keys.watermark()]
        for kind in EntityKind:
            keys.append(self._keys.registry(kind))
            keys.extend(
                self._keys.bucket(kind, minute)
                for minute in range(now - self.config.retention_minutes, now + 1)
            )

        with backend_call("clear"):
            keys.extend(self._redis.scan_iter(match=self._keys.snapshot_pattern()))
            pipe = self._redis.pipeline(transaction=False)
            for key in keys:
                pipe.delete(key)
            deleted = sum(pipe.execute())
        self.counter.reset_registrations()

        logger.info(f"Cleared {deleted} metrics key(s)")
        return deleted
