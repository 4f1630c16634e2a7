"""
jobmetrics - per-minute throughput and runtime metrics for jobs and queues.

Records measurements into one-minute Redis buckets, derives smoothed
per-minute rates, and rolls elapsed buckets into a long-lived snapshot
time series.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _metadata_version

from .clock import Clock, FixedClock
from .config import MetricsConfig
from .errors import (
    BackendUnavailableError,
    ConfigurationError,
    InvalidMeasurementError,
    MetricsError,
)
from .keys import EntityKind
from .lock import MaintenanceLock, RedisLock
from .repository import MetricsRepository
from .snapshots import SnapshotPoint

try:
    __version__ = _metadata_version("jobmetrics")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "BackendUnavailableError",
    "Clock",
    "ConfigurationError",
    "EntityKind",
    "FixedClock",
    "InvalidMeasurementError",
    "MaintenanceLock",
    "MetricsConfig",
    "MetricsError",
    "MetricsRepository",
    "RedisLock",
    "SnapshotPoint",
]
