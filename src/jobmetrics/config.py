"""
Configuration for the metrics engine.

Values come from explicit arguments or from environment variables via
``MetricsConfig.from_env()``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigurationError

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_RETENTION_MINUTES = 1440  # 24 hours
DEFAULT_LOCK_TTL = 300


def _int_from_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class MetricsConfig:
    """Settings shared by every metrics component."""

    redis_url: str = DEFAULT_REDIS_URL
    key_prefix: str = ""
    retention_minutes: int = DEFAULT_RETENTION_MINUTES
    lock_ttl_seconds: int = DEFAULT_LOCK_TTL

    @property
    def bucket_ttl_seconds(self) -> int:
        """Expiry applied to live minute buckets."""
        return self.retention_minutes * 60

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> MetricsConfig:
        """Create config from environment variables."""
        env = os.environ if env is None else env
        return cls(
            redis_url=env.get("REDIS_URL") or DEFAULT_REDIS_URL,
            key_prefix=env.get("JOBMETRICS_KEY_PREFIX", ""),
            retention_minutes=_int_from_env(
                env, "JOBMETRICS_RETENTION_MINUTES", DEFAULT_RETENTION_MINUTES
            ),
            lock_ttl_seconds=_int_from_env(env, "JOBMETRICS_LOCK_TTL", DEFAULT_LOCK_TTL),
        )
