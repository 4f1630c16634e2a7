"""
Redis key and hash-field naming.

Key layout::

    metrics:{j|q}:{minute}          -> hash of per-minute counters
        t:{name}                    -> completions in that minute
        r:{name}                    -> summed duration (microseconds)
    measured_jobs / measured_queues -> set of "job:{name}" / "queue:{name}"
    snapshot:{job|queue}:{name}     -> sorted set, score = end-of-minute epoch
    last_snapshot                   -> last minute index rolled into snapshots
    lock:{name}                     -> maintenance lock
"""

from __future__ import annotations

from enum import Enum

THROUGHPUT_TAG = "t"
RUNTIME_TAG = "r"

# Durations are stored as integer microseconds.
DURATION_UNITS_PER_MS = 1000


class EntityKind(Enum):
    """Kinds of measured entities."""

    JOB = ("job", "j", "measured_jobs")
    QUEUE = ("queue", "q", "measured_queues")

    def __init__(self, label: str, bucket_tag: str, registry_key: str):
        self.label = label
        self.bucket_tag = bucket_tag
        self.registry_key = registry_key

    @classmethod
    def parse(cls, value: str | EntityKind) -> EntityKind:
        """Accept an EntityKind, its label ("job") or its bucket tag ("j")."""
        if isinstance(value, EntityKind):
            return value
        for kind in cls:
            if value in (kind.label, kind.bucket_tag):
                return kind
        raise ValueError(f"Unknown entity kind: {value!r}")


def throughput_field(name: str) -> str:
    return f"{THROUGHPUT_TAG}:{name}"


def runtime_field(name: str) -> str:
    return f"{RUNTIME_TAG}:{name}"


def parse_field(field: str) -> tuple[str, str] | None:
    """Split a bucket field into (tag, entity name), or None if malformed."""
    tag, sep, name = field.partition(":")
    if not sep or not name or tag not in (THROUGHPUT_TAG, RUNTIME_TAG):
        return None
    return tag, name


class KeySpace:
    """Builds every Redis key used by the engine, under an optional prefix."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def bucket(self, kind: EntityKind, minute: int) -> str:
        return self._key(f"metrics:{kind.bucket_tag}:{minute}")

    def registry(self, kind: EntityKind) -> str:
        return self._key(kind.registry_key)

    def snapshot(self, kind: EntityKind, name: str) -> str:
        return self._key(f"snapshot:{kind.label}:{name}")

    def snapshot_pattern(self) -> str:
        return self._key("snapshot:*")

    def watermark(self) -> str:
        return self._key("last_snapshot")

    def lock(self, name: str) -> str:
        return self._key(f"lock:{name}")

    @staticmethod
    def registry_member(kind: EntityKind, name: str) -> str:
        return f"{kind.label}:{name}"

    @staticmethod
    def strip_registry_member(kind: EntityKind, member: str) -> str:
        """Remove the "job:"/"queue:" member prefix; legacy bare names pass through."""
        prefix = f"{kind.label}:"
        return member[len(prefix) :] if member.startswith(prefix) else member
