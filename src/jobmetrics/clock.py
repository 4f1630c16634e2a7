"""
Minute-granularity time source.
"""

from __future__ import annotations

import time


class Clock:
    """Wall clock truncated to minute boundaries."""

    def now(self) -> float:
        return time.time()

    def current_minute(self) -> int:
        """Minute index (epoch seconds // 60) of the current time."""
        return int(self.now() // 60)

    def seconds_into_minute(self) -> int:
        """Whole seconds elapsed since the top of the current minute."""
        return int(self.now()) % 60


class FixedClock(Clock):
    """Clock pinned to a settable timestamp, for tests and replays."""

    def __init__(self, timestamp: float = 0.0):
        self.timestamp = timestamp

    def now(self) -> float:
        return self.timestamp

    def advance(self, seconds: float) -> None:
        self.timestamp += seconds
