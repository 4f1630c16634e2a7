"""
Error types raised by the metrics engine.
"""

from __future__ import annotations


class MetricsError(Exception):
    """Base exception for all jobmetrics errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BackendUnavailableError(MetricsError):
    """
    Raised when the Redis backend cannot be reached.

    Examples:
    - Connection refused or reset
    - Socket timeout
    """

    pass


class InvalidMeasurementError(MetricsError):
    """
    Raised when a measurement cannot be recorded.

    Examples:
    - Negative or missing duration
    - Empty entity name
    """

    pass


class ConfigurationError(MetricsError):
    """Raised when environment configuration cannot be parsed."""

    pass
