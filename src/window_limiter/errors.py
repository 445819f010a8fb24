from __future__ import annotations


class LimiterError(Exception):
    """Base class for rate limiter errors."""


class LimiterConfigError(LimiterError, ValueError):
    """Raised when the limiter is constructed with invalid parameters."""


class InvalidTimestampError(LimiterError, ValueError):
    """Raised when a request instant cannot be normalised to epoch millis."""


class BucketInvariantError(LimiterError, RuntimeError):
    """Raised when a minute key is missing from a freshly ensured window.

    This means truncation and table construction have drifted apart and is
    never a normal denial.
    """
