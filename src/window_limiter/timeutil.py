from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from window_limiter.errors import InvalidTimestampError

Instant = int | float | datetime

MILLIS_IN_SECOND = 1000
MILLIS_IN_MINUTE = 60 * MILLIS_IN_SECOND
MILLIS_IN_HOUR = 60 * MILLIS_IN_MINUTE

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLI = timedelta(milliseconds=1)
_MIN_MILLIS = (datetime.min.replace(tzinfo=timezone.utc) - _EPOCH) // _ONE_MILLI
_MAX_MILLIS = (datetime.max.replace(tzinfo=timezone.utc) - _EPOCH) // _ONE_MILLI


def to_epoch_millis(instant: Instant) -> int:
    """Normalise an instant to integer milliseconds since the Unix epoch.

    Numbers are taken as epoch milliseconds. Naive datetimes are read as UTC
    so the result never depends on the host timezone. Numbers outside the
    range ``datetime`` can represent are rejected.
    """
    if instant is None:
        raise InvalidTimestampError("Request timestamp is required")
    if isinstance(instant, bool):
        raise InvalidTimestampError("Boolean is not a valid timestamp")
    if isinstance(instant, datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return (instant - _EPOCH) // _ONE_MILLI
    if isinstance(instant, int):
        return _check_range(instant)
    if isinstance(instant, float):
        if not math.isfinite(instant):
            raise InvalidTimestampError(f"Timestamp must be finite, got {instant!r}")
        return _check_range(math.floor(instant))
    raise InvalidTimestampError(
        f"Unsupported timestamp type: {type(instant).__name__}"
    )


def truncate(epoch_millis: int, unit_millis: int) -> int:
    """Floor ``epoch_millis`` to the start of its ``unit_millis`` period.

    For minute and hour units this matches calendar truncation in UTC, since
    epoch time carries no leap seconds.
    """
    return (epoch_millis // unit_millis) * unit_millis


def now_millis() -> int:
    return (datetime.now(timezone.utc) - _EPOCH) // _ONE_MILLI


def _check_range(epoch_millis: int) -> int:
    if not _MIN_MILLIS <= epoch_millis <= _MAX_MILLIS:
        raise InvalidTimestampError(f"Timestamp {epoch_millis} is out of range")
    return epoch_millis
