from __future__ import annotations

from collections.abc import Callable, Hashable
from typing import Any

import structlog

from window_limiter.config import Settings, get_settings
from window_limiter.errors import BucketInvariantError, LimiterConfigError
from window_limiter.logging import setup_logging
from window_limiter.metrics import LimiterMetrics
from window_limiter.models import IdentityWindow, WindowSnapshot
from window_limiter.store import LimiterStore
from window_limiter.timeutil import (
    MILLIS_IN_SECOND,
    Instant,
    now_millis,
    to_epoch_millis,
    truncate,
)

logger = structlog.get_logger()


def _require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise LimiterConfigError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise LimiterConfigError(f"{name} must be positive, got {value}")
    return value


def _bucket_count(window: IdentityWindow, identity: Hashable, minute_key: int) -> int:
    count = window.buckets.get(minute_key)
    if count is None:
        logger.error(
            "bucket_invariant_violation",
            identity=identity,
            minute_ms=minute_key,
            hour_start_ms=window.hour_start,
        )
        raise BucketInvariantError(
            f"Minute {minute_key} missing from window starting at {window.hour_start}"
        )
    return count


class WindowedLimiter:
    """Per-identity admission control over minute buckets and an hour counter.

    Each identity owns one table of minute buckets covering the clock hour of
    its latest request. A request in any other hour, earlier or later,
    replaces the whole table and zeroes the hour counter, so up to twice the
    hourly limit can pass around an hour boundary.
    """

    def __init__(
        self,
        max_per_minute: int,
        max_per_hour: int,
        *,
        minute_seconds: int = 60,
        hour_seconds: int = 3600,
        store: LimiterStore | None = None,
        metrics: LimiterMetrics | None = None,
        clock: Callable[[], Instant] | None = None,
    ) -> None:
        self._max_per_minute = _require_positive_int("max_per_minute", max_per_minute)
        self._max_per_hour = _require_positive_int("max_per_hour", max_per_hour)
        minute_seconds = _require_positive_int("minute_seconds", minute_seconds)
        hour_seconds = _require_positive_int("hour_seconds", hour_seconds)
        if hour_seconds % minute_seconds:
            raise LimiterConfigError(
                f"hour_seconds ({hour_seconds}) must be a multiple of "
                f"minute_seconds ({minute_seconds})"
            )

        self._minute_millis = minute_seconds * MILLIS_IN_SECOND
        self._hour_millis = hour_seconds * MILLIS_IN_SECOND
        self._slots = hour_seconds // minute_seconds
        self._store = store if store is not None else LimiterStore()
        self._metrics = metrics if metrics is not None else LimiterMetrics()
        self._clock = clock if clock is not None else now_millis

        logger.info(
            "limiter_created",
            max_per_minute=self._max_per_minute,
            max_per_hour=self._max_per_hour,
            slots=self._slots,
            stripes=self._store.stripes,
        )

    @property
    def max_per_minute(self) -> int:
        return self._max_per_minute

    @property
    def max_per_hour(self) -> int:
        return self._max_per_hour

    @property
    def store(self) -> LimiterStore:
        return self._store

    @property
    def metrics(self) -> LimiterMetrics:
        return self._metrics

    def allow(self, identity: Hashable, now: Instant) -> bool:
        """Return True and consume budget if ``identity`` may proceed at ``now``.

        Denials leave every counter untouched.
        """
        now_ms = to_epoch_millis(now)
        minute_key = truncate(now_ms, self._minute_millis)
        hour_key = truncate(now_ms, self._hour_millis)

        shard = self._store.shard_for(identity)
        with shard.lock:
            window = shard.get(identity)
            recycle_reason = self._recycle_reason(window, hour_key)
            evicted = 0
            if recycle_reason is not None:
                window = IdentityWindow.open(hour_key, self._minute_millis, self._slots)
                evicted = shard.put(identity, window)
            else:
                shard.touch(identity)
            window.last_seen = now_ms

            count = _bucket_count(window, identity, minute_key)
            if count >= self._max_per_minute:
                denied_by = "minute"
            elif window.hour_count >= self._max_per_hour:
                denied_by = "hour"
            else:
                denied_by = None
                window.buckets[minute_key] = count + 1
                window.hour_count += 1
            hour_count = window.hour_count

        if recycle_reason is not None:
            self._metrics.increment("recycles")
            logger.debug(
                "window_recycled",
                identity=identity,
                reason=recycle_reason,
                hour_start_ms=hour_key,
            )
        if evicted:
            self._metrics.increment("evictions", evicted)

        if denied_by is None:
            self._metrics.increment("admitted")
            return True

        self._metrics.increment(f"denied_{denied_by}")
        logger.debug(
            "request_denied",
            identity=identity,
            scope=denied_by,
            minute_ms=minute_key,
            hour_count=hour_count,
        )
        return False

    def allow_now(self, identity: Hashable) -> bool:
        return self.allow(identity, self._clock())

    def remaining(self, identity: Hashable, now: Instant) -> tuple[int, int]:
        """Remaining (minute, hour) budget at ``now`` without consuming any."""
        now_ms = to_epoch_millis(now)
        minute_key = truncate(now_ms, self._minute_millis)
        hour_key = truncate(now_ms, self._hour_millis)

        shard = self._store.shard_for(identity)
        with shard.lock:
            window = shard.get(identity)
            if self._recycle_reason(window, hour_key) is not None:
                return self._max_per_minute, self._max_per_hour
            used_minute = _bucket_count(window, identity, minute_key)
            used_hour = window.hour_count
        return (
            max(0, self._max_per_minute - used_minute),
            max(0, self._max_per_hour - used_hour),
        )

    def snapshot(self, identity: Hashable) -> WindowSnapshot | None:
        shard = self._store.shard_for(identity)
        with shard.lock:
            window = shard.get(identity)
            if window is None:
                return None
            return window.to_snapshot(identity)

    def reset(self, identity: Hashable) -> bool:
        """Forget ``identity``; its next request opens a fresh window."""
        return self._store.remove(identity)

    def evict_idle(self, now: Instant) -> int:
        evicted = self._store.evict_idle(to_epoch_millis(now))
        if evicted:
            self._metrics.increment("evictions", evicted)
        return evicted

    def stats(self) -> dict[str, int | float]:
        stats = self._metrics.get_stats()
        stats["identities"] = len(self._store)
        return stats

    @staticmethod
    def _recycle_reason(window: IdentityWindow | None, hour_key: int) -> str | None:
        if window is None:
            return "new"
        if hour_key > window.hour_start:
            return "rollover"
        if hour_key < window.hour_start:
            return "backward"
        return None


def create_limiter(
    settings: Settings | None = None,
    *,
    configure_logging: bool = True,
    clock: Callable[[], Instant] | None = None,
) -> WindowedLimiter:
    """Build a limiter and its store from settings (environment by default)."""
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level)

    store = LimiterStore(
        lock_stripes=settings.lock_stripes,
        max_identities=settings.max_identities,
        idle_ttl_seconds=settings.idle_ttl_seconds,
    )
    return WindowedLimiter(
        max_per_minute=settings.max_per_minute,
        max_per_hour=settings.max_per_hour,
        minute_seconds=settings.minute_seconds,
        hour_seconds=settings.hour_seconds,
        store=store,
        clock=clock,
    )
