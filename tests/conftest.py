from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from window_limiter.limiter import WindowedLimiter
from window_limiter.logging import setup_logging

BASE_HOUR = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def at(minute: int = 0, second: int = 0, *, hours: int = 0) -> int:
    """Epoch millis ``hours`` hours and ``minute:second`` past BASE_HOUR."""
    moment = BASE_HOUR + timedelta(hours=hours, minutes=minute, seconds=second)
    return int(moment.timestamp()) * 1000


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment out of settings and quiet the logs."""
    for name in (
        "RATE_LIMIT_MAX_PER_MINUTE",
        "RATE_LIMIT_MAX_PER_HOUR",
        "RATE_LIMIT_MINUTE_SECONDS",
        "RATE_LIMIT_HOUR_SECONDS",
        "RATE_LIMIT_LOCK_STRIPES",
        "RATE_LIMIT_MAX_IDENTITIES",
        "RATE_LIMIT_IDLE_TTL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RATE_LIMIT_LOG_LEVEL", "WARNING")
    setup_logging("WARNING", json_logs=True)


@pytest.fixture
def limiter() -> WindowedLimiter:
    return WindowedLimiter(max_per_minute=3, max_per_hour=10)
