from __future__ import annotations

import threading
import time
from collections import defaultdict


class LimiterMetrics:
    """Lightweight in-memory counters for limiter decisions."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()
        self._start_time = time.monotonic()

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_stats(self) -> dict[str, int | float]:
        with self._lock:
            stats: dict[str, int | float] = dict(self._counters)
        stats["uptime_seconds"] = round(time.monotonic() - self._start_time, 1)
        return stats
