from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from tests.conftest import at
from window_limiter.limiter import WindowedLimiter
from window_limiter.store import LimiterStore


def test_no_double_admission_for_one_identity() -> None:
    limiter = WindowedLimiter(max_per_minute=50, max_per_hour=1000)
    barrier = threading.Barrier(16)

    def worker(_: int) -> int:
        barrier.wait()
        return sum(limiter.allow("hot", at(7, 30)) for _ in range(20))

    with ThreadPoolExecutor(max_workers=16) as pool:
        admitted = sum(pool.map(worker, range(16)))

    assert admitted == 50
    snap = limiter.snapshot("hot")
    assert snap.buckets[at(7)] == 50
    assert snap.hour_count == 50


def test_concurrent_first_access_keeps_one_window() -> None:
    limiter = WindowedLimiter(max_per_minute=1000, max_per_hour=1000)
    barrier = threading.Barrier(8)

    def worker(_: int) -> bool:
        barrier.wait()
        return limiter.allow("new-user", at(0))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(worker, range(8)))

    assert all(results)
    assert limiter.snapshot("new-user").hour_count == 8
    assert limiter.metrics.get("recycles") == 1


def test_hour_ceiling_holds_across_threads_and_minutes() -> None:
    limiter = WindowedLimiter(
        max_per_minute=5, max_per_hour=40, store=LimiterStore(lock_stripes=4)
    )

    def worker(minute: int) -> int:
        return sum(limiter.allow("u", at(minute, s)) for s in range(10))

    with ThreadPoolExecutor(max_workers=12) as pool:
        admitted = sum(pool.map(worker, range(60)))

    assert admitted == 40
    snap = limiter.snapshot("u")
    assert snap.hour_count == sum(snap.buckets.values()) == 40


def test_many_identities_in_parallel() -> None:
    limiter = WindowedLimiter(max_per_minute=2, max_per_hour=10)

    def worker(user: int) -> int:
        return sum(limiter.allow(f"user-{user}", at(3)) for _ in range(5))

    with ThreadPoolExecutor(max_workers=8) as pool:
        per_user = list(pool.map(worker, range(200)))

    assert per_user == [2] * 200
    assert limiter.stats()["identities"] == 200
