from __future__ import annotations

import math
import threading
from collections import OrderedDict
from collections.abc import Hashable

import structlog

from window_limiter.errors import LimiterConfigError
from window_limiter.models import IdentityWindow
from window_limiter.timeutil import MILLIS_IN_SECOND

logger = structlog.get_logger()


class Shard:
    """One lock plus the identities hashed to it.

    Every method expects the caller to hold ``lock``. Entries are kept in
    least-recently-used order.
    """

    def __init__(self, capacity: int | None = None) -> None:
        self.lock = threading.Lock()
        self.capacity = capacity
        self._windows: OrderedDict[Hashable, IdentityWindow] = OrderedDict()

    def __len__(self) -> int:
        return len(self._windows)

    def get(self, identity: Hashable) -> IdentityWindow | None:
        return self._windows.get(identity)

    def touch(self, identity: Hashable) -> None:
        self._windows.move_to_end(identity)

    def put(self, identity: Hashable, window: IdentityWindow) -> int:
        """Install ``window`` for ``identity``; return how many LRU entries were evicted."""
        evicted = 0
        if identity not in self._windows and self.capacity is not None:
            while len(self._windows) >= self.capacity:
                victim, _ = self._windows.popitem(last=False)
                logger.debug("identity_evicted", identity=victim, reason="capacity")
                evicted += 1
        self._windows[identity] = window
        self._windows.move_to_end(identity)
        return evicted

    def pop(self, identity: Hashable) -> IdentityWindow | None:
        return self._windows.pop(identity, None)

    def evict_older_than(self, cutoff: int) -> int:
        stale = [identity for identity, w in self._windows.items() if w.last_seen < cutoff]
        for identity in stale:
            del self._windows[identity]
            logger.debug("identity_evicted", identity=identity, reason="idle")
        return len(stale)

    def clear(self) -> None:
        self._windows.clear()


class LimiterStore:
    """Identity -> window mapping, striped across independently locked shards."""

    def __init__(
        self,
        lock_stripes: int = 64,
        max_identities: int | None = None,
        idle_ttl_seconds: int | None = None,
    ) -> None:
        if lock_stripes <= 0:
            raise LimiterConfigError(f"lock_stripes must be positive, got {lock_stripes}")
        if max_identities is not None and max_identities <= 0:
            raise LimiterConfigError(f"max_identities must be positive, got {max_identities}")
        if idle_ttl_seconds is not None and idle_ttl_seconds <= 0:
            raise LimiterConfigError(f"idle_ttl_seconds must be positive, got {idle_ttl_seconds}")

        capacity = (
            math.ceil(max_identities / lock_stripes) if max_identities is not None else None
        )
        self._shards = [Shard(capacity) for _ in range(lock_stripes)]
        self._idle_ttl_millis = (
            idle_ttl_seconds * MILLIS_IN_SECOND if idle_ttl_seconds is not None else None
        )

    @property
    def stripes(self) -> int:
        return len(self._shards)

    def shard_for(self, identity: Hashable) -> Shard:
        return self._shards[hash(identity) % len(self._shards)]

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard)
        return total

    def remove(self, identity: Hashable) -> bool:
        shard = self.shard_for(identity)
        with shard.lock:
            return shard.pop(identity) is not None

    def evict_idle(self, now_millis: int) -> int:
        """Drop identities whose last request is older than the idle TTL."""
        if self._idle_ttl_millis is None:
            return 0
        cutoff = now_millis - self._idle_ttl_millis
        evicted = 0
        for shard in self._shards:
            with shard.lock:
                evicted += shard.evict_older_than(cutoff)
        return evicted

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.clear()
