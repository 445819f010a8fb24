from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class IdentityWindow:
    """Minute buckets for one open hour plus the running hour counter.

    Only ever touched while its shard lock is held.
    """

    hour_start: int
    buckets: dict[int, int]
    hour_count: int = 0
    last_seen: int = 0

    @classmethod
    def open(cls, hour_start: int, minute_millis: int, slots: int) -> IdentityWindow:
        """Fresh window of ``slots`` contiguous zeroed minutes from ``hour_start``."""
        buckets = {hour_start + i * minute_millis: 0 for i in range(slots)}
        return cls(hour_start=hour_start, buckets=buckets, last_seen=hour_start)

    def to_snapshot(self, identity: object) -> WindowSnapshot:
        return WindowSnapshot(
            identity=repr(identity),
            hour_start=self.hour_start,
            buckets=dict(self.buckets),
            hour_count=self.hour_count,
            last_seen=self.last_seen,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WindowSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: str
    hour_start: int
    buckets: dict[int, int] = Field(default_factory=dict)
    hour_count: int = 0
    last_seen: int = 0
    taken_at: datetime = Field(default_factory=_utcnow)

    @property
    def busy_minutes(self) -> dict[int, int]:
        """Buckets that recorded at least one admission."""
        return {minute: count for minute, count in self.buckets.items() if count}
