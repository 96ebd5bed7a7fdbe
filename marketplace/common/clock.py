from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class FrozenClock(Clock):
    def __init__(self, now: Optional[datetime] = None) -> None:
        self._now = ensure_timezone(now) if now else datetime.now(tz=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, *, days: float = 0, seconds: float = 0) -> None:
        self._now = self._now + timedelta(days=days, seconds=seconds)


def ensure_timezone(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
