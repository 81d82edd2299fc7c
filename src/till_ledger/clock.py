from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def monotonic(self) -> float: ...


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_between(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 60


def whole_minutes(minutes: float) -> int:
    return math.floor(minutes)


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


@dataclass
class ManualClock:
    """Deterministic clock for tests and replays.

    ``advance`` moves wall and monotonic time together; ``jump`` moves only the
    wall clock, which is what a manual system time change looks like.
    """

    current: datetime = field(default_factory=lambda: datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))
    elapsed: float = 0.0

    def __post_init__(self) -> None:
        self.current = ensure_utc(self.current)

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.elapsed

    def advance(self, *, seconds: float = 0, minutes: float = 0, hours: float = 0) -> datetime:
        delta = seconds + minutes * 60 + hours * 3600
        self.current = self.current + timedelta(seconds=delta)
        self.elapsed += delta
        return self.current

    def set(self, value: datetime) -> None:
        value = ensure_utc(value)
        self.elapsed += max((value - self.current).total_seconds(), 0.0)
        self.current = value

    def jump(self, *, seconds: float = 0, minutes: float = 0) -> datetime:
        self.current = self.current + timedelta(seconds=seconds + minutes * 60)
        return self.current


@dataclass
class TimeChangeDetector:
    """Flags wall-clock jumps by comparing wall and monotonic progress."""

    clock: Clock
    threshold_seconds: float = 5.0
    _last_wall: datetime | None = None
    _last_monotonic: float | None = None

    def check(self) -> float | None:
        wall = self.clock.now()
        mono = self.clock.monotonic()
        drift: float | None = None
        if self._last_wall is not None and self._last_monotonic is not None:
            wall_elapsed = (wall - self._last_wall).total_seconds()
            mono_elapsed = mono - self._last_monotonic
            difference = wall_elapsed - mono_elapsed
            if abs(difference) > self.threshold_seconds:
                drift = difference
        self._last_wall = wall
        self._last_monotonic = mono
        return drift
