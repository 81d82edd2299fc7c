from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .clock import Clock, TimeChangeDetector
from .config import LedgerPolicy
from .exceptions import ApiError, LedgerError
from .models_shift import Schedule
from .shift_manager import ShiftManager
from .shift_timing import OvertimeStatus

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class WatchdogTick:
    overtime: OvertimeStatus | None = None
    auto_ended: bool = False
    refreshed: bool = False
    missed_schedule: Schedule | None = None
    time_drift_seconds: float | None = None
    errors: list[str] = field(default_factory=list)


class Watchdog:
    """One periodic task for overtime checks, data refresh and missed schedules.

    Each tick runs whatever is due in a fixed order: overtime first so an
    auto-end is never pre-empted by a refresh, then the refresh, then the
    missed-schedule check. Time comes from the injected clock, so tests drive
    ticks by advancing a ``ManualClock`` instead of sleeping.
    """

    def __init__(
        self,
        manager: ShiftManager,
        *,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
        detector: TimeChangeDetector | None = None,
    ) -> None:
        self.manager = manager
        self.clock = clock or manager.clock
        self.policy = policy or manager.policy
        self._sleep = sleep
        self.detector = detector or TimeChangeDetector(
            self.clock, threshold_seconds=self.policy.time_change_threshold_seconds
        )
        self._next_overtime: float | None = None
        self._next_refresh: float | None = None
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0

    @property
    def interval_seconds(self) -> int:
        return math.gcd(self.policy.refresh_interval_seconds, self.policy.overtime_interval_seconds)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> WatchdogTick:
        now = self.clock.monotonic()
        result = WatchdogTick()
        self.ticks += 1

        drift = self.detector.check()
        if drift is not None:
            result.time_drift_seconds = drift
            logger.warning("system_time_changed", extra={"drift_seconds": round(drift, 1)})
            self._next_refresh = None

        if self._next_overtime is None or now >= self._next_overtime:
            self._next_overtime = now + self.policy.overtime_interval_seconds
            was_active = self.manager.is_active
            try:
                result.overtime = await self.manager.check_overtime()
            except (ApiError, LedgerError) as exc:
                self._record_error(result, "overtime", exc)
            result.auto_ended = was_active and not self.manager.is_active

        if self._next_refresh is None or now >= self._next_refresh:
            self._next_refresh = now + self.policy.refresh_interval_seconds
            await self.manager.refresh()
            result.refreshed = self.manager.last_refresh_error is None
            if self.manager.last_refresh_error:
                result.errors.append(f"refresh: {self.manager.last_refresh_error}")
            try:
                result.missed_schedule = await self.manager.check_missed_schedule()
            except (ApiError, LedgerError) as exc:
                self._record_error(result, "missed_schedule", exc)
        return result

    async def run(self, *, max_ticks: int | None = None) -> None:
        remaining = max_ticks
        while remaining is None or remaining > 0:
            try:
                await self.tick()
            except Exception:
                logger.exception("watchdog_tick_failed", extra={"tick": self.ticks})
            if remaining is not None:
                remaining -= 1
                if remaining == 0:
                    break
            await self._sleep(self.interval_seconds)

    def start(self) -> asyncio.Task[None]:
        if self.running and self._task is not None:
            return self._task
        self._task = asyncio.create_task(self.run(), name="till-ledger-watchdog")
        logger.info("watchdog_started", extra={"interval_seconds": self.interval_seconds})
        return self._task

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("watchdog_stopped")

    def _record_error(self, result: WatchdogTick, step: str, exc: Exception) -> None:
        logger.warning("watchdog_step_failed", extra={"step": step, "error": str(exc)})
        result.errors.append(f"{step}: {exc}")
