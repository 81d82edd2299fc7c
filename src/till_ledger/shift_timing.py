from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from .clock import ensure_utc, minutes_between
from .config import LedgerPolicy
from .models_shift import Schedule, Shift


class StartDecision(str, Enum):
    NO_SCHEDULE = "no_schedule"
    INVALID_SCHEDULE = "invalid_schedule"
    TOO_EARLY = "too_early"
    ON_TIME = "on_time"
    LATE = "late"
    SCHEDULE_ENDED = "schedule_ended"


@dataclass(frozen=True)
class StartEligibility:
    decision: StartDecision
    minutes_from_start: float = 0.0
    minutes_until_eligible: int = 0
    minutes_until_start: int = 0
    minutes_late: int = 0
    reason: str | None = None

    @property
    def can_start(self) -> bool:
        return self.decision in {StartDecision.ON_TIME, StartDecision.LATE}

    @property
    def requires_confirmation(self) -> bool:
        return self.decision == StartDecision.LATE


@dataclass(frozen=True)
class OvertimeStatus:
    overtime_minutes: int
    warning: bool
    auto_end: bool
    reason: str | None = None


@dataclass(frozen=True)
class ScheduleValidationIssue:
    field: str
    reason: str


@dataclass(frozen=True)
class ScheduleValidationResult:
    ok: bool
    issues: list[ScheduleValidationIssue]


def validate_schedule(schedule: Schedule, now: datetime, *, max_day_offset: int = 1) -> ScheduleValidationResult:
    """The window must be ordered and sit within ``max_day_offset`` days of today."""
    issues: list[ScheduleValidationIssue] = []
    start = ensure_utc(schedule.start_time)
    end = ensure_utc(schedule.end_time)
    if end <= start:
        issues.append(ScheduleValidationIssue(field="end_time", reason="must be after start_time"))
    today = ensure_utc(now).date()
    if abs((start.date() - today).days) > max_day_offset:
        issues.append(ScheduleValidationIssue(field="start_time", reason="is not scheduled for today"))
    return ScheduleValidationResult(ok=not issues, issues=issues)


def evaluate_start(schedule: Schedule | None, now: datetime, policy: LedgerPolicy) -> StartEligibility:
    if schedule is None:
        return StartEligibility(StartDecision.NO_SCHEDULE, reason="No shift is scheduled for today")

    check = validate_schedule(schedule, now)
    if not check.ok:
        issue = check.issues[0]
        return StartEligibility(
            StartDecision.INVALID_SCHEDULE,
            reason=f"Schedule {issue.field} {issue.reason}",
        )

    past_end = minutes_between(schedule.end_time, now)
    if past_end > policy.max_minutes_past_schedule_end:
        return StartEligibility(
            StartDecision.SCHEDULE_ENDED,
            minutes_from_start=minutes_between(schedule.start_time, now),
            reason=f"Scheduled shift ended {math.floor(past_end)} minutes ago",
        )

    delta = minutes_between(schedule.start_time, now)
    if delta < -policy.early_start_minutes:
        until_eligible = math.ceil(-delta - policy.early_start_minutes)
        until_start = math.ceil(-delta)
        return StartEligibility(
            StartDecision.TOO_EARLY,
            minutes_from_start=delta,
            minutes_until_eligible=until_eligible,
            minutes_until_start=until_start,
            reason=(
                f"Too early to start: shift begins in {until_start} minutes, "
                f"you can start in {until_eligible} minutes"
            ),
        )
    if delta > policy.late_start_minutes:
        minutes_late = math.floor(delta)
        return StartEligibility(
            StartDecision.LATE,
            minutes_from_start=delta,
            minutes_late=minutes_late,
            reason=f"Starting {minutes_late} minutes late",
        )
    return StartEligibility(StartDecision.ON_TIME, minutes_from_start=delta)


def overtime_status(
    shift: Shift,
    schedule: Schedule | None,
    now: datetime,
    policy: LedgerPolicy,
) -> OvertimeStatus:
    """Overtime is derived on every check and never persisted."""
    if schedule is not None and shift.schedule_id == schedule.id:
        overtime = max(0, math.floor(minutes_between(schedule.end_time, now)))
        if overtime >= policy.overtime_auto_end_minutes:
            return OvertimeStatus(
                overtime_minutes=overtime,
                warning=True,
                auto_end=True,
                reason=f"{overtime} minutes past scheduled end",
            )
        warning = overtime >= policy.overtime_warning_minutes
        return OvertimeStatus(
            overtime_minutes=overtime,
            warning=warning,
            auto_end=False,
            reason=f"{overtime} minutes past scheduled end" if warning else None,
        )

    active_for = ensure_utc(now) - ensure_utc(shift.start_time)
    if active_for >= timedelta(hours=policy.unscheduled_auto_end_hours):
        hours = math.floor(active_for.total_seconds() / 3600)
        return OvertimeStatus(
            overtime_minutes=0,
            warning=True,
            auto_end=True,
            reason=f"Active for {hours} hours without a schedule",
        )
    return OvertimeStatus(overtime_minutes=0, warning=False, auto_end=False)


def schedule_has_ended(schedule: Schedule, now: datetime) -> bool:
    return ensure_utc(now) >= ensure_utc(schedule.end_time)


def prefer_schedule(current: Schedule | None, candidate: Schedule | None, now: datetime) -> Schedule | None:
    """Pick between the held schedule and a freshly fetched one.

    The same schedule always takes the fresh copy. Otherwise a schedule that has
    not ended beats one that has, and ties go to the later start.
    """
    if candidate is None:
        return current
    if current is None or current.id == candidate.id:
        return candidate
    current_ended = schedule_has_ended(current, now)
    candidate_ended = schedule_has_ended(candidate, now)
    if current_ended != candidate_ended:
        return current if candidate_ended else candidate
    return candidate if ensure_utc(candidate.start_time) >= ensure_utc(current.start_time) else current
