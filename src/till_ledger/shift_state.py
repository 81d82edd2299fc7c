from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .models_shift import Shift
from .shift_timing import OvertimeStatus, StartEligibility


class ShiftPhase(str, Enum):
    NO_SHIFT = "no_shift"
    ACTIVE = "active"
    OVERTIME = "overtime"
    ENDED = "ended"


@dataclass(frozen=True)
class ShiftActionAvailability:
    can_start: bool
    can_end: bool
    can_sell: bool
    can_refund: bool
    can_void: bool
    can_count_cash: bool
    can_reconcile: bool


def derive_phase(shift: Shift | None, overtime: OvertimeStatus | None = None) -> ShiftPhase:
    if shift is None:
        return ShiftPhase.NO_SHIFT
    if not shift.is_active:
        return ShiftPhase.ENDED
    if overtime is not None and overtime.warning:
        return ShiftPhase.OVERTIME
    return ShiftPhase.ACTIVE


def shift_action_availability(
    phase: ShiftPhase,
    *,
    start_eligibility: StartEligibility | None = None,
    sale_in_progress: bool = False,
    requires_manager_review: bool = False,
    is_manager: bool = False,
) -> ShiftActionAvailability:
    if phase in {ShiftPhase.ACTIVE, ShiftPhase.OVERTIME}:
        idle = not sale_in_progress
        return ShiftActionAvailability(
            can_start=False,
            can_end=idle,
            can_sell=idle,
            can_refund=idle,
            can_void=idle,
            can_count_cash=idle,
            can_reconcile=False,
        )
    can_start = start_eligibility is None or start_eligibility.can_start
    return ShiftActionAvailability(
        can_start=can_start,
        can_end=False,
        can_sell=False,
        can_refund=False,
        can_void=False,
        can_count_cash=phase == ShiftPhase.ENDED,
        can_reconcile=phase == ShiftPhase.ENDED and requires_manager_review and is_manager,
    )
