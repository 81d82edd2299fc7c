from __future__ import annotations

from till_ledger.models_shift import Shift, ShiftStatus
from till_ledger.shift_state import ShiftPhase, derive_phase, shift_action_availability
from till_ledger.shift_timing import OvertimeStatus, StartDecision, StartEligibility

from tests.fakes import BASE_TIME


def _shift(status: ShiftStatus = ShiftStatus.ACTIVE) -> Shift:
    return Shift(id="shift-1", cashier_id="cashier-1", business_id="biz-1", start_time=BASE_TIME, status=status)


def test_derive_phase() -> None:
    assert derive_phase(None) == ShiftPhase.NO_SHIFT
    assert derive_phase(_shift()) == ShiftPhase.ACTIVE
    assert derive_phase(_shift(), OvertimeStatus(20, warning=True, auto_end=False)) == ShiftPhase.OVERTIME
    assert derive_phase(_shift(ShiftStatus.ENDED)) == ShiftPhase.ENDED


def test_active_shift_actions() -> None:
    actions = shift_action_availability(ShiftPhase.ACTIVE)
    assert actions.can_sell and actions.can_refund and actions.can_end
    assert not actions.can_start


def test_sale_in_progress_blocks_other_actions() -> None:
    actions = shift_action_availability(ShiftPhase.OVERTIME, sale_in_progress=True)
    assert not actions.can_sell
    assert not actions.can_end


def test_no_shift_start_follows_eligibility() -> None:
    too_early = StartEligibility(StartDecision.TOO_EARLY)
    assert not shift_action_availability(ShiftPhase.NO_SHIFT, start_eligibility=too_early).can_start
    late = StartEligibility(StartDecision.LATE)
    assert shift_action_availability(ShiftPhase.NO_SHIFT, start_eligibility=late).can_start


def test_reconcile_needs_manager_and_review_flag() -> None:
    assert not shift_action_availability(ShiftPhase.ENDED, requires_manager_review=True).can_reconcile
    assert shift_action_availability(ShiftPhase.ENDED, requires_manager_review=True, is_manager=True).can_reconcile
