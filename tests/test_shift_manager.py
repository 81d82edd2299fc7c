from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from till_ledger.exceptions import (
    InvalidAmountError,
    LateStartConfirmationRequired,
    NoActiveShiftError,
    NoScheduleError,
    ServerError,
    ShiftAlreadyActiveError,
    ShiftNotEndedError,
    StartTooEarlyError,
)
from till_ledger.models_shift import CountType, ScheduleStatus, Shift, ShiftStatus
from till_ledger.shift_manager import ShiftManager
from till_ledger.shift_state import ShiftPhase

from tests.fakes import BASE_TIME, api_error, make_sale, make_schedule


def _start(manager: ShiftManager, cash: object = "100.00", **kwargs):
    return asyncio.run(manager.start_shift(cash, **kwargs))


def test_start_on_time_marks_schedule_active(manager, shift_client) -> None:
    result = _start(manager)

    assert result.shift.starting_cash == 10000
    assert result.shift.total_sales == 0
    assert manager.phase == ShiftPhase.ACTIVE
    assert shift_client.start_calls[0].schedule_id == "sched-1"
    assert shift_client.schedule_updates == [("sched-1", ScheduleStatus.ACTIVE)]
    assert manager.schedule.status == ScheduleStatus.ACTIVE


def test_start_too_early_is_rejected_before_any_call(manager, shift_client, clock) -> None:
    clock.set(BASE_TIME - timedelta(minutes=20))

    with pytest.raises(StartTooEarlyError) as excinfo:
        _start(manager)

    assert excinfo.value.minutes_until_eligible == 5
    assert excinfo.value.minutes_until_start == 20
    assert shift_client.start_calls == []
    assert not manager.is_active


def test_start_ten_minutes_early_is_on_time(manager, clock) -> None:
    clock.set(BASE_TIME - timedelta(minutes=10))
    result = _start(manager)
    assert result.eligibility.decision.value == "on_time"


def test_late_start_requires_confirmation(manager, shift_client, clock) -> None:
    clock.advance(minutes=45)

    with pytest.raises(LateStartConfirmationRequired) as excinfo:
        _start(manager)
    assert excinfo.value.minutes_late == 45
    assert shift_client.start_calls == []

    result = _start(manager, confirm_late=True)
    assert "Late start: 45 minutes late" in (result.shift.notes or "")


def test_unscheduled_start_needs_override(manager, shift_client) -> None:
    shift_client.schedule = None

    with pytest.raises(NoScheduleError):
        _start(manager)

    result = _start(manager, unscheduled=True)
    assert result.shift.schedule_id is None
    assert "Unscheduled shift" in (result.shift.notes or "")
    assert shift_client.schedule_updates == []


def test_second_start_is_rejected(manager, shift_client) -> None:
    _start(manager)

    with pytest.raises(ShiftAlreadyActiveError):
        _start(manager)
    assert len(shift_client.start_calls) == 1


def test_start_adopts_shift_already_active_in_store(manager, shift_client) -> None:
    existing = Shift(id="shift-remote", cashier_id="cashier-1", business_id="biz-1", start_time=BASE_TIME)
    shift_client.seed_active(existing)

    with pytest.raises(ShiftAlreadyActiveError):
        _start(manager)
    assert manager.shift.id == "shift-remote"
    assert shift_client.start_calls == []


@pytest.mark.parametrize("cash", ["-5", "abc", "20000"])
def test_invalid_starting_cash(manager, shift_client, cash) -> None:
    with pytest.raises(InvalidAmountError):
        _start(manager, cash)
    assert shift_client.start_calls == []


@pytest.mark.parametrize("cash", [100, 100.0, "100"])
def test_numeric_starting_cash_is_pounds(manager, shift_client, cash) -> None:
    result = _start(manager, cash)
    assert result.shift.starting_cash == 10000
    assert shift_client.start_calls[0].starting_cash == 10000


def test_high_starting_cash_warns(manager) -> None:
    result = _start(manager, "6000")
    assert result.shift.starting_cash == 600000
    assert any("unusually high" in warning for warning in result.warnings)


def test_schedule_update_failure_is_a_warning(manager, shift_client) -> None:
    shift_client.fail_schedule_update = api_error(ServerError, 503, "Schedules unavailable")

    result = _start(manager)

    assert manager.is_active
    assert result.warnings == ["Schedule could not be marked active: Schedules unavailable"]
    assert manager.schedule.status == ScheduleStatus.ACTIVE


def test_end_shift_reports_variance(manager, shift_client) -> None:
    _start(manager)
    manager.record_sale(make_sale(transaction_id="txn-1", shift_id=manager.shift.id))

    result = asyncio.run(manager.end_shift("140.00"))

    assert result.shift.status == ShiftStatus.ENDED
    assert not result.already_ended
    request = shift_client.end_calls[0]
    assert request.expected_cash_drawer == 10000 + 3600
    assert request.cash_variance == 14000 - 13600
    assert request.total_transactions == 1
    assert manager.schedule.status == ScheduleStatus.COMPLETED
    assert manager.phase == ShiftPhase.ENDED


def test_concurrent_end_calls_end_once(manager, shift_client) -> None:
    _start(manager)
    shift_client.end_delay = 0.01

    async def both():
        return await asyncio.gather(manager.end_shift("100.00"), manager.auto_end("Overtime limit reached"))

    first, second = asyncio.run(both())

    assert len(shift_client.end_calls) == 1
    assert not first.already_ended
    assert second.already_ended
    assert second.shift.id == first.shift.id


def test_end_after_store_closed_shift_refetches(manager, shift_client) -> None:
    _start(manager)
    shift_id = manager.shift.id
    shift_client.shifts[shift_id] = shift_client.shifts[shift_id].model_copy(update={"status": ShiftStatus.ENDED})

    result = asyncio.run(manager.end_shift("100.00"))

    assert result.already_ended
    assert manager.shift.status == ShiftStatus.ENDED


def test_end_without_shift(manager) -> None:
    with pytest.raises(NoActiveShiftError):
        asyncio.run(manager.end_shift("10"))


@pytest.mark.parametrize(("minutes_over", "warning"), [(14, False), (15, True)])
def test_overtime_warning(manager, clock, minutes_over, warning) -> None:
    _start(manager)
    clock.set(manager.schedule.end_time + timedelta(minutes=minutes_over))

    status = asyncio.run(manager.check_overtime())

    assert status.warning is warning
    assert manager.is_active
    assert manager.phase == (ShiftPhase.OVERTIME if warning else ShiftPhase.ACTIVE)


def test_overtime_auto_end_uses_expected_cash(manager, shift_client, clock) -> None:
    _start(manager)
    manager.record_sale(make_sale(transaction_id="txn-1", shift_id=manager.shift.id))
    clock.set(manager.schedule.end_time + timedelta(minutes=120))

    status = asyncio.run(manager.check_overtime())

    assert status.auto_end
    assert not manager.is_active
    request = shift_client.end_calls[0]
    assert request.auto_ended
    assert request.final_cash_drawer == request.expected_cash_drawer == 13600
    assert request.cash_variance == 0
    assert manager.shift.auto_ended
    assert manager.shift.requires_manager_review
    assert manager.snapshot().requires_manager_review


def test_missed_schedule_is_marked(manager, shift_client, clock) -> None:
    asyncio.run(manager.refresh())
    clock.set(manager.schedule.end_time + timedelta(minutes=1))

    updated = asyncio.run(manager.check_missed_schedule())

    assert updated.status == ScheduleStatus.MISSED
    assert shift_client.schedule_updates == [("sched-1", ScheduleStatus.MISSED)]
    assert asyncio.run(manager.check_missed_schedule()) is None


def test_missed_schedule_ignored_while_schedule_running(manager) -> None:
    asyncio.run(manager.refresh())
    assert asyncio.run(manager.check_missed_schedule()) is None


def test_refresh_keeps_local_counters_when_store_lags(manager, shift_client) -> None:
    _start(manager)
    manager.record_sale(make_sale(transaction_id="txn-1", shift_id=manager.shift.id))

    snapshot = asyncio.run(manager.refresh())

    assert snapshot.shift.total_transactions == 1
    assert snapshot.shift.total_sales == 3600
    assert snapshot.last_refresh_error is None


def test_refresh_takes_newer_remote_counters(manager, shift_client) -> None:
    _start(manager)
    shift_id = manager.shift.id
    shift_client.shifts[shift_id] = shift_client.shifts[shift_id].model_copy(
        update={"total_transactions": 4, "total_sales": 9000}
    )

    asyncio.run(manager.refresh())

    assert manager.shift.total_transactions == 4
    assert manager.shift.total_sales == 9000


def test_refresh_failure_keeps_state(manager, shift_client) -> None:
    _start(manager)
    shift_client.fail_get_active = api_error(ServerError, 503, "Unavailable")

    snapshot = asyncio.run(manager.refresh())

    assert snapshot.shift is not None and snapshot.shift.is_active
    assert "Unavailable" in (snapshot.last_refresh_error or "")


def test_refresh_never_reopens_ended_shift(manager, shift_client) -> None:
    _start(manager)
    active = manager.shift
    asyncio.run(manager.end_shift("100.00"))
    shift_client.seed_active(active)

    asyncio.run(manager.refresh())

    assert manager.shift.status == ShiftStatus.ENDED


def test_counters_apply_once(manager) -> None:
    _start(manager)
    sale = make_sale(transaction_id="txn-1", shift_id=manager.shift.id)
    manager.record_sale(sale)
    manager.record_sale(sale)
    manager.record_void(sale, reverses_sale=True)
    manager.record_void(sale, reverses_sale=True)

    stats = manager.stats()
    assert stats.total_transactions == 0
    assert stats.total_sales == 0
    assert stats.total_voids == 1


def test_records_after_shift_end_still_count(manager) -> None:
    _start(manager)
    shift_id = manager.shift.id
    asyncio.run(manager.auto_end("Overtime limit reached"))

    refund = make_sale(transaction_id="ref-1", shift_id=shift_id).model_copy(update={"total": -1200})
    assert manager.record_refund(refund) is not None
    assert manager.record_refund(refund) is None
    assert manager.shift.status == ShiftStatus.ENDED
    assert manager.shift.total_refunds == 1200


def test_record_for_another_shift_is_ignored(manager) -> None:
    _start(manager)

    assert manager.record_sale(make_sale(transaction_id="txn-9", shift_id="shift-other")) is None
    assert manager.stats().total_transactions == 0


def test_reconcile_requires_ended_shift(manager, shift_client) -> None:
    _start(manager)
    with pytest.raises(ShiftNotEndedError):
        asyncio.run(manager.reconcile("100", manager_id="mgr-1"))


def test_reconcile_auto_ended_shift(manager, shift_client) -> None:
    _start(manager)
    asyncio.run(manager.auto_end("Overtime limit reached"))

    reconciled = asyncio.run(manager.reconcile("98.50", manager_id="mgr-1", manager_notes="Drawer short"))

    assert reconciled.final_cash_drawer == 9850
    assert reconciled.cash_variance == -150
    assert reconciled.reconciled_by == "mgr-1"
    assert not reconciled.requires_manager_review
    assert "counted £98.50. Drawer short" in (reconciled.notes or "")


def test_pending_reconciliation_lists_auto_ended_shifts(manager, shift_client) -> None:
    shift_client.shifts["shift-manual"] = Shift(
        id="shift-manual",
        cashier_id="cashier-2",
        business_id="biz-1",
        start_time=BASE_TIME - timedelta(days=1),
        end_time=BASE_TIME - timedelta(hours=16),
        status=ShiftStatus.ENDED,
    )
    _start(manager)
    asyncio.run(manager.auto_end("Overtime limit reached"))

    pending = asyncio.run(manager.pending_reconciliation())
    assert [shift.id for shift in pending] == [manager.shift.id]

    asyncio.run(manager.reconcile("100.00", manager_id="mgr-1"))
    assert asyncio.run(manager.pending_reconciliation()) == []


def test_cash_counts(manager, cash_drawer) -> None:
    _start(manager)

    opening = asyncio.run(manager.record_cash_count("100.00", CountType.OPENING))
    assert opening.discrepancy == 0

    manager.record_sale(make_sale(transaction_id="txn-1", shift_id=manager.shift.id))
    spot = asyncio.run(manager.record_cash_count("135.00", CountType.SPOT))
    assert spot.expected == 13600
    assert spot.discrepancy == -100

    asyncio.run(manager.end_shift("136.00"))
    with pytest.raises(NoActiveShiftError):
        asyncio.run(manager.record_cash_count("136.00", CountType.MID_SHIFT))
    closing = asyncio.run(manager.record_cash_count("136.00", CountType.CLOSING))
    assert closing.discrepancy == 0
    assert len(cash_drawer.counts) == 3

    listed = asyncio.run(manager.cash_counts())
    assert [count.count_type for count in listed] == [CountType.OPENING, CountType.SPOT, CountType.CLOSING]


def test_stats_without_shift(manager) -> None:
    with pytest.raises(NoActiveShiftError):
        manager.stats()


def test_evening_schedule_preferred_over_finished_one(manager, shift_client, clock) -> None:
    shift_client.schedule = make_schedule(BASE_TIME - timedelta(hours=6), hours=4, schedule_id="morning")
    asyncio.run(manager.refresh())
    shift_client.schedule = make_schedule(BASE_TIME + timedelta(hours=2), schedule_id="evening")
    asyncio.run(manager.refresh())
    assert manager.schedule.id == "evening"
