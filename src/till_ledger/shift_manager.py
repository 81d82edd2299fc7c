from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from . import ledger
from .audit import log_ledger_action
from .cash_validation import validate_starting_cash
from .clients.cash_drawer_client import CashDrawerClient
from .clients.shift_client import ShiftClient
from .clock import Clock, SystemClock, ensure_utc
from .config import LedgerPolicy
from .exceptions import (
    ApiError,
    ConflictError,
    LateStartConfirmationRequired,
    LedgerValidationError,
    MissingContextError,
    NoActiveShiftError,
    NoScheduleError,
    ScheduleEndedError,
    ShiftAlreadyActiveError,
    ShiftClosedError,
    ShiftNotEndedError,
    StartTooEarlyError,
)
from .ledger import DrawerSummary
from .models_shift import (
    AUTO_END_MARKER,
    MANAGER_REVIEW_MARKER,
    CashCount,
    CountType,
    Schedule,
    ScheduleStatus,
    Shift,
    ShiftEndRequest,
    ShiftReconcileRequest,
    ShiftStartRequest,
    ShiftStats,
    ShiftStatus,
)
from .models_transactions import Transaction
from .money import format_minor, parse_amount
from .shift_state import ShiftPhase, derive_phase
from .shift_timing import (
    OvertimeStatus,
    StartDecision,
    StartEligibility,
    evaluate_start,
    overtime_status,
    prefer_schedule,
    schedule_has_ended,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShiftStartResult:
    shift: Shift
    eligibility: StartEligibility
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ShiftEndResult:
    shift: Shift
    already_ended: bool = False
    auto_ended: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ShiftSnapshot:
    phase: ShiftPhase
    shift: Shift | None
    schedule: Schedule | None
    overtime: OvertimeStatus | None
    summary: DrawerSummary | None
    requires_manager_review: bool
    last_refresh_at: datetime | None
    last_refresh_error: str | None


def _is_behind(remote: Shift, local: Shift) -> bool:
    """True when the store has not yet seen every counter update applied locally.

    Sales add a transaction, voids move one into ``total_voids`` and refunds only
    grow ``total_refunds``, so these three quantities never decrease.
    """
    return (
        remote.total_transactions + remote.total_voids < local.total_transactions + local.total_voids
        or remote.total_voids < local.total_voids
        or remote.total_refunds < local.total_refunds
    )


class ShiftManager:
    """Owns the cashier's shift: start rules, counters, overtime and the single-writer end."""

    def __init__(
        self,
        shifts: ShiftClient,
        *,
        cashier_id: str,
        business_id: str,
        cash_drawer: CashDrawerClient | None = None,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
        device_id: str | None = None,
    ) -> None:
        self._shifts = shifts
        self._cash_drawer = cash_drawer
        self.cashier_id = cashier_id
        self.business_id = business_id
        self.device_id = device_id
        self.clock = clock or SystemClock()
        self.policy = policy or LedgerPolicy()
        self._shift: Shift | None = None
        self._schedule: Schedule | None = None
        self._end_lock = asyncio.Lock()
        self._applied: set[str] = set()
        self._overtime: OvertimeStatus | None = None
        self.last_refresh_at: datetime | None = None
        self.last_refresh_error: str | None = None

    @property
    def shift(self) -> Shift | None:
        return self._shift

    @property
    def schedule(self) -> Schedule | None:
        return self._schedule

    @property
    def is_active(self) -> bool:
        return self._shift is not None and self._shift.is_active

    @property
    def phase(self) -> ShiftPhase:
        return derive_phase(self._shift, self._overtime)

    def require_active(self) -> Shift:
        if self._shift is None or not self._shift.is_active:
            raise NoActiveShiftError("Start a shift before processing sales or refunds")
        return self._shift

    def stats(self) -> ShiftStats:
        shift = self.require_active()
        return ShiftStats(
            total_transactions=shift.total_transactions,
            total_sales=shift.total_sales,
            total_refunds=shift.total_refunds,
            total_voids=shift.total_voids,
        )

    async def refresh(self) -> ShiftSnapshot:
        """Re-read the active shift and today's schedule; failures keep the held state."""
        active, schedule = await asyncio.gather(
            self._shifts.get_active(self.cashier_id),
            self._shifts.get_today_schedule(self.cashier_id),
            return_exceptions=True,
        )
        errors: list[str] = []
        for result in (active, schedule):
            if isinstance(result, BaseException):
                if not isinstance(result, (ApiError, ValueError)):
                    raise result
                errors.append(str(result))
        if not isinstance(active, BaseException):
            self._merge_remote_shift(active)
        if not isinstance(schedule, BaseException):
            self._schedule = prefer_schedule(self._schedule, schedule, self.clock.now())
        self.last_refresh_at = self.clock.now()
        self.last_refresh_error = "; ".join(errors) or None
        if errors:
            logger.warning("shift_refresh_failed", extra={"cashier_id": self.cashier_id, "errors": errors})
        return self.snapshot()

    async def refresh_stats(self) -> ShiftStats:
        shift = self.require_active()
        remote = await self._shifts.get_stats(shift.id)
        merged = shift.model_copy(
            update={
                "total_transactions": remote.total_transactions,
                "total_sales": remote.total_sales,
                "total_refunds": remote.total_refunds,
                "total_voids": remote.total_voids,
            }
        )
        if not _is_behind(merged, shift):
            self._shift = merged
        return self.stats()

    def _merge_remote_shift(self, remote: Shift | None) -> None:
        local = self._shift
        if remote is None:
            if local is not None and local.is_active:
                logger.warning("active_shift_missing_remotely", extra={"shift_id": local.id})
                self._shift = None
            return
        if local is None or local.id != remote.id:
            if local is not None and local.is_active:
                logger.warning(
                    "active_shift_replaced_remotely",
                    extra={"shift_id": local.id, "remote_shift_id": remote.id},
                )
            self._shift = remote
            self._applied.clear()
            return
        if not local.is_active:
            return
        if _is_behind(remote, local):
            remote = remote.model_copy(
                update={
                    "total_sales": local.total_sales,
                    "total_transactions": local.total_transactions,
                    "total_refunds": local.total_refunds,
                    "total_voids": local.total_voids,
                }
            )
        self._shift = remote

    async def start_shift(
        self,
        starting_cash: object,
        *,
        confirm_late: bool = False,
        unscheduled: bool = False,
        notes: str | None = None,
    ) -> ShiftStartResult:
        cash_check = validate_starting_cash(starting_cash, self.policy)
        amount = cash_check.raise_for_issues()
        warnings = list(cash_check.warnings)

        if self.is_active:
            raise ShiftAlreadyActiveError("A shift is already active for this cashier")
        existing = await self._shifts.get_active(self.cashier_id)
        if existing is not None:
            self._shift = existing
            raise ShiftAlreadyActiveError(
                "A shift is already active for this cashier", details={"shift_id": existing.id}
            )

        fetched = await self._shifts.get_today_schedule(self.cashier_id)
        now = self.clock.now()
        self._schedule = prefer_schedule(self._schedule, fetched, now)
        schedule = self._schedule
        eligibility = evaluate_start(schedule, now, self.policy)
        note_parts = [notes] if notes else []

        if eligibility.decision == StartDecision.NO_SCHEDULE:
            if not unscheduled:
                raise NoScheduleError(eligibility.reason or "No shift is scheduled for today")
            schedule = None
            note_parts.append("Unscheduled shift")
        elif eligibility.decision == StartDecision.INVALID_SCHEDULE:
            raise LedgerValidationError(eligibility.reason or "Schedule is invalid")
        elif eligibility.decision == StartDecision.SCHEDULE_ENDED:
            raise ScheduleEndedError(eligibility.reason or "Scheduled shift has ended")
        elif eligibility.decision == StartDecision.TOO_EARLY:
            raise StartTooEarlyError(
                eligibility.reason or "Too early to start",
                minutes_until_eligible=eligibility.minutes_until_eligible,
                minutes_until_start=eligibility.minutes_until_start,
            )
        elif eligibility.decision == StartDecision.LATE:
            if not confirm_late:
                raise LateStartConfirmationRequired(
                    f"Shift started {eligibility.minutes_late} minutes late; confirm to continue",
                    minutes_late=eligibility.minutes_late,
                )
            note_parts.append(f"Late start: {eligibility.minutes_late} minutes late")

        request = ShiftStartRequest(
            schedule_id=schedule.id if schedule else None,
            cashier_id=self.cashier_id,
            business_id=self.business_id,
            starting_cash=amount,
            start_time=now,
            notes="; ".join(note_parts) or None,
            device_id=self.device_id,
        )
        try:
            shift = await self._shifts.start(request)
        except ConflictError as exc:
            raise ShiftAlreadyActiveError(
                "The store already holds an active shift for this cashier",
                details={"trace_id": exc.trace_id},
            ) from exc

        self._shift = shift.model_copy(
            update={"total_sales": 0, "total_transactions": 0, "total_refunds": 0, "total_voids": 0}
        )
        self._applied.clear()
        self._overtime = None
        if schedule is not None:
            warning = await self._set_schedule_status(schedule, ScheduleStatus.ACTIVE)
            if warning:
                warnings.append(warning)

        logger.info(
            "shift_started",
            extra={"shift_id": shift.id, "cashier_id": self.cashier_id, "decision": eligibility.decision.value},
        )
        log_ledger_action(
            "shift_start",
            outcome="success",
            shift_id=shift.id,
            cashier_id=self.cashier_id,
            starting_cash=amount,
            minutes_late=eligibility.minutes_late or None,
        )
        return ShiftStartResult(shift=self._shift, eligibility=eligibility, warnings=warnings)

    async def end_shift(self, final_cash_drawer: object, *, notes: str | None = None) -> ShiftEndResult:
        final = parse_amount(final_cash_drawer, field="final_cash_drawer")
        return await self._end(final, notes=notes, auto=False)

    async def auto_end(self, reason: str) -> ShiftEndResult:
        """Close an overdue shift using the expected drawer as an estimated count."""
        note = f"{AUTO_END_MARKER}: {reason}. {MANAGER_REVIEW_MARKER}; final cash is an estimate, not a count."
        return await self._end(None, notes=note, auto=True)

    async def _end(self, final: int | None, *, notes: str | None, auto: bool) -> ShiftEndResult:
        async with self._end_lock:
            shift = self._shift
            if shift is None:
                raise NoActiveShiftError("There is no shift to end")
            if not shift.is_active:
                return ShiftEndResult(shift=shift, already_ended=True, auto_ended=shift.auto_ended)

            expected = ledger.expected_cash(shift)
            close = ledger.close_out(shift, expected if final is None else final)
            combined_notes = "; ".join(part for part in (shift.notes, notes) if part) or None
            request = ShiftEndRequest(
                final_cash_drawer=close.final_cash_drawer,
                expected_cash_drawer=close.expected_cash_drawer,
                cash_variance=close.cash_variance,
                total_sales=shift.total_sales,
                total_transactions=shift.total_transactions,
                total_refunds=shift.total_refunds,
                total_voids=shift.total_voids,
                end_time=self.clock.now(),
                notes=combined_notes,
                auto_ended=auto,
            )
            already_ended = False
            try:
                ended = await self._shifts.end(shift.id, request)
            except ShiftClosedError:
                ended = await self._shifts.get(shift.id)
                already_ended = True
            if ended.status != ShiftStatus.ENDED:
                ended = ended.model_copy(update={"status": ShiftStatus.ENDED})
            self._shift = ended
            self._overtime = None

        warnings: list[str] = []
        if self._schedule is not None and ended.schedule_id == self._schedule.id:
            warning = await self._set_schedule_status(self._schedule, ScheduleStatus.COMPLETED)
            if warning:
                warnings.append(warning)

        logger.info(
            "shift_ended",
            extra={
                "shift_id": ended.id,
                "auto_ended": auto,
                "already_ended": already_ended,
                "cash_variance": close.cash_variance,
            },
        )
        log_ledger_action(
            "shift_auto_end" if auto else "shift_end",
            outcome="already_ended" if already_ended else "success",
            shift_id=ended.id,
            cashier_id=self.cashier_id,
            needs_manager_review=auto,
            expected_cash_drawer=close.expected_cash_drawer,
            final_cash_drawer=close.final_cash_drawer,
            cash_variance=close.cash_variance,
            final_is_estimate=auto,
        )
        return ShiftEndResult(shift=ended, already_ended=already_ended, auto_ended=auto, warnings=warnings)

    async def check_overtime(self) -> OvertimeStatus | None:
        if not self.is_active or self._shift is None:
            self._overtime = None
            return None
        shift = self._shift
        status = overtime_status(shift, self._schedule, self.clock.now(), self.policy)
        if status.auto_end:
            logger.warning(
                "shift_overtime_auto_end",
                extra={"shift_id": shift.id, "overtime_minutes": status.overtime_minutes},
            )
            await self.auto_end(status.reason or "Overtime limit reached")
            return status
        if status.warning and not (self._overtime and self._overtime.warning):
            logger.warning(
                "shift_overtime_warning",
                extra={"shift_id": shift.id, "overtime_minutes": status.overtime_minutes},
            )
        self._overtime = status
        return status

    async def check_missed_schedule(self) -> Schedule | None:
        schedule = self._schedule
        if schedule is None or schedule.status != ScheduleStatus.UPCOMING:
            return None
        if self._shift is not None and self._shift.schedule_id == schedule.id:
            return None
        if not schedule_has_ended(schedule, self.clock.now()):
            return None
        updated = await self._shifts.update_schedule_status(schedule.id, ScheduleStatus.MISSED)
        self._schedule = updated
        logger.info("schedule_missed", extra={"schedule_id": schedule.id, "cashier_id": self.cashier_id})
        return updated

    async def reconcile(self, actual_cash: object, *, manager_id: str, manager_notes: str | None = None) -> Shift:
        shift = self._shift
        if shift is None or shift.is_active:
            raise ShiftNotEndedError("Only an ended shift can be reconciled")
        if not manager_id:
            raise MissingContextError("A manager id is required to reconcile a shift")
        counted = parse_amount(actual_cash, field="actual_cash")
        expected = shift.expected_cash_drawer
        if expected is None:
            expected = ledger.expected_cash(shift)
        variance = counted - expected
        note = f"Reconciled by manager {manager_id}: counted {format_minor(counted, self.policy.currency_symbol)}"
        if manager_notes:
            note = f"{note}. {manager_notes}"
        reconciled = await self._shifts.reconcile(
            shift.id,
            ShiftReconcileRequest(
                final_cash_drawer=counted,
                cash_variance=variance,
                manager_id=manager_id,
                notes="; ".join(part for part in (shift.notes, note) if part),
                reconciled_at=self.clock.now(),
            ),
        )
        self._shift = reconciled
        log_ledger_action(
            "shift_reconcile",
            outcome="success",
            shift_id=shift.id,
            cashier_id=shift.cashier_id,
            manager_id=manager_id,
            final_cash_drawer=counted,
            cash_variance=variance,
        )
        return reconciled

    async def record_cash_count(
        self,
        counted: object,
        count_type: CountType,
        *,
        notes: str | None = None,
        counted_by: str | None = None,
    ) -> CashCount:
        if self._cash_drawer is None:
            raise MissingContextError("Cash drawer service is not configured")
        shift = self._shift
        if shift is None:
            raise NoActiveShiftError("There is no shift to count")
        if not shift.is_active and count_type != CountType.CLOSING:
            raise NoActiveShiftError("Only a closing count can be taken after the shift ends")
        amount = parse_amount(counted, field="counted")
        payload = ledger.build_cash_count(
            shift,
            count_type=count_type,
            counted=amount,
            counted_by=counted_by or self.cashier_id,
            timestamp=self.clock.now(),
            notes=notes,
        )
        count = await self._cash_drawer.create_count(payload)
        if count.discrepancy != 0:
            logger.warning(
                "cash_count_discrepancy",
                extra={"shift_id": shift.id, "count_type": count_type.value, "discrepancy": count.discrepancy},
            )
        return count

    async def cash_counts(self) -> list[CashCount]:
        if self._cash_drawer is None:
            raise MissingContextError("Cash drawer service is not configured")
        shift = self._shift
        if shift is None:
            raise NoActiveShiftError("There is no shift to list cash counts for")
        return await self._cash_drawer.list_counts(shift.id)

    async def pending_reconciliation(self) -> list[Shift]:
        """Auto-ended shifts of this business still waiting on a manager count, newest first."""
        rows = await self._shifts.list_pending_reconciliation(self.business_id)
        pending = [row for row in rows if not row.is_active and row.requires_manager_review]
        return sorted(pending, key=lambda row: ensure_utc(row.end_time or row.start_time), reverse=True)

    def record_sale(self, transaction: Transaction) -> Shift | None:
        shift = self._counted_shift("sale", transaction, transaction.shift_id)
        if shift is None:
            return None
        self._shift = shift.model_copy(
            update={
                "total_sales": shift.total_sales + transaction.total,
                "total_transactions": shift.total_transactions + 1,
            }
        )
        return self._shift

    def record_refund(self, refund: Transaction) -> Shift | None:
        shift = self._counted_shift("refund", refund, refund.shift_id)
        if shift is None:
            return None
        self._shift = shift.model_copy(update={"total_refunds": shift.total_refunds + abs(refund.total)})
        return self._shift

    def record_void(self, voided: Transaction, *, reverses_sale: bool, shift_id: str | None = None) -> Shift | None:
        """Count a void against the processing shift; a sale from that shift also leaves the sales totals."""
        target = shift_id or (self._shift.id if self._shift else voided.shift_id)
        shift = self._counted_shift("void", voided, target)
        if shift is None:
            return None
        update = {"total_voids": shift.total_voids + 1}
        if reverses_sale:
            update["total_sales"] = shift.total_sales - voided.total
            update["total_transactions"] = max(shift.total_transactions - 1, 0)
        self._shift = shift.model_copy(update=update)
        return self._shift

    def _counted_shift(self, kind: str, transaction: Transaction, shift_id: str) -> Shift | None:
        """The held shift a committed record counts against, or None when it was already counted.

        Runs after the store has accepted the record, so it never raises. A record
        landing after its shift ended is still counted and flagged for review.
        """
        key = f"{kind}:{transaction.id}"
        if key in self._applied:
            return None
        shift = self._shift
        if shift is None or shift.id != shift_id:
            logger.warning(
                "counter_update_for_unheld_shift",
                extra={"kind": kind, "transaction_id": transaction.id, "shift_id": shift_id},
            )
            return None
        self._applied.add(key)
        if not shift.is_active:
            logger.warning(
                "counter_update_after_shift_end",
                extra={"kind": kind, "transaction_id": transaction.id, "shift_id": shift.id},
            )
            log_ledger_action(
                f"{kind}_after_shift_end",
                outcome="counted",
                shift_id=shift.id,
                cashier_id=shift.cashier_id,
                needs_manager_review=True,
                transaction_id=transaction.id,
                receipt_number=transaction.receipt_number,
                total=transaction.total,
            )
        return shift

    def snapshot(self) -> ShiftSnapshot:
        shift = self._shift
        return ShiftSnapshot(
            phase=self.phase,
            shift=shift,
            schedule=self._schedule,
            overtime=self._overtime,
            summary=ledger.drawer_summary(shift) if shift else None,
            requires_manager_review=bool(shift and shift.requires_manager_review),
            last_refresh_at=self.last_refresh_at,
            last_refresh_error=self.last_refresh_error,
        )

    async def _set_schedule_status(self, schedule: Schedule, status: ScheduleStatus) -> str | None:
        try:
            self._schedule = await self._shifts.update_schedule_status(schedule.id, status)
        except ApiError as exc:
            logger.warning(
                "schedule_status_update_failed",
                extra={"schedule_id": schedule.id, "status": status.value, "trace_id": exc.trace_id},
            )
            self._schedule = schedule.model_copy(update={"status": status})
            return f"Schedule could not be marked {status.value}: {exc.message}"
        return None
