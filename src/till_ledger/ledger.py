"""Cash drawer arithmetic over shift counters.

Pure functions only: nothing here talks to the store or mutates a shift.
All amounts are pence.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from .clock import ensure_utc
from .models_shift import CashCountCreate, CountType, Shift
from .models_transactions import Transaction, TransactionStatus
from .money import divide_half_up

MIN_HOURS_WORKED = 0.1


@dataclass(frozen=True)
class DrawerSummary:
    starting_cash: int
    total_sales: int
    total_refunds: int
    total_transactions: int
    total_voids: int
    expected_cash: int
    final_cash_drawer: int | None
    cash_variance: int
    average_transaction: int
    net_sales: int


@dataclass(frozen=True)
class HourlyStats:
    last_hour: int
    current_hour: int
    average_per_hour: float


@dataclass(frozen=True)
class CloseOut:
    expected_cash_drawer: int
    final_cash_drawer: int
    cash_variance: int


def expected_cash(shift: Shift) -> int:
    """Starting float plus sales; refunds are tracked separately and never reduce it."""
    return shift.starting_cash + shift.total_sales


def cash_variance(shift: Shift) -> int:
    if shift.final_cash_drawer is None:
        return 0
    return shift.final_cash_drawer - expected_cash(shift)


def average_transaction(shift: Shift) -> int:
    if shift.total_transactions <= 0:
        return 0
    return divide_half_up(shift.total_sales, shift.total_transactions)


def net_sales(shift: Shift) -> int:
    return shift.total_sales - shift.total_refunds


def close_out(shift: Shift, final_cash_drawer: int) -> CloseOut:
    expected = expected_cash(shift)
    return CloseOut(
        expected_cash_drawer=expected,
        final_cash_drawer=final_cash_drawer,
        cash_variance=final_cash_drawer - expected,
    )


def build_cash_count(
    shift: Shift,
    *,
    count_type: CountType,
    counted: int,
    counted_by: str,
    timestamp: datetime,
    notes: str | None = None,
) -> CashCountCreate:
    # Opening counts are checked against the float, every later count against the running expectation.
    expected = shift.starting_cash if count_type == CountType.OPENING else expected_cash(shift)
    return CashCountCreate(
        shift_id=shift.id,
        count_type=count_type,
        expected=expected,
        counted=counted,
        discrepancy=counted - expected,
        counted_by=counted_by,
        notes=notes,
        timestamp=timestamp,
    )


def drawer_summary(shift: Shift) -> DrawerSummary:
    return DrawerSummary(
        starting_cash=shift.starting_cash,
        total_sales=shift.total_sales,
        total_refunds=shift.total_refunds,
        total_transactions=shift.total_transactions,
        total_voids=shift.total_voids,
        expected_cash=expected_cash(shift),
        final_cash_drawer=shift.final_cash_drawer,
        cash_variance=cash_variance(shift),
        average_transaction=average_transaction(shift),
        net_sales=net_sales(shift),
    )


def hourly_stats(shift: Shift, transactions: Iterable[Transaction], now: datetime) -> HourlyStats:
    """Completed-transaction throughput for ``shift`` as of ``now``.

    The average divides the shift's transaction counter by hours worked, which
    never drops below ``MIN_HOURS_WORKED``.
    """
    now = ensure_utc(now)
    hour_ago = now - timedelta(hours=1)
    hour_start = now.replace(minute=0, second=0, microsecond=0)
    last_hour = current_hour = 0
    for row in transactions:
        if row.shift_id != shift.id or row.status != TransactionStatus.COMPLETED:
            continue
        stamp = ensure_utc(row.timestamp)
        if hour_ago <= stamp <= now:
            last_hour += 1
        if hour_start <= stamp <= now:
            current_hour += 1
    hours = max((now - ensure_utc(shift.start_time)).total_seconds() / 3600, MIN_HOURS_WORKED)
    return HourlyStats(
        last_hour=last_hour,
        current_hour=current_hour,
        average_per_hour=round(shift.total_transactions / hours, 2),
    )
