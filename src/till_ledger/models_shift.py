from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

AUTO_END_MARKER = "Auto-ended"
MANAGER_REVIEW_MARKER = "Requires manager approval"


class ScheduleStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    MISSED = "missed"


class ShiftStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class CountType(str, Enum):
    OPENING = "opening"
    MID_SHIFT = "mid_shift"
    CLOSING = "closing"
    SPOT = "spot"


class Schedule(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    staff_id: str
    business_id: str | None = None
    start_time: datetime
    end_time: datetime
    status: ScheduleStatus = ScheduleStatus.UPCOMING


class Shift(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    schedule_id: str | None = None
    cashier_id: str
    business_id: str
    start_time: datetime
    end_time: datetime | None = None
    status: ShiftStatus = ShiftStatus.ACTIVE
    starting_cash: int = 0
    final_cash_drawer: int | None = None
    expected_cash_drawer: int | None = None
    cash_variance: int | None = None
    total_sales: int = 0
    total_transactions: int = 0
    total_refunds: int = 0
    total_voids: int = 0
    notes: str | None = None
    device_id: str | None = None
    reconciled_by: str | None = None
    reconciled_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ShiftStatus.ACTIVE

    @property
    def auto_ended(self) -> bool:
        return AUTO_END_MARKER in (self.notes or "")

    @property
    def requires_manager_review(self) -> bool:
        return self.auto_ended and self.reconciled_at is None


class ActiveShiftResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    shift: Shift | None = None


class ShiftListResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    rows: list[Shift]


class TodayScheduleResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    schedule: Schedule | None = None


class ShiftStartRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_id: str | None = None
    schedule_id: str | None = None
    cashier_id: str
    business_id: str
    starting_cash: int
    start_time: datetime | None = None
    notes: str | None = None
    device_id: str | None = None


class ShiftEndRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    final_cash_drawer: int
    expected_cash_drawer: int
    cash_variance: int
    total_sales: int
    total_transactions: int
    total_refunds: int
    total_voids: int
    end_time: datetime
    notes: str | None = None
    auto_ended: bool = False


class ShiftStats(BaseModel):
    model_config = ConfigDict(extra="allow")

    total_transactions: int = 0
    total_sales: int = 0
    total_refunds: int = 0
    total_voids: int = 0


class ShiftReconcileRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    final_cash_drawer: int
    cash_variance: int
    manager_id: str
    notes: str | None = None
    reconciled_at: datetime


class ScheduleStatusUpdate(BaseModel):
    status: ScheduleStatus


class CashCountCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    shift_id: str
    count_type: CountType
    expected: int
    counted: int
    discrepancy: int
    counted_by: str
    notes: str | None = None
    timestamp: datetime


class CashCount(CashCountCreate):
    id: str | None = None


class CashCountListResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    rows: list[CashCount]
