from __future__ import annotations

import asyncio
from typing import Any

from . import ledger
from .cart import Cart
from .clients.cash_drawer_client import CashDrawerClient
from .clients.payment_client import PaymentClient
from .clients.printer_client import PrinterClient
from .clients.refund_client import RefundClient
from .clients.shift_client import ShiftClient
from .clients.transaction_client import TransactionClient
from .clock import Clock, SystemClock
from .config import LedgerPolicy
from .exceptions import NoActiveShiftError
from .ledger import HourlyStats
from .receipts import ReceiptWorkflow
from .refund_processor import RefundProcessor
from .session import TillSession
from .shift_manager import ShiftManager
from .shift_state import ShiftActionAvailability, shift_action_availability
from .shift_timing import evaluate_start
from .transaction_processor import PaymentSelection, SaleResult, TransactionProcessor
from .watchdog import Sleep, Watchdog


class TillCore:
    """Wires the shift manager, processors, receipts and watchdog for one cashier.

    The UI layer reads ``snapshot()`` and dispatches into the components; it
    never holds counters of its own.
    """

    def __init__(
        self,
        *,
        shifts: ShiftClient,
        transactions: TransactionClient,
        refunds: RefundClient,
        payments: PaymentClient,
        printer: PrinterClient,
        cash_drawer: CashDrawerClient | None,
        cashier_id: str,
        business_id: str,
        policy: LedgerPolicy | None = None,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
        device_id: str | None = None,
    ) -> None:
        self.policy = policy or LedgerPolicy()
        self.clock = clock or SystemClock()
        self.cart = Cart(business_id=business_id)
        self.shifts = ShiftManager(
            shifts,
            cashier_id=cashier_id,
            business_id=business_id,
            cash_drawer=cash_drawer,
            clock=self.clock,
            policy=self.policy,
            device_id=device_id,
        )
        self.receipts = ReceiptWorkflow(printer, refunds, policy=self.policy, sleep=sleep)
        self.sales = TransactionProcessor(
            self.shifts, transactions, payments, self.receipts, clock=self.clock, policy=self.policy
        )
        self.refunds = RefundProcessor(
            self.shifts, refunds, transactions, receipts=self.receipts, clock=self.clock, policy=self.policy
        )
        self.watchdog = Watchdog(self.shifts, clock=self.clock, policy=self.policy, sleep=sleep)

    @classmethod
    def from_session(
        cls,
        session: TillSession,
        *,
        cashier_id: str,
        business_id: str,
        policy: LedgerPolicy | None = None,
        clock: Clock | None = None,
    ) -> "TillCore":
        return cls(
            shifts=session.shift_client(),
            transactions=session.transaction_client(),
            refunds=session.refund_client(),
            payments=session.payment_client(),
            printer=session.printer_client(),
            cash_drawer=session.cash_drawer_client(),
            cashier_id=cashier_id,
            business_id=business_id,
            policy=policy,
            clock=clock,
            device_id=session.config.device_id,
        )

    async def start(self) -> None:
        await self.shifts.refresh()
        self.watchdog.start()

    async def close(self) -> None:
        await self.watchdog.stop()

    async def checkout(self, payment: PaymentSelection) -> SaleResult:
        return await self.sales.complete(self.cart, payment)

    async def hourly_stats(self) -> HourlyStats:
        rows = await self.refunds.shift_transactions()
        shift = self.shifts.shift
        if shift is None:
            raise NoActiveShiftError("There is no shift to report on")
        return ledger.hourly_stats(shift, rows, self.clock.now())

    def actions(self, *, is_manager: bool = False) -> ShiftActionAvailability:
        eligibility = None
        if not self.shifts.is_active:
            eligibility = evaluate_start(self.shifts.schedule, self.clock.now(), self.policy)
        return shift_action_availability(
            self.shifts.phase,
            start_eligibility=eligibility,
            sale_in_progress=self.sales.sale_in_progress or self.sales.pending is not None,
            requires_manager_review=self.shifts.snapshot().requires_manager_review,
            is_manager=is_manager,
        )

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view of everything the UI renders."""
        shift_view = self.shifts.snapshot()
        pending = self.sales.pending
        return {
            "phase": shift_view.phase.value,
            "shift": shift_view.shift.model_dump(mode="json") if shift_view.shift else None,
            "schedule": shift_view.schedule.model_dump(mode="json") if shift_view.schedule else None,
            "overtime": vars(shift_view.overtime) if shift_view.overtime else None,
            "summary": vars(shift_view.summary) if shift_view.summary else None,
            "requires_manager_review": shift_view.requires_manager_review,
            "last_refresh_at": shift_view.last_refresh_at.isoformat() if shift_view.last_refresh_at else None,
            "last_refresh_error": shift_view.last_refresh_error,
            "cart": self.cart.snapshot(),
            "pending_sale": pending.request.receipt_number if pending else None,
            "undelivered_receipts": sorted(self.receipts.undelivered),
            "actions": vars(self.actions()),
        }
