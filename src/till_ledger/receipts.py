from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .clients.printer_client import PrinterClient
from .clients.refund_client import RefundClient
from .config import LedgerPolicy
from .exceptions import ApiError, ReceiptDeliveryError
from .models_payments import PrinterStatus, ReceiptData, ReceiptLine
from .models_transactions import Transaction, TransactionType

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

PRINTER_OFFLINE_MESSAGE = "Printer offline. You can still complete the transaction and print later."


@dataclass(frozen=True)
class ReceiptOutcome:
    receipt_number: str
    printed: bool
    attempts: int
    message: str | None = None

    @property
    def skipped(self) -> bool:
        return not self.printed

    def as_error(self) -> ReceiptDeliveryError | None:
        if self.printed:
            return None
        return ReceiptDeliveryError(
            self.message or f"Receipt {self.receipt_number} was not printed",
            details={"receipt_number": self.receipt_number, "attempts": self.attempts},
        )


def build_receipt(
    transaction: Transaction,
    *,
    change: int | None = None,
    reprint: bool = False,
    currency: str = "GBP",
) -> ReceiptData:
    return ReceiptData(
        receipt_number=transaction.receipt_number,
        business_id=transaction.business_id,
        timestamp=transaction.timestamp,
        title="Refund" if transaction.type == TransactionType.REFUND else "Sale",
        lines=[
            ReceiptLine(
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in transaction.items
        ],
        subtotal=transaction.subtotal,
        tax=transaction.tax,
        total=transaction.total,
        payment_method=transaction.payment_method,
        cash_amount=transaction.cash_amount,
        card_amount=transaction.card_amount,
        change_amount=transaction.change_amount if change is None else change,
        currency=currency,
        reprint=reprint,
    )


class ReceiptWorkflow:
    """Prints receipts for committed transactions, keyed by their receipt number.

    Nothing here can undo a sale: printer problems end in a skipped receipt that
    stays listed in ``undelivered`` until a reprint succeeds.
    """

    def __init__(
        self,
        printer: PrinterClient,
        lookup: RefundClient,
        *,
        policy: LedgerPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._printer = printer
        self._lookup = lookup
        self.policy = policy or LedgerPolicy()
        self._sleep = sleep
        self.undelivered: dict[str, ReceiptOutcome] = {}

    async def printer_status(self) -> PrinterStatus | None:
        try:
            return await self._printer.get_status()
        except ApiError as exc:
            logger.warning("printer_status_unavailable", extra={"error": str(exc)})
            return None

    async def deliver(
        self,
        transaction: Transaction,
        *,
        change: int | None = None,
        reprint: bool = False,
    ) -> ReceiptOutcome:
        receipt = build_receipt(transaction, change=change, reprint=reprint, currency=self.policy.currency)
        status = await self.printer_status()
        if status is not None and not status.ready:
            outcome = ReceiptOutcome(
                receipt_number=receipt.receipt_number,
                printed=False,
                attempts=0,
                message=status.message or PRINTER_OFFLINE_MESSAGE,
            )
            return self._skip(outcome)

        attempts = self.policy.receipt_print_attempts
        last_message: str | None = None
        for attempt in range(attempts):
            try:
                result = await self._printer.print_receipt(receipt)
            except ApiError as exc:
                last_message = exc.message
            else:
                if result.ok:
                    self.undelivered.pop(receipt.receipt_number, None)
                    logger.info(
                        "receipt_printed",
                        extra={"receipt_number": receipt.receipt_number, "attempts": attempt + 1, "reprint": reprint},
                    )
                    return ReceiptOutcome(receipt_number=receipt.receipt_number, printed=True, attempts=attempt + 1)
                last_message = result.message
            if attempt < attempts - 1:
                await self._sleep(self.policy.receipt_retry_backoff_seconds * (2**attempt))

        outcome = ReceiptOutcome(
            receipt_number=receipt.receipt_number,
            printed=False,
            attempts=attempts,
            message=f"Receipt not printed after {attempts} attempts: {last_message or 'printer error'}",
        )
        return self._skip(outcome)

    async def reprint(self, receipt_number: str) -> ReceiptOutcome:
        transaction = await self._lookup.get_transaction_by_receipt(receipt_number)
        return await self.deliver(transaction, reprint=True)

    def _skip(self, outcome: ReceiptOutcome) -> ReceiptOutcome:
        self.undelivered[outcome.receipt_number] = outcome
        logger.warning(
            "receipt_skipped",
            extra={"receipt_number": outcome.receipt_number, "attempts": outcome.attempts, "reason": outcome.message},
        )
        return outcome
