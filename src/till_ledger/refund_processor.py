from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Mapping

from .audit import log_ledger_action
from .clients.refund_client import RefundClient
from .clients.transaction_client import TransactionClient
from .clock import Clock, ensure_utc
from .config import LedgerPolicy
from .exceptions import (
    CommitFailedError,
    LedgerValidationError,
    NoActiveShiftError,
    NotFoundError,
    RefundNotAllowedError,
    RefundQuantityError,
    ServerError,
    TransportError,
)
from .idempotency import REFUND_RECEIPT_PREFIX, new_idempotency_keys, new_receipt_number
from .models_transactions import (
    PaymentMethod,
    RefundCreateRequest,
    RefundItem,
    RefundLinePayload,
    RefundMethod,
    Transaction,
    TransactionItem,
    TransactionStatus,
    TransactionType,
)
from .money import divide_half_up
from .receipts import ReceiptOutcome, ReceiptWorkflow
from .shift_manager import ShiftManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundTotals:
    subtotal: int
    tax: int
    total: int


@dataclass(frozen=True)
class RefundResult:
    refund: Transaction
    original: Transaction
    totals: RefundTotals
    is_partial: bool
    receipt: ReceiptOutcome | None = None


def remaining_quantity(item: TransactionItem) -> int:
    return item.remaining_quantity


def refund_totals(original: Transaction, items: Iterable[RefundItem]) -> RefundTotals:
    """Refund tax follows the original sale's tax-to-subtotal ratio, rounded half-up."""
    subtotal = sum(item.refund_amount for item in items)
    tax = divide_half_up(subtotal * original.tax, original.subtotal) if original.subtotal else 0
    return RefundTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def resolve_refund_payment_method(method: RefundMethod, original: Transaction) -> PaymentMethod:
    if method == RefundMethod.ORIGINAL:
        return original.payment_method
    if method == RefundMethod.CARD:
        return PaymentMethod.CARD
    # Store credit settles through the drawer like cash.
    return PaymentMethod.CASH


def adjust_refund_quantity(current: int, delta: int, available: int) -> int:
    """Presentation-only stepper clamp; the processor itself never clamps."""
    if available < 1:
        return 0
    return max(1, min(current + delta, available))


def refund_items_for(
    original: Transaction,
    quantities: Mapping[str, int],
    *,
    reason: str | None = None,
    restockable: bool = True,
) -> list[RefundItem]:
    """Build refund lines from ``{item_id: quantity}`` selections on the original sale."""
    items: list[RefundItem] = []
    for item_id, quantity in quantities.items():
        line = original.item(item_id)
        if line is None:
            raise RefundQuantityError(f"Item {item_id} is not part of receipt {original.receipt_number}")
        items.append(
            RefundItem(
                original_item_id=line.id,
                product_id=line.product_id,
                product_name=line.product_name,
                refund_quantity=quantity,
                unit_price=line.unit_price,
                reason=reason,
                restockable=restockable,
            )
        )
    return items


def _allocate_tax(lines: list[RefundItem], total_tax: int) -> list[int]:
    subtotal = sum(line.refund_amount for line in lines)
    if not subtotal:
        return [0 for _ in lines]
    shares = [divide_half_up(line.refund_amount * total_tax, subtotal) for line in lines[:-1]]
    shares.append(total_tax - sum(shares))
    return shares


class RefundProcessor:
    def __init__(
        self,
        shift_manager: ShiftManager,
        refunds: RefundClient,
        transactions: TransactionClient,
        *,
        receipts: ReceiptWorkflow | None = None,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ) -> None:
        self._shift_manager = shift_manager
        self._refunds = refunds
        self._transactions = transactions
        self._receipts = receipts
        self.clock = clock or shift_manager.clock
        self.policy = policy or shift_manager.policy
        self._known: dict[str, Transaction] = {}

    async def find_transaction(self, receipt_or_id: str) -> Transaction:
        """Look a sale up by receipt number, falling back to its id."""
        key = receipt_or_id.strip()
        if not key:
            raise LedgerValidationError("Enter a receipt number or transaction id", details={"field": "receipt"})
        try:
            found = await self._refunds.get_transaction_by_receipt(key)
        except NotFoundError:
            found = await self._refunds.get_transaction_by_id(key)
        return self._remember(found)

    async def recent_transactions(self, limit: int | None = None) -> list[Transaction]:
        shift = self._shift_manager.require_active()
        rows = await self._transactions.recent(
            shift.business_id, limit=limit or self.policy.recent_transactions_limit
        )
        return [self._remember(row) for row in rows]

    async def shift_transactions(self, limit: int | None = None) -> list[Transaction]:
        """Completed transactions rung up on the held shift, newest first."""
        shift = self._shift_manager.shift
        if shift is None:
            raise NoActiveShiftError("There is no shift to list transactions for")
        rows = await self._transactions.recent(
            shift.business_id, shift_id=shift.id, limit=limit or self.policy.recent_transactions_limit
        )
        return [
            self._remember(row)
            for row in rows
            if row.shift_id == shift.id and row.status == TransactionStatus.COMPLETED
        ]

    async def refund(
        self,
        original_transaction_id: str,
        items: list[RefundItem],
        reason: str,
        method: RefundMethod = RefundMethod.ORIGINAL,
    ) -> RefundResult:
        shift = self._shift_manager.require_active()
        if not reason or not reason.strip():
            raise LedgerValidationError("A refund reason is required", details={"field": "reason"})
        if not items:
            raise LedgerValidationError("Select at least one item to refund", details={"field": "items"})

        original = self._remember(await self._refunds.get_transaction_by_id(original_transaction_id))
        self._check_refundable(original)
        requested = self._validate_lines(original, items)

        totals = refund_totals(original, items)
        is_partial = len(requested) < len(original.items) or any(
            requested[line.id] < line.quantity for line in original.items if line.id in requested
        )
        taxes = _allocate_tax(items, totals.tax)
        now = self.clock.now()
        keys = new_idempotency_keys()
        request = RefundCreateRequest(
            transaction_id=keys.transaction_id,
            receipt_number=new_receipt_number(REFUND_RECEIPT_PREFIX, now),
            original_transaction_id=original.id,
            shift_id=shift.id,
            business_id=original.business_id,
            cashier_id=shift.cashier_id,
            timestamp=now,
            items=[
                RefundLinePayload(
                    original_item_id=item.original_item_id,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=-item.refund_quantity,
                    unit_price=item.unit_price,
                    total_price=-item.refund_amount,
                    tax_amount=-tax,
                    reason=item.reason or reason,
                    restockable=item.restockable,
                )
                for item, tax in zip(items, taxes)
            ],
            subtotal=-totals.subtotal,
            tax=-totals.tax,
            total=-totals.total,
            payment_method=resolve_refund_payment_method(method, original),
            refund_method=method,
            refund_reason=reason.strip(),
            is_partial_refund=is_partial,
        )
        try:
            record = await self._refunds.create_refund(
                request, transaction_id=keys.transaction_id, idempotency_key=keys.idempotency_key
            )
        except (TransportError, ServerError) as exc:
            logger.error("refund_commit_failed", extra={"original_transaction_id": original.id})
            raise CommitFailedError(
                "Refund was not recorded; nothing was changed, try again",
                details={"original_transaction_id": original.id},
            ) from exc

        updated = self._apply_refunded_quantities(original, requested)
        self._shift_manager.record_refund(record)
        log_ledger_action(
            "refund_commit",
            outcome="success",
            shift_id=shift.id,
            cashier_id=shift.cashier_id,
            refund_id=record.id,
            original_transaction_id=original.id,
            original_shift_id=original.shift_id,
            total=record.total,
            refund_method=method.value,
            is_partial_refund=is_partial,
        )
        receipt = await self._receipts.deliver(record) if self._receipts is not None else None
        return RefundResult(refund=record, original=updated, totals=totals, is_partial=is_partial, receipt=receipt)

    def _check_refundable(self, original: Transaction) -> None:
        if original.type != TransactionType.SALE:
            raise RefundNotAllowedError("Only sales can be refunded", details={"type": original.type.value})
        if original.status != TransactionStatus.COMPLETED:
            raise RefundNotAllowedError(
                "Only completed sales can be refunded", details={"status": original.status.value}
            )
        age = ensure_utc(self.clock.now()) - ensure_utc(original.timestamp)
        if age > timedelta(days=self.policy.refund_window_days):
            raise RefundNotAllowedError(
                f"Refunds are only accepted within {self.policy.refund_window_days} days of purchase",
                details={"age_days": age.days},
            )

    def _validate_lines(self, original: Transaction, items: list[RefundItem]) -> dict[str, int]:
        requested: dict[str, int] = defaultdict(int)
        for item in items:
            line = original.item(item.original_item_id)
            if line is None:
                raise RefundQuantityError(
                    f"Item {item.product_name} is not part of receipt {original.receipt_number}",
                    details={"original_item_id": item.original_item_id},
                )
            if item.refund_quantity < 1:
                raise RefundQuantityError(
                    f"Refund quantity for {line.product_name} must be at least 1",
                    details={"original_item_id": line.id},
                )
            if item.unit_price != line.unit_price:
                raise LedgerValidationError(
                    f"Refund price for {line.product_name} does not match the original sale",
                    details={"original_item_id": line.id},
                )
            requested[line.id] += item.refund_quantity
        for line in original.items:
            quantity = requested.get(line.id, 0)
            if quantity > line.remaining_quantity:
                raise RefundQuantityError(
                    f"Cannot refund {quantity} of {line.product_name}. Only {line.remaining_quantity} available.",
                    details={
                        "original_item_id": line.id,
                        "requested": quantity,
                        "remaining": line.remaining_quantity,
                    },
                )
        return dict(requested)

    def _apply_refunded_quantities(self, original: Transaction, requested: Mapping[str, int]) -> Transaction:
        items = [
            line.model_copy(update={"refunded_quantity": line.refunded_quantity + requested.get(line.id, 0)})
            for line in original.items
        ]
        updated = original.model_copy(update={"items": items})
        self._known[updated.id] = updated
        return updated

    def _remember(self, transaction: Transaction) -> Transaction:
        """Keep refunded quantities monotonic when the store answers with an older copy."""
        known = self._known.get(transaction.id)
        if known is not None:
            items = []
            for line in transaction.items:
                local = known.item(line.id)
                if local is not None and local.refunded_quantity > line.refunded_quantity:
                    line = line.model_copy(update={"refunded_quantity": local.refunded_quantity})
                items.append(line)
            transaction = transaction.model_copy(update={"items": items})
        self._known[transaction.id] = transaction
        return transaction
