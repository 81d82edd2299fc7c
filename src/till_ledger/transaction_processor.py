from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .audit import log_ledger_action
from .cart import Cart
from .cash_validation import TenderResult, resolve_cash_tender, resolve_mixed_tender
from .clients.payment_client import PaymentClient
from .clients.transaction_client import TransactionClient
from .clock import Clock, minutes_between
from .config import LedgerPolicy
from .exceptions import (
    ApiError,
    CommitFailedError,
    LedgerValidationError,
    MissingContextError,
    PaymentCancelledError,
    PaymentDeclinedError,
    PaymentFailedError,
    PaymentRequiredError,
    SaleInProgressError,
    ServerError,
    TransportError,
    VoidNotAllowedError,
)
from .idempotency import SALE_RECEIPT_PREFIX, IdempotencyKeys, new_idempotency_keys, new_receipt_number
from .models_payments import PaymentIntent, PaymentIntentRequest, PaymentStatus
from .models_transactions import (
    PaymentMethod,
    Transaction,
    TransactionCreateRequest,
    TransactionStatus,
    TransactionType,
    VoidRequest,
)
from .receipts import ReceiptOutcome, ReceiptWorkflow
from .shift_manager import ShiftManager

logger = logging.getLogger(__name__)

CARD_METHODS = frozenset({PaymentMethod.CARD, PaymentMethod.MOBILE, PaymentMethod.MIXED})


@dataclass(frozen=True)
class PaymentSelection:
    method: PaymentMethod
    cash_amount: int | None = None

    @classmethod
    def cash(cls, amount: int) -> "PaymentSelection":
        return cls(PaymentMethod.CASH, cash_amount=amount)

    @classmethod
    def card(cls) -> "PaymentSelection":
        return cls(PaymentMethod.CARD)

    @classmethod
    def mobile(cls) -> "PaymentSelection":
        return cls(PaymentMethod.MOBILE)

    @classmethod
    def mixed(cls, cash_amount: int) -> "PaymentSelection":
        return cls(PaymentMethod.MIXED, cash_amount=cash_amount)


@dataclass(frozen=True)
class SaleResult:
    transaction: Transaction
    change: int
    receipt: ReceiptOutcome


@dataclass
class PendingSale:
    """A sale whose payment was taken but whose record the store has not confirmed."""

    request: TransactionCreateRequest
    keys: IdempotencyKeys
    cart: Cart
    change: int
    attempts: int = 1
    errors: list[str] = field(default_factory=list)

    @property
    def charged(self) -> bool:
        return self.request.card_amount is not None


class TransactionProcessor:
    def __init__(
        self,
        shift_manager: ShiftManager,
        transactions: TransactionClient,
        payments: PaymentClient,
        receipts: ReceiptWorkflow,
        *,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ) -> None:
        self._shift_manager = shift_manager
        self._transactions = transactions
        self._payments = payments
        self._receipts = receipts
        self.clock = clock or shift_manager.clock
        self.policy = policy or shift_manager.policy
        self._in_progress = False
        self._payment_task: asyncio.Task | None = None
        self._cancel_requested = False
        self.pending: PendingSale | None = None

    @property
    def sale_in_progress(self) -> bool:
        return self._in_progress

    @property
    def payment_in_flight(self) -> bool:
        return self._payment_task is not None and not self._payment_task.done()

    async def complete(self, cart: Cart, payment: PaymentSelection) -> SaleResult:
        """Take payment for ``cart`` and commit exactly one sale record.

        Validation and payment failures leave the cart and shift counters as
        they were. Once the store confirms the record the counters move and the
        cart is cleared; receipt problems after that point never undo the sale.
        """
        if self._in_progress:
            raise SaleInProgressError("Another sale is already being processed")
        if self.pending is not None:
            raise SaleInProgressError(
                "A previous sale is waiting to be recorded; retry it before starting a new one",
                details={"receipt_number": self.pending.request.receipt_number},
            )
        shift = self._shift_manager.require_active()
        cart.validate_for_checkout()
        business_id = cart.business_id or shift.business_id
        if not business_id:
            raise MissingContextError("Business context is missing")

        total = cart.total
        tender = self._resolve_tender(payment, total)
        now = self.clock.now()
        receipt_number = new_receipt_number(SALE_RECEIPT_PREFIX, now)
        keys = new_idempotency_keys()

        self._in_progress = True
        try:
            payment_reference = None
            if tender.card_amount:
                payment_reference = await self._charge(tender.card_amount, payment.method, receipt_number, business_id)
            request = TransactionCreateRequest(
                transaction_id=keys.transaction_id,
                receipt_number=receipt_number,
                shift_id=shift.id,
                business_id=business_id,
                cashier_id=shift.cashier_id,
                timestamp=now,
                items=cart.to_items(),
                subtotal=cart.subtotal,
                tax=cart.tax,
                total=total,
                payment_method=payment.method,
                cash_amount=tender.cash_amount,
                card_amount=tender.card_amount,
                change_amount=tender.change,
                payment_reference=payment_reference,
            )
            transaction = await self._commit(PendingSale(request=request, keys=keys, cart=cart, change=tender.change))
        finally:
            self._in_progress = False
        receipt = await self._receipts.deliver(transaction, change=tender.change)
        return SaleResult(transaction=transaction, change=tender.change, receipt=receipt)

    async def retry_commit(self) -> SaleResult:
        """Re-send the pending sale with its original receipt number and idempotency key.

        The sale stays on the shift it was rung up on, which may have ended since.
        """
        pending = self.pending
        if pending is None:
            raise SaleInProgressError("There is no sale waiting to be recorded")
        if self._in_progress:
            raise SaleInProgressError("Another sale is already being processed")
        self._in_progress = True
        try:
            pending.attempts += 1
            transaction = await self._commit(pending)
        finally:
            self._in_progress = False
        receipt = await self._receipts.deliver(transaction, change=pending.change)
        return SaleResult(transaction=transaction, change=pending.change, receipt=receipt)

    def abandon_pending(self, *, force: bool = False) -> None:
        """Drop a pending sale. A charged one needs ``force`` and is flagged for manager review."""
        pending = self.pending
        if pending is None:
            return
        if pending.charged and not force:
            raise SaleInProgressError(
                "The card was charged for this sale; retry recording it instead",
                details={"receipt_number": pending.request.receipt_number},
            )
        logger.warning("pending_sale_abandoned", extra={"receipt_number": pending.request.receipt_number})
        if pending.charged:
            log_ledger_action(
                "sale_abandoned_after_charge",
                outcome="abandoned",
                shift_id=pending.request.shift_id,
                cashier_id=pending.request.cashier_id,
                needs_manager_review=True,
                receipt_number=pending.request.receipt_number,
                card_amount=pending.request.card_amount,
                payment_reference=pending.request.payment_reference,
                errors=pending.errors,
            )
        self.pending = None

    def cancel_payment(self) -> bool:
        """Operator cancel for an in-flight card payment. Returns False when nothing is running."""
        if not self.payment_in_flight or self._payment_task is None:
            return False
        self._cancel_requested = True
        self._payment_task.cancel()
        return True

    async def void(
        self,
        transaction_id: str,
        reason: str,
        *,
        manager_approval_id: str | None = None,
    ) -> Transaction:
        shift = self._shift_manager.require_active()
        if not reason or not reason.strip():
            raise LedgerValidationError("A reason is required to void a transaction", details={"field": "reason"})
        original = await self._transactions.get(transaction_id)
        if original.type != TransactionType.SALE or original.status != TransactionStatus.COMPLETED:
            raise VoidNotAllowedError(
                "Only completed sales can be voided",
                details={"status": original.status.value, "type": original.type.value},
            )
        now = self.clock.now()
        age = minutes_between(original.timestamp, now)
        if age > self.policy.void_window_minutes and not manager_approval_id:
            raise VoidNotAllowedError(
                f"Manager approval required to void transactions older than {self.policy.void_window_minutes} minutes",
                details={"requires_manager_approval": True, "age_minutes": int(age)},
            )
        if original.payment_method in CARD_METHODS and age > self.policy.card_settlement_minutes:
            raise VoidNotAllowedError(
                "Card payment may be settled; process a refund instead",
                details={"refund_required": True, "age_minutes": int(age)},
            )

        voided = await self._transactions.void(
            transaction_id,
            VoidRequest(
                shift_id=shift.id,
                reason=reason.strip(),
                manager_approval_id=manager_approval_id,
                voided_at=now,
            ),
        )
        self._shift_manager.record_void(voided, reverses_sale=original.shift_id == shift.id, shift_id=shift.id)
        log_ledger_action(
            "transaction_void",
            outcome="success",
            shift_id=shift.id,
            cashier_id=shift.cashier_id,
            transaction_id=transaction_id,
            receipt_number=original.receipt_number,
            total=original.total,
            manager_approval_id=manager_approval_id,
        )
        return voided

    def _resolve_tender(self, payment: PaymentSelection, total: int) -> TenderResult:
        if payment.method == PaymentMethod.CASH:
            return resolve_cash_tender(total, payment.cash_amount, self.policy.currency_symbol)
        if payment.method == PaymentMethod.MIXED:
            return resolve_mixed_tender(total, payment.cash_amount)
        return TenderResult(cash_amount=None, card_amount=total, change=0)

    async def _charge(self, amount: int, method: PaymentMethod, receipt_number: str, business_id: str) -> str:
        try:
            intent = await self._payments.create_intent(
                PaymentIntentRequest(
                    amount=amount,
                    currency=self.policy.currency,
                    method=PaymentMethod.CARD if method == PaymentMethod.MIXED else method,
                    reference=receipt_number,
                    business_id=business_id,
                )
            )
        except ApiError as exc:
            raise PaymentFailedError(f"Payment could not be started: {exc.message}") from exc

        self._cancel_requested = False
        self._payment_task = asyncio.ensure_future(self._payments.process_card_payment(intent.id))
        try:
            result = await self._payment_task
        except asyncio.CancelledError:
            operator_cancel = self._cancel_requested
            await self._cancel_intent(intent)
            if operator_cancel:
                logger.info("payment_cancelled", extra={"intent_id": intent.id, "receipt_number": receipt_number})
                raise PaymentCancelledError("Payment cancelled by operator") from None
            raise
        except PaymentRequiredError as exc:
            raise PaymentDeclinedError(exc.message or "Card declined", details={"intent_id": intent.id}) from exc
        except ApiError as exc:
            await self._cancel_intent(intent)
            raise PaymentFailedError(
                f"Payment failed: {exc.message}", details={"intent_id": intent.id}
            ) from exc
        finally:
            self._payment_task = None
            self._cancel_requested = False

        if result.status == PaymentStatus.DECLINED:
            raise PaymentDeclinedError(result.message or "Card declined", details={"intent_id": intent.id})
        if result.status == PaymentStatus.CANCELLED:
            raise PaymentCancelledError(result.message or "Payment cancelled", details={"intent_id": intent.id})
        if not result.succeeded:
            raise PaymentFailedError(result.message or "Payment failed", details={"intent_id": intent.id})
        return result.reference or intent.id

    async def _cancel_intent(self, intent: PaymentIntent) -> None:
        try:
            await self._payments.cancel_payment(intent.id)
        except ApiError as exc:
            logger.warning("payment_cancel_failed", extra={"intent_id": intent.id, "error": str(exc)})

    async def _commit(self, pending: PendingSale) -> Transaction:
        request = pending.request
        try:
            transaction = await self._transactions.create(
                request,
                transaction_id=pending.keys.transaction_id,
                idempotency_key=pending.keys.idempotency_key,
            )
        except (TransportError, ServerError) as exc:
            pending.errors.append(str(exc))
            self.pending = pending
            logger.error(
                "sale_commit_failed",
                extra={
                    "receipt_number": request.receipt_number,
                    "charged": pending.charged,
                    "attempts": pending.attempts,
                },
            )
            raise CommitFailedError(
                f"Sale {request.receipt_number} was not recorded; retry to save it",
                details={"receipt_number": request.receipt_number, "charged": pending.charged},
            ) from exc
        except ApiError as exc:
            if pending.charged:
                pending.errors.append(str(exc))
                self.pending = pending
            raise

        self.pending = None
        self._shift_manager.record_sale(transaction)
        pending.cart.clear()
        log_ledger_action(
            "sale_commit",
            outcome="success",
            shift_id=transaction.shift_id,
            cashier_id=request.cashier_id,
            transaction_id=transaction.id,
            receipt_number=transaction.receipt_number,
            total=transaction.total,
            payment_method=transaction.payment_method.value,
        )
        return transaction
