from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MOBILE = "mobile"
    MIXED = "mixed"


class TransactionType(str, Enum):
    SALE = "sale"
    REFUND = "refund"
    VOID = "void"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    VOIDED = "voided"


class RefundMethod(str, Enum):
    ORIGINAL = "original"
    CASH = "cash"
    CARD = "card"
    STORE_CREDIT = "store_credit"


class TransactionItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    total_price: int
    tax_amount: int = 0
    refunded_quantity: int = 0

    @model_validator(mode="after")
    def _check_refunded_quantity(self) -> "TransactionItem":
        if self.refunded_quantity < 0 or self.refunded_quantity > abs(self.quantity):
            raise ValueError(
                f"refunded_quantity {self.refunded_quantity} outside 0..{abs(self.quantity)} for item {self.id}"
            )
        return self

    @property
    def remaining_quantity(self) -> int:
        return max(self.quantity - self.refunded_quantity, 0)


class Transaction(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    receipt_number: str
    shift_id: str
    business_id: str
    cashier_id: str | None = None
    timestamp: datetime
    items: list[TransactionItem] = []
    subtotal: int
    tax: int = 0
    total: int
    payment_method: PaymentMethod
    cash_amount: int | None = None
    card_amount: int | None = None
    change_amount: int | None = None
    payment_reference: str | None = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    type: TransactionType = TransactionType.SALE
    original_transaction_id: str | None = None
    refund_reason: str | None = None
    refund_method: RefundMethod | None = None
    is_partial_refund: bool = False
    void_reason: str | None = None
    voided_at: datetime | None = None

    def item(self, item_id: str) -> TransactionItem | None:
        for line in self.items:
            if line.id == item_id:
                return line
        return None


class TransactionItemCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    total_price: int
    tax_amount: int = 0


class TransactionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_id: str | None = None
    receipt_number: str
    shift_id: str
    business_id: str
    cashier_id: str
    timestamp: datetime
    items: list[TransactionItemCreate]
    subtotal: int
    tax: int
    total: int
    payment_method: PaymentMethod
    cash_amount: int | None = None
    card_amount: int | None = None
    change_amount: int | None = None
    payment_reference: str | None = None
    type: TransactionType = TransactionType.SALE


class RecentTransactionsResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    rows: list[Transaction]
    total: int | None = None


class VoidRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_id: str | None = None
    shift_id: str
    reason: str
    manager_approval_id: str | None = None
    voided_at: datetime


class RefundItem(BaseModel):
    """One line the operator asked to refund, derived from a sold TransactionItem."""

    model_config = ConfigDict(extra="allow")

    original_item_id: str
    product_id: str
    product_name: str
    refund_quantity: int
    unit_price: int
    reason: str | None = None
    restockable: bool = True

    @property
    def refund_amount(self) -> int:
        return self.unit_price * self.refund_quantity


class RefundLinePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    original_item_id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    total_price: int
    tax_amount: int
    reason: str | None = None
    restockable: bool = True


class RefundCreateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_id: str | None = None
    receipt_number: str
    original_transaction_id: str
    shift_id: str
    business_id: str
    cashier_id: str
    timestamp: datetime
    items: list[RefundLinePayload]
    subtotal: int
    tax: int
    total: int
    payment_method: PaymentMethod
    refund_method: RefundMethod
    refund_reason: str
    is_partial_refund: bool
    type: TransactionType = TransactionType.REFUND
