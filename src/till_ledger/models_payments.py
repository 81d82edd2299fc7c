from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .models_transactions import PaymentMethod


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    DECLINED = "declined"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    amount: int
    currency: str
    method: PaymentMethod
    reference: str
    business_id: str | None = None


class PaymentIntent(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    amount: int
    currency: str | None = None
    status: PaymentStatus = PaymentStatus.PENDING


class PaymentResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    intent_id: str
    status: PaymentStatus
    reference: str | None = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED


class PrinterStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    online: bool
    paper_ok: bool = True
    message: str | None = None

    @property
    def ready(self) -> bool:
        return self.online and self.paper_ok


class ReceiptLine(BaseModel):
    product_name: str
    quantity: int
    unit_price: int
    total_price: int


class ReceiptData(BaseModel):
    model_config = ConfigDict(extra="allow")

    receipt_number: str
    business_id: str
    timestamp: datetime
    title: str = "Sale"
    lines: list[ReceiptLine]
    subtotal: int
    tax: int
    total: int
    payment_method: PaymentMethod
    cash_amount: int | None = None
    card_amount: int | None = None
    change_amount: int | None = None
    currency: str = "GBP"
    reprint: bool = False


class PrintResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    ok: bool
    message: str | None = None
