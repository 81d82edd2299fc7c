from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class AuthError(ApiError):
    """Authentication failed or the device token is invalid."""


class PermissionError(ApiError):
    """The cashier is not allowed to perform the operation."""


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class PaymentRequiredError(ApiError):
    """402 from the payment service: the card was declined."""


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class ShiftClosedError(ConflictError):
    """The store already holds the shift as ended."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


@dataclass
class LedgerError(Exception):
    """Base for errors raised by the ledger core before or around a commit."""

    message: str
    details: object | None = None

    code: ClassVar[str] = "LEDGER_ERROR"
    category: ClassVar[str] = "validation"
    retryable: ClassVar[bool] = False

    def __str__(self) -> str:
        return self.message


class LedgerValidationError(LedgerError):
    code = "VALIDATION_ERROR"


class InvalidAmountError(LedgerValidationError):
    code = "INVALID_AMOUNT"


@dataclass
class InsufficientCashError(LedgerValidationError):
    shortfall: int = 0

    code: ClassVar[str] = "INSUFFICIENT_CASH"


class EmptyCartError(LedgerValidationError):
    code = "EMPTY_CART"


class InvalidCartLineError(LedgerValidationError):
    code = "INVALID_CART_LINE"


class RefundQuantityError(LedgerValidationError):
    code = "REFUND_QUANTITY_EXCEEDED"


class MissingContextError(LedgerValidationError):
    code = "MISSING_CONTEXT"


class PreconditionError(LedgerError):
    code = "PRECONDITION_FAILED"
    category = "precondition"


class NoActiveShiftError(PreconditionError):
    code = "NO_ACTIVE_SHIFT"


class ShiftAlreadyActiveError(PreconditionError):
    code = "SHIFT_ALREADY_ACTIVE"


class ShiftAlreadyEndedError(PreconditionError):
    code = "SHIFT_ALREADY_ENDED"


class ShiftNotEndedError(PreconditionError):
    code = "SHIFT_NOT_ENDED"


class NoScheduleError(PreconditionError):
    code = "NO_SCHEDULE"


@dataclass
class StartTooEarlyError(PreconditionError):
    minutes_until_eligible: int = 0
    minutes_until_start: int = 0

    code: ClassVar[str] = "START_TOO_EARLY"


@dataclass
class LateStartConfirmationRequired(PreconditionError):
    minutes_late: int = 0

    code: ClassVar[str] = "LATE_START_CONFIRMATION_REQUIRED"


class ScheduleEndedError(PreconditionError):
    code = "SCHEDULE_ENDED"


class SaleInProgressError(PreconditionError):
    code = "SALE_IN_PROGRESS"


class VoidNotAllowedError(PreconditionError):
    code = "VOID_NOT_ALLOWED"


class RefundNotAllowedError(PreconditionError):
    code = "REFUND_NOT_ALLOWED"


class CollaboratorError(LedgerError):
    code = "COLLABORATOR_FAILURE"
    category = "collaborator"
    retryable = True


class PaymentDeclinedError(CollaboratorError):
    code = "PAYMENT_DECLINED"


class PaymentCancelledError(CollaboratorError):
    code = "PAYMENT_CANCELLED"


class PaymentFailedError(CollaboratorError):
    code = "PAYMENT_FAILED"


class CommitFailedError(CollaboratorError):
    """The record was not confirmed by the store; retry with the same keys."""

    code = "COMMIT_FAILED"


class ReceiptDeliveryError(CollaboratorError):
    code = "RECEIPT_NOT_DELIVERED"
