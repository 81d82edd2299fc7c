from .cart import Cart, CartLine
from .config import ClientConfig, ConfigError, LedgerPolicy, load_config, load_policy
from .core import TillCore
from .exceptions import (
    ApiError,
    CollaboratorError,
    CommitFailedError,
    ConflictError,
    EmptyCartError,
    InsufficientCashError,
    InvalidAmountError,
    LateStartConfirmationRequired,
    LedgerError,
    LedgerValidationError,
    NoActiveShiftError,
    NoScheduleError,
    NotFoundError,
    PaymentCancelledError,
    PaymentDeclinedError,
    PaymentFailedError,
    PreconditionError,
    RefundNotAllowedError,
    RefundQuantityError,
    SaleInProgressError,
    ShiftAlreadyActiveError,
    StartTooEarlyError,
    TransportError,
    ValidationError,
    VoidNotAllowedError,
)
from .http_client import HttpClient, TraceContext
from .idempotency import IdempotencyKeys, new_idempotency_keys, new_receipt_number
from .ledger import (
    DrawerSummary,
    HourlyStats,
    average_transaction,
    cash_variance,
    drawer_summary,
    expected_cash,
    hourly_stats,
    net_sales,
)
from .models_shift import CashCount, CountType, Schedule, ScheduleStatus, Shift, ShiftStats, ShiftStatus
from .models_transactions import (
    PaymentMethod,
    RefundItem,
    RefundMethod,
    Transaction,
    TransactionItem,
    TransactionStatus,
    TransactionType,
)
from .money import format_minor, parse_amount, to_minor
from .receipts import ReceiptOutcome, ReceiptWorkflow
from .refund_processor import RefundProcessor, RefundResult, adjust_refund_quantity, refund_items_for
from .session import TillSession
from .shift_manager import ShiftEndResult, ShiftManager, ShiftSnapshot, ShiftStartResult
from .shift_state import ShiftActionAvailability, ShiftPhase, shift_action_availability
from .shift_timing import StartDecision, StartEligibility, evaluate_start, overtime_status
from .transaction_processor import PaymentSelection, SaleResult, TransactionProcessor
from .ui_errors import UserFacingError, to_user_facing_error
from .watchdog import Watchdog, WatchdogTick

__all__ = [
    "ApiError",
    "Cart",
    "CartLine",
    "CashCount",
    "ClientConfig",
    "CollaboratorError",
    "CommitFailedError",
    "ConfigError",
    "ConflictError",
    "CountType",
    "DrawerSummary",
    "EmptyCartError",
    "HourlyStats",
    "HttpClient",
    "IdempotencyKeys",
    "InsufficientCashError",
    "InvalidAmountError",
    "LateStartConfirmationRequired",
    "LedgerError",
    "LedgerPolicy",
    "LedgerValidationError",
    "NoActiveShiftError",
    "NoScheduleError",
    "NotFoundError",
    "PaymentCancelledError",
    "PaymentDeclinedError",
    "PaymentFailedError",
    "PaymentMethod",
    "PaymentSelection",
    "PreconditionError",
    "ReceiptOutcome",
    "ReceiptWorkflow",
    "RefundItem",
    "RefundMethod",
    "RefundNotAllowedError",
    "RefundProcessor",
    "RefundQuantityError",
    "RefundResult",
    "SaleInProgressError",
    "SaleResult",
    "Schedule",
    "ScheduleStatus",
    "Shift",
    "ShiftActionAvailability",
    "ShiftAlreadyActiveError",
    "ShiftEndResult",
    "ShiftManager",
    "ShiftPhase",
    "ShiftSnapshot",
    "ShiftStartResult",
    "ShiftStats",
    "ShiftStatus",
    "StartDecision",
    "StartEligibility",
    "StartTooEarlyError",
    "TillCore",
    "TillSession",
    "TraceContext",
    "Transaction",
    "TransactionItem",
    "TransactionProcessor",
    "TransactionStatus",
    "TransactionType",
    "TransportError",
    "UserFacingError",
    "ValidationError",
    "VoidNotAllowedError",
    "Watchdog",
    "WatchdogTick",
    "adjust_refund_quantity",
    "average_transaction",
    "cash_variance",
    "drawer_summary",
    "evaluate_start",
    "expected_cash",
    "format_minor",
    "hourly_stats",
    "load_config",
    "load_policy",
    "net_sales",
    "new_idempotency_keys",
    "new_receipt_number",
    "overtime_status",
    "parse_amount",
    "refund_items_for",
    "shift_action_availability",
    "to_minor",
    "to_user_facing_error",
]
