from .cash_drawer_client import CashDrawerClient
from .payment_client import PaymentClient
from .printer_client import PrinterClient
from .refund_client import RefundClient
from .shift_client import ShiftClient
from .transaction_client import TransactionClient

__all__ = [
    "CashDrawerClient",
    "PaymentClient",
    "PrinterClient",
    "RefundClient",
    "ShiftClient",
    "TransactionClient",
]
