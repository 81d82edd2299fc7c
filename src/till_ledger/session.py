from __future__ import annotations

from dataclasses import dataclass

import httpx

from .clients.cash_drawer_client import CashDrawerClient
from .clients.payment_client import PaymentClient
from .clients.printer_client import PrinterClient
from .clients.refund_client import RefundClient
from .clients.shift_client import ShiftClient
from .clients.transaction_client import TransactionClient
from .config import ClientConfig
from .http_client import HttpClient, TraceContext


@dataclass
class TillSession:
    """One device session: a shared HTTP client plus the collaborator clients built on it."""

    config: ClientConfig
    access_token: str | None = None
    business_id: str | None = None
    trace: TraceContext | None = None
    transport: httpx.AsyncBaseTransport | None = None
    http: HttpClient | None = None

    def __post_init__(self) -> None:
        self.trace = self.trace or TraceContext()
        if self.http is None:
            self.http = HttpClient(config=self.config, trace=self.trace, transport=self.transport)

    def _kwargs(self) -> dict[str, object]:
        return {
            "http": self.http,
            "access_token": self.access_token,
            "business_id": self.business_id,
            "device_id": self.config.device_id,
        }

    def shift_client(self) -> ShiftClient:
        return ShiftClient(**self._kwargs())

    def transaction_client(self) -> TransactionClient:
        return TransactionClient(**self._kwargs())

    def refund_client(self) -> RefundClient:
        return RefundClient(**self._kwargs())

    def payment_client(self) -> PaymentClient:
        return PaymentClient(**self._kwargs())

    def printer_client(self) -> PrinterClient:
        return PrinterClient(**self._kwargs())

    def cash_drawer_client(self) -> CashDrawerClient:
        return CashDrawerClient(**self._kwargs())

    async def aclose(self) -> None:
        if self.http is not None:
            await self.http.aclose()
