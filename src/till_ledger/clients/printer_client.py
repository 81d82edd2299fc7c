from __future__ import annotations

from dataclasses import dataclass

from ..models_payments import PrinterStatus, PrintResult, ReceiptData
from .base import BaseClient


@dataclass
class PrinterClient(BaseClient):
    async def get_status(self) -> PrinterStatus:
        data = await self._request("GET", "/printer/status", module="printer", operation="get_status")
        if not isinstance(data, dict):
            raise ValueError("Expected printer status response to be a JSON object")
        return PrinterStatus.model_validate(data)

    async def print_receipt(self, receipt: ReceiptData) -> PrintResult:
        data = await self._request(
            "POST",
            "/printer/print",
            json_body=receipt.model_dump(mode="json", exclude_none=True),
            module="printer",
            operation="print",
        )
        if data is None:
            return PrintResult(ok=True)
        if not isinstance(data, dict):
            raise ValueError("Expected print response to be a JSON object")
        return PrintResult.model_validate(data)
