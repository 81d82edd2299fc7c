from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

from ..idempotency import idempotency_headers, resolve_idempotency_keys
from ..models_transactions import RefundCreateRequest, Transaction
from .base import BaseClient, coerce_model


@dataclass
class RefundClient(BaseClient):
    async def get_transaction_by_receipt(self, receipt_number: str) -> Transaction:
        data = await self._request(
            "GET",
            f"/pos/refunds/transactions/by-receipt/{quote(receipt_number, safe='')}",
            module="refunds",
            operation="get_transaction_by_receipt",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected transaction response to be a JSON object")
        return Transaction.model_validate(data)

    async def get_transaction_by_id(self, transaction_id: str) -> Transaction:
        data = await self._request(
            "GET",
            f"/pos/refunds/transactions/{quote(transaction_id, safe='')}",
            module="refunds",
            operation="get_transaction_by_id",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected transaction response to be a JSON object")
        return Transaction.model_validate(data)

    async def create_refund(
        self,
        payload: RefundCreateRequest | Mapping[str, Any],
        transaction_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> Transaction:
        request = coerce_model(payload, RefundCreateRequest)
        keys = resolve_idempotency_keys(transaction_id or request.transaction_id, idempotency_key)
        request = request.model_copy(update={"transaction_id": keys.transaction_id})
        data = await self._request(
            "POST",
            "/pos/refunds",
            json_body=request.model_dump(mode="json", exclude_none=True),
            headers=idempotency_headers(keys),
            retry_mutation=True,
            module="refunds",
            operation="create_refund",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected refund response to be a JSON object")
        return Transaction.model_validate(data)
