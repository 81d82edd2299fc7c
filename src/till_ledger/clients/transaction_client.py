from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..idempotency import idempotency_headers, resolve_idempotency_keys
from ..models_transactions import (
    RecentTransactionsResponse,
    Transaction,
    TransactionCreateRequest,
    VoidRequest,
)
from .base import BaseClient, coerce_model


@dataclass
class TransactionClient(BaseClient):
    async def create(
        self,
        payload: TransactionCreateRequest | Mapping[str, Any],
        transaction_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> Transaction:
        request = coerce_model(payload, TransactionCreateRequest)
        keys = resolve_idempotency_keys(transaction_id or request.transaction_id, idempotency_key)
        request = request.model_copy(update={"transaction_id": keys.transaction_id})
        data = await self._request(
            "POST",
            "/pos/transactions",
            json_body=request.model_dump(mode="json", exclude_none=True),
            headers=idempotency_headers(keys),
            retry_mutation=True,
            module="transactions",
            operation="create",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected transaction response to be a JSON object")
        return Transaction.model_validate(data)

    async def get(self, transaction_id: str) -> Transaction:
        data = await self._request(
            "GET", f"/pos/transactions/{transaction_id}", module="transactions", operation="get"
        )
        if not isinstance(data, dict):
            raise ValueError("Expected transaction response to be a JSON object")
        return Transaction.model_validate(data)

    async def recent(
        self,
        business_id: str,
        *,
        shift_id: str | None = None,
        limit: int = 50,
    ) -> list[Transaction]:
        params = {key: value for key, value in {
            "business_id": business_id,
            "shift_id": shift_id,
            "limit": limit,
        }.items() if value is not None}
        data = await self._request(
            "GET", "/pos/transactions/recent", params=params, module="transactions", operation="recent"
        )
        if not isinstance(data, dict):
            raise ValueError("Expected recent transactions response to be a JSON object")
        return RecentTransactionsResponse.model_validate(data).rows

    async def void(
        self,
        transaction_id: str,
        payload: VoidRequest | Mapping[str, Any],
        idempotency_key: str | None = None,
    ) -> Transaction:
        request = coerce_model(payload, VoidRequest)
        keys = resolve_idempotency_keys(request.transaction_id, idempotency_key)
        request = request.model_copy(update={"transaction_id": keys.transaction_id})
        data = await self._request(
            "POST",
            f"/pos/transactions/{transaction_id}/void",
            json_body=request.model_dump(mode="json", exclude_none=True),
            headers=idempotency_headers(keys),
            retry_mutation=True,
            module="transactions",
            operation="void",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected void response to be a JSON object")
        return Transaction.model_validate(data)
