from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..models_shift import CashCount, CashCountCreate, CashCountListResponse
from .base import BaseClient, coerce_model


@dataclass
class CashDrawerClient(BaseClient):
    async def create_count(self, payload: CashCountCreate | Mapping[str, Any]) -> CashCount:
        request = coerce_model(payload, CashCountCreate)
        data = await self._request(
            "POST",
            "/pos/cash-drawer/counts",
            json_body=request.model_dump(mode="json", exclude_none=True),
            module="cash_drawer",
            operation="create_count",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected cash count response to be a JSON object")
        return CashCount.model_validate(data)

    async def list_counts(self, shift_id: str) -> list[CashCount]:
        data = await self._request(
            "GET", f"/pos/shifts/{shift_id}/cash-counts", module="cash_drawer", operation="list_counts"
        )
        if not isinstance(data, dict):
            raise ValueError("Expected cash count list response to be a JSON object")
        return CashCountListResponse.model_validate(data).rows
