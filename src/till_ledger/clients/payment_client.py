from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..models_payments import PaymentIntent, PaymentIntentRequest, PaymentResult
from .base import BaseClient, coerce_model


@dataclass
class PaymentClient(BaseClient):
    """Card and mobile payments. Processing is open-ended; callers cancel instead of timing out."""

    async def create_intent(self, payload: PaymentIntentRequest | Mapping[str, Any]) -> PaymentIntent:
        request = coerce_model(payload, PaymentIntentRequest)
        data = await self._request(
            "POST",
            "/payments/intents",
            json_body=request.model_dump(mode="json", exclude_none=True),
            module="payments",
            operation="create_intent",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected payment intent response to be a JSON object")
        return PaymentIntent.model_validate(data)

    async def process_card_payment(self, intent_id: str) -> PaymentResult:
        data = await self._request(
            "POST",
            f"/payments/intents/{intent_id}/process",
            module="payments",
            operation="process_card_payment",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected payment result response to be a JSON object")
        return PaymentResult.model_validate(data)

    async def cancel_payment(self, intent_id: str) -> PaymentResult:
        data = await self._request(
            "POST",
            f"/payments/intents/{intent_id}/cancel",
            retry_mutation=True,
            module="payments",
            operation="cancel_payment",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected payment result response to be a JSON object")
        return PaymentResult.model_validate(data)
