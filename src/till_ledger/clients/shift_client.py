from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..exceptions import ApiError, ConflictError, ShiftClosedError
from ..idempotency import idempotency_headers, resolve_idempotency_keys
from ..models_shift import (
    ActiveShiftResponse,
    Schedule,
    ScheduleStatus,
    ScheduleStatusUpdate,
    Shift,
    ShiftEndRequest,
    ShiftListResponse,
    ShiftReconcileRequest,
    ShiftStartRequest,
    ShiftStats,
    TodayScheduleResponse,
)
from .base import BaseClient, coerce_model


@dataclass
class ShiftClient(BaseClient):
    async def get_active(self, cashier_id: str) -> Shift | None:
        data = await self._request(
            "GET",
            "/pos/shifts/active",
            params={"cashier_id": cashier_id},
            module="shifts",
            operation="get_active",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected active shift response to be a JSON object")
        return ActiveShiftResponse.model_validate(data).shift

    async def get_today_schedule(self, cashier_id: str) -> Schedule | None:
        data = await self._request(
            "GET",
            "/pos/schedules/today",
            params={"cashier_id": cashier_id},
            module="shifts",
            operation="get_today_schedule",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected schedule response to be a JSON object")
        return TodayScheduleResponse.model_validate(data).schedule

    async def start(
        self,
        payload: ShiftStartRequest | Mapping[str, Any],
        transaction_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> Shift:
        request = coerce_model(payload, ShiftStartRequest)
        keys = resolve_idempotency_keys(transaction_id or request.transaction_id, idempotency_key)
        request = request.model_copy(update={"transaction_id": keys.transaction_id})
        data = await self._request(
            "POST",
            "/pos/shifts",
            json_body=request.model_dump(mode="json", exclude_none=True),
            headers=idempotency_headers(keys),
            retry_mutation=True,
            module="shifts",
            operation="start",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected shift start response to be a JSON object")
        return Shift.model_validate(data)

    async def get(self, shift_id: str) -> Shift:
        data = await self._request("GET", f"/pos/shifts/{shift_id}", module="shifts", operation="get")
        if not isinstance(data, dict):
            raise ValueError("Expected shift response to be a JSON object")
        return Shift.model_validate(data)

    async def end(self, shift_id: str, payload: ShiftEndRequest | Mapping[str, Any]) -> Shift:
        request = coerce_model(payload, ShiftEndRequest)
        try:
            data = await self._request(
                "POST",
                f"/pos/shifts/{shift_id}/end",
                json_body=request.model_dump(mode="json", exclude_none=True),
                module="shifts",
                operation="end",
            )
        except ApiError as exc:
            raise _map_shift_error(exc) from exc
        if not isinstance(data, dict):
            raise ValueError("Expected shift end response to be a JSON object")
        return Shift.model_validate(data)

    async def get_stats(self, shift_id: str) -> ShiftStats:
        data = await self._request("GET", f"/pos/shifts/{shift_id}/stats", module="shifts", operation="get_stats")
        if not isinstance(data, dict):
            raise ValueError("Expected shift stats response to be a JSON object")
        return ShiftStats.model_validate(data)

    async def reconcile(self, shift_id: str, payload: ShiftReconcileRequest | Mapping[str, Any]) -> Shift:
        request = coerce_model(payload, ShiftReconcileRequest)
        data = await self._request(
            "POST",
            f"/pos/shifts/{shift_id}/reconcile",
            json_body=request.model_dump(mode="json", exclude_none=True),
            module="shifts",
            operation="reconcile",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected shift reconcile response to be a JSON object")
        return Shift.model_validate(data)

    async def list_pending_reconciliation(self, business_id: str) -> list[Shift]:
        data = await self._request(
            "GET",
            "/pos/shifts/pending-reconciliation",
            params={"business_id": business_id},
            module="shifts",
            operation="list_pending_reconciliation",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected shift list response to be a JSON object")
        return ShiftListResponse.model_validate(data).rows

    async def update_schedule_status(self, schedule_id: str, status: ScheduleStatus) -> Schedule:
        data = await self._request(
            "PATCH",
            f"/pos/schedules/{schedule_id}",
            json_body=ScheduleStatusUpdate(status=status).model_dump(mode="json"),
            retry_mutation=True,
            module="shifts",
            operation="update_schedule_status",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected schedule response to be a JSON object")
        return Schedule.model_validate(data)


def _map_shift_error(exc: ApiError) -> ApiError:
    if not isinstance(exc, ConflictError):
        return exc
    detail_message = ""
    if isinstance(exc.details, dict):
        detail_message = str(exc.details.get("message") or "")
    combined = f"{exc.code} {exc.message} {detail_message}".lower()
    if "ended" in combined or "closed" in combined:
        return ShiftClosedError(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=exc.trace_id,
            status_code=exc.status_code,
            raw_payload=exc.raw_payload,
        )
    return exc
