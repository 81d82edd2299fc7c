from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from till_ledger.clients import PrinterClient, RefundClient, ShiftClient, TransactionClient
from till_ledger.config import ClientConfig
from till_ledger.exceptions import ConflictError, ShiftClosedError
from till_ledger.http_client import HttpClient
from till_ledger.models_payments import ReceiptData
from till_ledger.models_shift import ScheduleStatus, ShiftEndRequest, ShiftStartRequest
from till_ledger.models_transactions import PaymentMethod, TransactionCreateRequest

from tests.fakes import BASE_TIME, no_sleep

CONFIG = ClientConfig(env_name="test", api_base_url="https://store.test", retries=1, device_id="till-7")

SHIFT_JSON = {
    "id": "shift-1",
    "cashier_id": "cashier-1",
    "business_id": "biz-1",
    "start_time": "2024-03-04T09:00:00Z",
    "starting_cash": 10000,
}


def _call(client_type, handler, call):
    async def scenario():
        http = HttpClient(config=CONFIG, transport=httpx.MockTransport(handler), sleep=no_sleep)
        client = client_type(http=http, access_token="token-1", business_id="biz-1", device_id="till-7")
        try:
            return await call(client)
        finally:
            await http.aclose()

    return asyncio.run(scenario())


def test_start_shift_sends_keys_and_auth() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json=SHIFT_JSON)

    payload = ShiftStartRequest(cashier_id="cashier-1", business_id="biz-1", starting_cash=10000, start_time=BASE_TIME)
    shift = _call(
        ShiftClient,
        handler,
        lambda client: client.start(payload, transaction_id="txn-key", idempotency_key="idem-key"),
    )

    request = seen[0]
    body = json.loads(request.content)
    assert shift.id == "shift-1"
    assert request.method == "POST"
    assert request.url.path == "/pos/shifts"
    assert request.headers["Idempotency-Key"] == "idem-key"
    assert request.headers["Authorization"] == "Bearer token-1"
    assert request.headers["X-Business-ID"] == "biz-1"
    assert request.headers["X-Device-ID"] == "till-7"
    assert body["transaction_id"] == "txn-key"
    assert body["starting_cash"] == 10000
    assert "notes" not in body


def test_get_active_without_shift() -> None:
    shift = _call(
        ShiftClient,
        lambda request: httpx.Response(200, json={"shift": None}),
        lambda c: c.get_active("cashier-1"),
    )
    assert shift is None


def test_get_active_rejects_non_object() -> None:
    with pytest.raises(ValueError):
        _call(ShiftClient, lambda request: httpx.Response(200, json=[]), lambda c: c.get_active("cashier-1"))


def _end_request() -> ShiftEndRequest:
    return ShiftEndRequest(
        final_cash_drawer=10000,
        expected_cash_drawer=10000,
        cash_variance=0,
        total_sales=0,
        total_transactions=0,
        total_refunds=0,
        total_voids=0,
        end_time=BASE_TIME,
    )


def test_end_of_closed_shift_is_specific() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"code": "CONFLICT", "message": "Shift already ended"})

    with pytest.raises(ShiftClosedError):
        _call(ShiftClient, handler, lambda c: c.end("shift-1", _end_request()))


def test_other_end_conflicts_stay_generic() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"code": "CONFLICT", "message": "Counts do not match"})

    with pytest.raises(ConflictError) as excinfo:
        _call(ShiftClient, handler, lambda c: c.end("shift-1", _end_request()))
    assert not isinstance(excinfo.value, ShiftClosedError)


def test_schedule_status_update() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": "sched-1",
                "staff_id": "cashier-1",
                "start_time": "2024-03-04T09:00:00Z",
                "end_time": "2024-03-04T17:00:00Z",
                "status": "missed",
            },
        )

    schedule = _call(ShiftClient, handler, lambda c: c.update_schedule_status("sched-1", ScheduleStatus.MISSED))

    assert schedule.status == ScheduleStatus.MISSED
    assert seen[0].method == "PATCH"
    assert json.loads(seen[0].content) == {"status": "missed"}


def test_list_pending_reconciliation() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        ended = {**SHIFT_JSON, "status": "ended", "notes": "Auto-ended: Overtime limit reached"}
        return httpx.Response(200, json={"rows": [ended]})

    rows = _call(ShiftClient, handler, lambda c: c.list_pending_reconciliation("biz-1"))

    assert seen[0].url.path == "/pos/shifts/pending-reconciliation"
    assert seen[0].url.params["business_id"] == "biz-1"
    assert rows[0].auto_ended
    assert rows[0].requires_manager_review


def test_transaction_create_retries_with_same_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if len(seen) == 1:
            return httpx.Response(503)
        body = json.loads(request.content)
        return httpx.Response(
            201,
            json={**body, "id": "txn-1", "items": [], "status": "completed"},
        )

    payload = TransactionCreateRequest(
        receipt_number="RCP-1-abcde",
        shift_id="shift-1",
        business_id="biz-1",
        cashier_id="cashier-1",
        timestamp=BASE_TIME,
        items=[],
        subtotal=1000,
        tax=200,
        total=1200,
        payment_method=PaymentMethod.CASH,
        cash_amount=1200,
        change_amount=0,
    )
    transaction = _call(TransactionClient, handler, lambda c: c.create(payload, idempotency_key="idem-1"))

    assert transaction.id == "txn-1"
    assert transaction.total == 1200
    keys = {request.headers["Idempotency-Key"] for request in seen}
    bodies = {json.loads(request.content)["transaction_id"] for request in seen}
    assert keys == {"idem-1"}
    assert len(bodies) == 1


def test_receipt_lookup_quotes_number() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": "txn-1",
                "receipt_number": "RCP/1",
                "shift_id": "shift-1",
                "business_id": "biz-1",
                "timestamp": "2024-03-04T09:00:00Z",
                "subtotal": 1000,
                "total": 1200,
                "payment_method": "cash",
            },
        )

    transaction = _call(RefundClient, handler, lambda c: c.get_transaction_by_receipt("RCP/1"))

    assert transaction.receipt_number == "RCP/1"
    assert seen[0].url.raw_path.endswith(b"/by-receipt/RCP%2F1")


def test_print_with_empty_response_is_ok() -> None:
    receipt = ReceiptData(
        receipt_number="RCP-1",
        business_id="biz-1",
        timestamp=BASE_TIME,
        lines=[],
        subtotal=0,
        tax=0,
        total=0,
        payment_method=PaymentMethod.CASH,
    )
    result = _call(PrinterClient, lambda request: httpx.Response(204), lambda c: c.print_receipt(receipt))
    assert result.ok
