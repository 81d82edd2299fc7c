from __future__ import annotations

import pytest

from till_ledger.clock import ManualClock
from till_ledger.config import LedgerPolicy
from till_ledger.core import TillCore
from till_ledger.shift_manager import ShiftManager

from tests.fakes import (
    BASE_TIME,
    FakeCashDrawerClient,
    FakePaymentClient,
    FakePrinterClient,
    FakeShiftClient,
    FakeTransactionStore,
    make_schedule,
    no_sleep,
)


@pytest.fixture(autouse=True)
def _clear_till_env(monkeypatch):
    for key in (
        "TILL_ENV",
        "TILL_API_BASE_URL",
        "TILL_API_BASE_URL_DEV",
        "TILL_API_BASE_URL_PROD",
        "TILL_RETRIES",
        "TILL_TIMEOUT_SECONDS",
        "TILL_OVERTIME_WARNING_MINUTES",
        "TILL_OVERTIME_AUTO_END_MINUTES",
        "TILL_MAX_STARTING_CASH",
        "TILL_STARTING_CASH_WARNING",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(BASE_TIME)


@pytest.fixture
def policy() -> LedgerPolicy:
    return LedgerPolicy(receipt_retry_backoff_seconds=0)


@pytest.fixture
def shift_client() -> FakeShiftClient:
    return FakeShiftClient(schedule=make_schedule())


@pytest.fixture
def store() -> FakeTransactionStore:
    return FakeTransactionStore()


@pytest.fixture
def payments() -> FakePaymentClient:
    return FakePaymentClient()


@pytest.fixture
def printer() -> FakePrinterClient:
    return FakePrinterClient()


@pytest.fixture
def cash_drawer() -> FakeCashDrawerClient:
    return FakeCashDrawerClient()


@pytest.fixture
def manager(shift_client, cash_drawer, clock, policy) -> ShiftManager:
    return ShiftManager(
        shift_client,  # type: ignore[arg-type]
        cashier_id="cashier-1",
        business_id="biz-1",
        cash_drawer=cash_drawer,  # type: ignore[arg-type]
        clock=clock,
        policy=policy,
    )


@pytest.fixture
def core(shift_client, store, payments, printer, cash_drawer, clock, policy) -> TillCore:
    return TillCore(
        shifts=shift_client,  # type: ignore[arg-type]
        transactions=store,  # type: ignore[arg-type]
        refunds=store,  # type: ignore[arg-type]
        payments=payments,  # type: ignore[arg-type]
        printer=printer,  # type: ignore[arg-type]
        cash_drawer=cash_drawer,  # type: ignore[arg-type]
        cashier_id="cashier-1",
        business_id="biz-1",
        policy=policy,
        clock=clock,
        sleep=no_sleep,
    )
