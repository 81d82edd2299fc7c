from __future__ import annotations

import re

from till_ledger.idempotency import (
    REFUND_RECEIPT_PREFIX,
    idempotency_headers,
    new_receipt_number,
    resolve_idempotency_keys,
)

from tests.fakes import BASE_TIME


def test_receipt_number_format() -> None:
    number = new_receipt_number(REFUND_RECEIPT_PREFIX, BASE_TIME)
    assert re.fullmatch(rf"REF-{int(BASE_TIME.timestamp() * 1000)}-[0-9a-z]{{5}}", number)


def test_resolve_keeps_given_keys() -> None:
    keys = resolve_idempotency_keys("txn-1", "idem-1")
    assert (keys.transaction_id, keys.idempotency_key) == ("txn-1", "idem-1")
    assert idempotency_headers(keys) == {"Idempotency-Key": "idem-1"}


def test_resolve_fills_missing_keys() -> None:
    keys = resolve_idempotency_keys("txn-1")
    assert keys.transaction_id == "txn-1"
    assert keys.idempotency_key
