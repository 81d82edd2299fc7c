from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from till_ledger.exceptions import (
    CommitFailedError,
    LedgerValidationError,
    NoActiveShiftError,
    RefundNotAllowedError,
    RefundQuantityError,
    TransportError,
)
from till_ledger.models_transactions import (
    PaymentMethod,
    RefundMethod,
    Transaction,
    TransactionItem,
    TransactionStatus,
)
from till_ledger.refund_processor import (
    adjust_refund_quantity,
    refund_items_for,
    refund_totals,
    resolve_refund_payment_method,
)
from till_ledger.transaction_processor import PaymentSelection

from tests.fakes import BASE_TIME, api_error, make_sale

ITEM = "txn-old-item-1"


@pytest.fixture
def refund_core(core, store):
    store.add(make_sale(timestamp=BASE_TIME - timedelta(days=1)))
    asyncio.run(core.shifts.start_shift("100.00"))
    return core


def _refund(core, quantities, reason="Damaged", method=RefundMethod.ORIGINAL, transaction_id="txn-old"):
    async def scenario():
        original = await core.refunds.find_transaction(transaction_id)
        items = refund_items_for(original, quantities)
        return await core.refunds.refund(original.id, items, reason, method)

    return asyncio.run(scenario())


def test_partial_refund(refund_core, store) -> None:
    result = _refund(refund_core, {ITEM: 2})

    assert result.is_partial
    assert result.totals.subtotal == 2000
    assert result.totals.tax == 400
    assert result.totals.total == 2400
    assert result.refund.total == -2400
    assert result.refund.receipt_number.startswith("REF-")
    assert result.original.items[0].refunded_quantity == 2
    assert refund_core.shifts.stats().total_refunds == 2400
    payload = store.refund_calls[0]["payload"]
    assert payload.items[0].quantity == -2
    assert payload.items[0].tax_amount == -400
    assert payload.payment_method == PaymentMethod.CASH


def test_refund_beyond_remaining_is_rejected(refund_core, store) -> None:
    _refund(refund_core, {ITEM: 2})

    with pytest.raises(RefundQuantityError, match="Cannot refund 2 of Mug. Only 1 available."):
        _refund(refund_core, {ITEM: 2})

    assert len(store.refund_calls) == 1
    assert refund_core.shifts.stats().total_refunds == 2400


def test_stale_store_copy_does_not_reopen_quantities(refund_core, store) -> None:
    store.track_refunded_quantities = False
    _refund(refund_core, {ITEM: 2})

    with pytest.raises(RefundQuantityError, match="Only 1 available"):
        _refund(refund_core, {ITEM: 2})


def test_full_refund_is_not_partial(refund_core) -> None:
    result = _refund(refund_core, {ITEM: 3})
    assert not result.is_partial
    assert result.totals.total == 3600


def test_duplicate_lines_are_summed(refund_core) -> None:
    async def scenario():
        original = await refund_core.refunds.find_transaction("RCP-txn-old")
        items = refund_items_for(original, {ITEM: 2}) + refund_items_for(original, {ITEM: 2})
        await refund_core.refunds.refund(original.id, items, "Damaged")

    with pytest.raises(RefundQuantityError):
        asyncio.run(scenario())


def test_tax_follows_original_ratio() -> None:
    original = make_sale(quantity=3, unit_price=333)
    totals = refund_totals(original, refund_items_for(original, {ITEM: 1}))
    assert original.tax == 199
    assert totals.subtotal == 333
    assert totals.tax == 66


def test_line_tax_allocation_sums_to_total(refund_core, store) -> None:
    store.add(
        Transaction(
            id="txn-two",
            receipt_number="RCP-two",
            shift_id="shift-old",
            business_id="biz-1",
            timestamp=BASE_TIME - timedelta(hours=2),
            items=[
                TransactionItem(
                    id="a", product_id="sku-a", product_name="Plate",
                    quantity=2, unit_price=500, total_price=1000, tax_amount=200,
                ),
                TransactionItem(
                    id="b", product_id="sku-b", product_name="Bowl",
                    quantity=1, unit_price=333, total_price=333, tax_amount=67,
                ),
            ],
            subtotal=1333,
            tax=267,
            total=1600,
            payment_method=PaymentMethod.CARD,
        )
    )

    result = _refund(refund_core, {"a": 2, "b": 1}, transaction_id="RCP-two")

    payload = store.refund_calls[0]["payload"]
    assert [line.tax_amount for line in payload.items] == [-200, -67]
    assert payload.tax == -267
    assert payload.payment_method == PaymentMethod.CARD
    assert not result.is_partial


def test_refund_window(refund_core, store) -> None:
    store.add(make_sale(transaction_id="txn-ancient", timestamp=BASE_TIME - timedelta(days=31)))

    with pytest.raises(RefundNotAllowedError, match="within 30 days"):
        _refund(refund_core, {"txn-ancient-item-1": 1}, transaction_id="txn-ancient")


def test_voided_sale_cannot_be_refunded(refund_core, store) -> None:
    voided = make_sale(transaction_id="txn-void").model_copy(update={"status": TransactionStatus.VOIDED})
    store.add(voided)

    with pytest.raises(RefundNotAllowedError):
        _refund(refund_core, {"txn-void-item-1": 1}, transaction_id="txn-void")


def test_refund_of_refund_is_rejected(refund_core, store) -> None:
    result = _refund(refund_core, {ITEM: 1})

    items = refund_items_for(result.refund, {f"{result.refund.id}-item-1": 1})
    with pytest.raises(RefundNotAllowedError, match="Only sales"):
        asyncio.run(refund_core.refunds.refund(result.refund.id, items, "Again"))


@pytest.mark.parametrize("reason", ["", "   "])
def test_reason_is_required(refund_core, reason) -> None:
    with pytest.raises(LedgerValidationError):
        _refund(refund_core, {ITEM: 1}, reason=reason)


def test_items_are_required(refund_core) -> None:
    with pytest.raises(LedgerValidationError):
        asyncio.run(refund_core.refunds.refund("txn-old", [], "Damaged"))


def test_unknown_item_is_rejected(refund_core) -> None:
    with pytest.raises(RefundQuantityError):
        _refund(refund_core, {"not-on-receipt": 1})


def test_commit_failure_changes_nothing(refund_core, store) -> None:
    store.refund_failures.append(api_error(TransportError, 0, "Connection reset"))

    with pytest.raises(CommitFailedError):
        _refund(refund_core, {ITEM: 1})

    assert refund_core.shifts.stats().total_refunds == 0
    assert store.transactions["txn-old"].items[0].refunded_quantity == 0


def test_refund_needs_active_shift(core, store) -> None:
    store.add(make_sale())
    with pytest.raises(NoActiveShiftError):
        _refund(core, {ITEM: 1})


def test_find_transaction_falls_back_to_id(refund_core) -> None:
    by_receipt = asyncio.run(refund_core.refunds.find_transaction("RCP-txn-old"))
    by_id = asyncio.run(refund_core.refunds.find_transaction(" txn-old "))
    assert by_receipt.id == by_id.id == "txn-old"

    with pytest.raises(LedgerValidationError):
        asyncio.run(refund_core.refunds.find_transaction(""))


def test_recent_transactions(refund_core) -> None:
    rows = asyncio.run(refund_core.refunds.recent_transactions())
    assert [row.id for row in rows] == ["txn-old"]


def test_shift_transactions_only_lists_this_shift(refund_core) -> None:
    refund_core.cart.add("sku-2", "Plate", 500)
    sale = asyncio.run(refund_core.checkout(PaymentSelection.cash(500))).transaction

    rows = asyncio.run(refund_core.refunds.shift_transactions())

    assert [row.id for row in rows] == [sale.id]


def test_shift_transactions_need_a_shift(core) -> None:
    with pytest.raises(NoActiveShiftError):
        asyncio.run(core.refunds.shift_transactions())


def test_refund_method_resolution() -> None:
    card_sale = make_sale(payment_method=PaymentMethod.CARD)
    assert resolve_refund_payment_method(RefundMethod.ORIGINAL, card_sale) == PaymentMethod.CARD
    assert resolve_refund_payment_method(RefundMethod.CASH, card_sale) == PaymentMethod.CASH
    assert resolve_refund_payment_method(RefundMethod.STORE_CREDIT, card_sale) == PaymentMethod.CASH


def test_adjust_refund_quantity() -> None:
    assert adjust_refund_quantity(1, -1, 3) == 1
    assert adjust_refund_quantity(2, 5, 3) == 3
    assert adjust_refund_quantity(1, 1, 0) == 0
