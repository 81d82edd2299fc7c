"""Minor-unit money helpers.

Every amount inside the ledger is an ``int`` number of pence. Decimal strings
only appear when reading operator input or rendering a figure for display.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import InvalidAmountError

MINOR_PER_MAJOR = 100
_PENNY = Decimal("0.01")
_CURRENCY_MARKS = ("£", "$", "€")


def to_minor(value: Decimal | str | int | float) -> int:
    """Convert a major-unit amount (``12.5`` / ``"12.50"``) into pence."""
    if isinstance(value, bool):
        raise TypeError("Boolean is not a money amount")
    if isinstance(value, float):
        value = str(value)
    amount = Decimal(value) if not isinstance(value, Decimal) else value
    if not amount.is_finite():
        raise InvalidOperation(f"Amount is not finite: {value!r}")
    return int((amount * MINOR_PER_MAJOR).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor(amount: int) -> Decimal:
    return (Decimal(amount) / MINOR_PER_MAJOR).quantize(_PENNY)


def format_minor(amount: int, symbol: str = "£") -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{from_minor(abs(amount)):,.2f}"


def divide_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero."""
    if denominator == 0:
        raise ZeroDivisionError("denominator must not be zero")
    quotient = Decimal(numerator) / Decimal(denominator)
    return int(quotient.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_amount(raw: object, *, field: str = "amount", allow_negative: bool = False) -> int:
    """Parse operator input into pence, raising ``InvalidAmountError`` with the field name.

    Every number is read in major units: ``100``, ``100.0`` and ``"100"`` are all
    100.00. Code that already holds pence never goes through here.
    """
    if isinstance(raw, bool) or raw is None:
        raise InvalidAmountError(f"{field} is required", details={"field": field})
    text = str(raw).strip().replace(",", "")
    for mark in _CURRENCY_MARKS:
        text = text.replace(mark, "")
    if not text:
        raise InvalidAmountError(f"{field} is required", details={"field": field})
    try:
        amount = to_minor(text)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(
            f"{field} must be a number, got {raw!r}", details={"field": field}
        ) from exc
    if amount < 0 and not allow_negative:
        raise InvalidAmountError(f"{field} must not be negative", details={"field": field})
    return amount
