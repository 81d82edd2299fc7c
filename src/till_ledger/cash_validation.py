from __future__ import annotations

from dataclasses import dataclass

from .config import LedgerPolicy
from .exceptions import InsufficientCashError, InvalidAmountError, LedgerValidationError
from .money import format_minor, parse_amount


@dataclass(frozen=True)
class CashValidationIssue:
    field: str
    reason: str


@dataclass(frozen=True)
class StartingCashResult:
    ok: bool
    amount: int | None
    issues: list[CashValidationIssue]
    warnings: list[str]

    def raise_for_issues(self) -> int:
        if self.ok and self.amount is not None:
            return self.amount
        issue = self.issues[0] if self.issues else CashValidationIssue("starting_cash", "is required")
        raise InvalidAmountError(
            f"{issue.field} {issue.reason}",
            details=[{"field": item.field, "reason": item.reason} for item in self.issues],
        )


@dataclass(frozen=True)
class TenderResult:
    cash_amount: int | None
    card_amount: int | None
    change: int


def validate_starting_cash(raw: object, policy: LedgerPolicy) -> StartingCashResult:
    issues: list[CashValidationIssue] = []
    warnings: list[str] = []
    try:
        amount = parse_amount(raw, field="starting_cash", allow_negative=True)
    except InvalidAmountError:
        issues.append(CashValidationIssue(field="starting_cash", reason="must be a number"))
        return StartingCashResult(ok=False, amount=None, issues=issues, warnings=warnings)
    if amount < 0:
        issues.append(CashValidationIssue(field="starting_cash", reason="must not be negative"))
    elif amount > policy.max_starting_cash:
        limit = format_minor(policy.max_starting_cash, policy.currency_symbol)
        issues.append(CashValidationIssue(field="starting_cash", reason=f"must not exceed {limit}"))
    elif amount > policy.starting_cash_warning:
        warnings.append(
            f"Starting cash {format_minor(amount, policy.currency_symbol)} is unusually high; please double-check"
        )
    return StartingCashResult(ok=not issues, amount=amount, issues=issues, warnings=warnings)


def resolve_cash_tender(total: int, cash_amount: int | None, symbol: str = "£") -> TenderResult:
    if cash_amount is None:
        raise InvalidAmountError("Cash amount is required", details={"field": "cash_amount"})
    if cash_amount < total:
        shortfall = total - cash_amount
        raise InsufficientCashError(
            f"Insufficient cash: {format_minor(shortfall, symbol)} short of {format_minor(total, symbol)}",
            details={"field": "cash_amount", "shortfall": shortfall},
            shortfall=shortfall,
        )
    return TenderResult(cash_amount=cash_amount, card_amount=None, change=cash_amount - total)


def resolve_mixed_tender(total: int, cash_amount: int | None) -> TenderResult:
    if cash_amount is None or cash_amount <= 0:
        raise InvalidAmountError(
            "Cash portion of a mixed payment must be greater than zero",
            details={"field": "cash_amount"},
        )
    if cash_amount >= total:
        raise LedgerValidationError(
            "Cash covers the whole total; take it as a cash payment",
            details={"field": "cash_amount"},
        )
    return TenderResult(cash_amount=cash_amount, card_amount=total - cash_amount, change=0)
