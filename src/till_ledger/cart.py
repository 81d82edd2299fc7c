from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from .exceptions import EmptyCartError, InvalidCartLineError
from .models_transactions import TransactionItemCreate


class CartLine(BaseModel):
    model_config = ConfigDict(extra="allow")

    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    total_price: int = 0
    tax_rate: Decimal = Decimal(0)
    tax_amount: int = 0

    @model_validator(mode="before")
    @classmethod
    def _default_total(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("total_price") is None:
            data = {**data, "total_price": int(data.get("unit_price", 0)) * int(data.get("quantity", 0))}
        return data


def line_tax(total_price: int, tax_rate: Decimal | str) -> int:
    """Tax for a line at ``tax_rate`` (``"0.20"`` for 20%), rounded half-up to the penny."""
    return int((Decimal(total_price) * Decimal(str(tax_rate))).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class Cart(BaseModel):
    """The sale being rung up. Owned by the core; the UI only dispatches changes to it."""

    model_config = ConfigDict(extra="allow")

    business_id: str | None = None
    lines: list[CartLine] = []

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal(self) -> int:
        return sum(line.total_price for line in self.lines)

    @property
    def tax(self) -> int:
        return sum(line.tax_amount for line in self.lines)

    @property
    def total(self) -> int:
        return self.subtotal + self.tax

    def add(
        self,
        product_id: str,
        product_name: str,
        unit_price: int,
        *,
        quantity: int = 1,
        tax_rate: Decimal | str | None = None,
    ) -> CartLine:
        if quantity < 1:
            raise InvalidCartLineError(f"Quantity for {product_name} must be at least 1")
        for index, line in enumerate(self.lines):
            if line.product_id == product_id and line.unit_price == unit_price:
                updated = self._priced(
                    line.product_id, line.product_name, unit_price, line.quantity + quantity, tax_rate, line
                )
                self.lines[index] = updated
                return updated
        line = self._priced(product_id, product_name, unit_price, quantity, tax_rate, None)
        self.lines.append(line)
        return line

    def set_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        for index, line in enumerate(self.lines):
            if line.product_id == product_id:
                self.lines[index] = self._priced(
                    line.product_id, line.product_name, line.unit_price, quantity, None, line
                )
                return
        raise InvalidCartLineError(f"Product {product_id} is not in the cart")

    def remove(self, product_id: str) -> None:
        self.lines = [line for line in self.lines if line.product_id != product_id]

    def clear(self) -> None:
        self.lines = []

    def validate_for_checkout(self) -> None:
        if self.is_empty:
            raise EmptyCartError("Cart is empty")
        for line in self.lines:
            if line.quantity < 1:
                raise InvalidCartLineError(
                    f"Quantity for {line.product_name} must be at least 1",
                    details={"product_id": line.product_id},
                )
            if line.total_price <= 0:
                raise InvalidCartLineError(
                    f"Price for {line.product_name} must be greater than zero",
                    details={"product_id": line.product_id},
                )
            if line.tax_amount < 0:
                raise InvalidCartLineError(
                    f"Tax for {line.product_name} must not be negative",
                    details={"product_id": line.product_id},
                )

    def to_items(self) -> list[TransactionItemCreate]:
        return [
            TransactionItemCreate(
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
                tax_amount=line.tax_amount,
            )
            for line in self.lines
        ]

    def snapshot(self) -> dict[str, Any]:
        return {
            **self.model_dump(mode="json"),
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
        }

    @staticmethod
    def _priced(
        product_id: str,
        product_name: str,
        unit_price: int,
        quantity: int,
        tax_rate: Decimal | str | None,
        previous: CartLine | None,
    ) -> CartLine:
        total_price = unit_price * quantity
        if tax_rate is not None:
            rate = Decimal(str(tax_rate))
        elif previous is not None:
            rate = previous.tax_rate
        else:
            rate = Decimal(0)
        if rate < 0:
            raise InvalidCartLineError(f"Tax rate for {product_name} must not be negative")
        return CartLine(
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            tax_rate=rate,
            tax_amount=line_tax(total_price, rate),
        )
