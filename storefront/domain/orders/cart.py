from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from storefront.domain.errors import EmptyCart, InsufficientStock, ProductUnavailable, ValidationError
from storefront.domain.inventory.ledger import InventoryLedger


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class CartSnapshot:
    user_id: str
    lines: tuple[CartLine, ...]


class CartStore(Protocol):
    def load(self, user_id: str) -> CartSnapshot:
        ...

    def clear(self, user_id: str) -> None:
        ...


@dataclass(frozen=True)
class ValidatedLine:
    product_id: str
    product_name: str
    category_id: str | None
    quantity: int
    unit_price_cents: int


def _merge_lines(lines: tuple[CartLine, ...]) -> list[CartLine]:
    merged: dict[str, int] = {}
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(
                f"cart quantity must be a positive integer for product {line.product_id}",
                product_id=line.product_id,
            )
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [CartLine(product_id=pid, quantity=qty) for pid, qty in merged.items()]


class CartValidator:
    """Checks a cart snapshot against the catalog and prices it.

    The stock comparison here is advisory only; the conditional decrement in
    ``InventoryLedger.reserve`` is what actually prevents overselling.
    """

    def __init__(self, ledger: InventoryLedger):
        self.ledger = ledger

    def validate(self, snapshot: CartSnapshot) -> list[ValidatedLine]:
        if not snapshot.lines:
            raise EmptyCart()

        lines = _merge_lines(snapshot.lines)
        records = self.ledger.find_many(line.product_id for line in lines)

        validated: list[ValidatedLine] = []
        for line in lines:
            record = records.get(line.product_id)
            if record is None or not record.is_active:
                raise ProductUnavailable(line.product_id, record.name if record else None)
            if record.stock < line.quantity:
                raise InsufficientStock(
                    line.product_id,
                    record.name,
                    available=record.stock,
                    requested=line.quantity,
                )
            validated.append(
                ValidatedLine(
                    product_id=record.product_id,
                    product_name=record.name,
                    category_id=record.category_id,
                    quantity=line.quantity,
                    unit_price_cents=record.price_cents,
                )
            )
        return validated
