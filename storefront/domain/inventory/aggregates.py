from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class InventoryRecord:
    product_id: str
    name: str
    price_cents: int
    stock: int
    is_active: bool
    category_id: str | None = None
