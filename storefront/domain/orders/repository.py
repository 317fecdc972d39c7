from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Protocol

from storefront.domain.orders.aggregates import Order

SORTABLE_FIELDS: tuple[str, ...] = ("created_at", "updated_at", "total_cents", "status", "order_number")


@dataclass
class OrderPage:
    orders: list[Order] = field(default_factory=list)
    page: int = 1
    limit: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


class OrderRepository(Protocol):
    def add(self, order: Order) -> None:
        """Insert a new order; raises ConflictError if the order number is taken."""
        ...

    def save(self, order: Order) -> None:
        ...

    def get(self, order_id: str, for_update: bool = False) -> Order | None:
        ...

    def get_by_number(self, order_number: str) -> Order | None:
        ...

    def list(
        self,
        *,
        user_id: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> OrderPage:
        ...
