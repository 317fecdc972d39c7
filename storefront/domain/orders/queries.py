from __future__ import annotations

from storefront.core.security import Actor
from storefront.domain.errors import Forbidden, NotFound, ValidationError
from storefront.domain.orders.aggregates import ORDER_STATUSES, Order
from storefront.domain.orders.repository import SORTABLE_FIELDS, OrderPage, OrderRepository


def _check_status(status: str | None) -> None:
    if status and status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}", status=status)


class OrderQueries:
    def __init__(self, orders: OrderRepository):
        self.orders = orders

    def list_for_user(self, user_id: str, page: int = 1, limit: int = 10, status: str | None = None) -> OrderPage:
        _check_status(status)
        return self.orders.list(user_id=user_id, status=status, page=page, limit=limit)

    def list_all(
        self,
        actor: Actor,
        page: int = 1,
        limit: int = 20,
        status: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> OrderPage:
        if not actor.is_admin:
            raise Forbidden("admin role required")
        _check_status(status)
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(f"sort_by must be one of {', '.join(SORTABLE_FIELDS)}", sort_by=sort_by)
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sort_order must be asc or desc", sort_order=sort_order)
        return self.orders.list(status=status, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)

    def get_for_actor(self, order_id: str, actor: Actor) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFound("Order not found", order_id=order_id)
        if not (order.owned_by(actor.id) or actor.is_admin):
            raise Forbidden("Access denied")
        return order
