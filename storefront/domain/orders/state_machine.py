from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from storefront.cache import CacheNotifier
from storefront.core.security import Actor
from storefront.domain.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from storefront.domain.inventory.ledger import InventoryLedger
from storefront.domain.orders.aggregates import ORDER_STATUSES, Order, TrackingInfo
from storefront.domain.orders.repository import OrderRepository
from storefront.reconciliation.journal import ReconciliationJournal

logger = logging.getLogger(__name__)

FULFILLMENT_CHAIN: tuple[str, ...] = ("pending", "confirmed", "processing", "shipped", "delivered")
CANCELLABLE: frozenset[str] = frozenset({"pending", "confirmed", "processing"})
TRACKING_VISIBLE: frozenset[str] = frozenset({"shipped", "delivered"})

STATUS_MESSAGES: dict[str, str] = {
    "pending": "Order received and being processed",
    "confirmed": "Order confirmed and preparing for shipment",
    "processing": "Order is being prepared",
    "shipped": "Order has been shipped",
    "delivered": "Order has been delivered",
    "cancelled": "Order has been cancelled",
}


def can_transition(current: str, new: str) -> bool:
    if new == "cancelled":
        return current in CANCELLABLE
    if current not in FULFILLMENT_CHAIN or new not in FULFILLMENT_CHAIN:
        return False
    return FULFILLMENT_CHAIN.index(new) > FULFILLMENT_CHAIN.index(current)


@dataclass(frozen=True)
class TrackingProjection:
    order_number: str
    status: str
    message: str
    carrier: str | None
    tracking_number: str | None
    estimated_delivery: datetime | None
    order_date: datetime
    last_updated: datetime


class OrderStateMachine:
    def __init__(
        self,
        ledger: InventoryLedger,
        orders: OrderRepository,
        notifier: CacheNotifier | None = None,
        journal: ReconciliationJournal | None = None,
    ):
        self.ledger = ledger
        self.orders = orders
        self.notifier = notifier or CacheNotifier()
        self.journal = journal or ReconciliationJournal()

    def _load(self, order_id: str) -> Order:
        order = self.orders.get(order_id, for_update=True)
        if order is None:
            raise NotFound("Order not found", order_id=order_id)
        return order

    def cancel(self, order_id: str, actor: Actor) -> Order:
        order = self._load(order_id)
        if not order.owned_by(actor.id):
            raise Forbidden("Access denied")
        if order.status not in CANCELLABLE:
            raise InvalidTransition(order.status, "cancelled", "Order cannot be cancelled at this stage")
        self._cancel(order)
        return order

    def update_status(
        self,
        order_id: str,
        actor: Actor,
        new_status: str,
        tracking: TrackingInfo | None = None,
    ) -> Order:
        if not actor.is_admin:
            raise Forbidden("admin role required")
        if new_status not in ORDER_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(ORDER_STATUSES)}",
                status=new_status,
            )

        order = self._load(order_id)
        if new_status != order.status and not can_transition(order.status, new_status):
            raise InvalidTransition(order.status, new_status)

        if tracking is not None and not tracking.is_empty():
            order.tracking = order.tracking.merge(tracking)

        if new_status == "cancelled" and order.status != "cancelled":
            self._cancel(order)
            return order

        previous = order.status
        order.status = new_status
        order.updated_at = datetime.now(timezone.utc)
        self.orders.save(order)
        logger.info("order %s status %s -> %s by %s", order.order_number, previous, new_status, actor.id)
        return order

    def track(self, order_number: str) -> TrackingProjection:
        order = self.orders.get_by_number(order_number)
        if order is None:
            raise NotFound("Order not found", order_number=order_number)
        visible = order.status in TRACKING_VISIBLE
        return TrackingProjection(
            order_number=order.order_number,
            status=order.status,
            message=STATUS_MESSAGES.get(order.status, "Order status unknown"),
            carrier=order.tracking.carrier if visible else None,
            tracking_number=order.tracking.tracking_number if visible else None,
            estimated_delivery=order.tracking.estimated_delivery if visible else None,
            order_date=order.created_at,
            last_updated=order.updated_at,
        )

    def _cancel(self, order: Order) -> None:
        previous = order.status
        order.status = "cancelled"
        order.updated_at = datetime.now(timezone.utc)
        self.orders.save(order)

        for line in order.lines:
            try:
                self.ledger.release(line.product_id, line.quantity)
            except SQLAlchemyError:
                # Storage failure aborts the whole cancel, status change included.
                raise
            except Exception as exc:
                self.journal.record("cancel_release", f"order:{order.order_number}", line.product_id, line.quantity, exc)

        product_ids = [line.product_id for line in order.lines]
        records = self.ledger.find_many(product_ids)
        self.notifier.invalidate_products(product_ids, (record.category_id for record in records.values()))
        logger.info("order %s cancelled from %s, released %s lines", order.order_number, previous, len(order.lines))
