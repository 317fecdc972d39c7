from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.schemas import CreateOrderRequest, UpdateStatusRequest
from storefront.api.utils import get_notifier, iso, order_to_dict, page_to_dict
from storefront.cache import CacheNotifier
from storefront.core.security import Actor, get_actor, require_admin
from storefront.domain.inventory.ledger import InventoryLedger
from storefront.domain.orders.aggregates import ShippingAddress, TrackingInfo
from storefront.domain.orders.assembler import OrderAssembler
from storefront.domain.orders.queries import OrderQueries
from storefront.domain.orders.state_machine import OrderStateMachine
from storefront.persistence.pg import get_session
from storefront.persistence.repositories import SqlCartStore, SqlOrderRepository

router = APIRouter(tags=["orders"])


def _state_machine(session: Session, notifier: CacheNotifier) -> OrderStateMachine:
    return OrderStateMachine(InventoryLedger(session), SqlOrderRepository(session), notifier=notifier)


@router.post("/orders", status_code=201)
def create_order(
    body: CreateOrderRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    notifier: CacheNotifier = Depends(get_notifier),
):
    assembler = OrderAssembler(
        InventoryLedger(session),
        SqlOrderRepository(session),
        SqlCartStore(session),
        notifier=notifier,
    )
    result = assembler.create_from_cart(
        user_id=actor.id,
        shipping_address=ShippingAddress(**body.shipping_address.model_dump()),
        payment_method=body.payment_method,
    )
    return {
        "message": "Order placed successfully from cart",
        "order": order_to_dict(result.order),
        "warnings": result.warnings,
    }


@router.get("/orders")
def list_my_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: str | None = Query(default=None),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    result = OrderQueries(SqlOrderRepository(session)).list_for_user(actor.id, page=page, limit=limit, status=status)
    return page_to_dict(result)


@router.get("/orders/{order_id}")
def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    return order_to_dict(OrderQueries(SqlOrderRepository(session)).get_for_actor(order_id, actor))


@router.put("/orders/{order_id}/cancel")
def cancel_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    notifier: CacheNotifier = Depends(get_notifier),
):
    order = _state_machine(session, notifier).cancel(order_id, actor)
    return {"message": "Order cancelled successfully", "order": order_to_dict(order)}


@router.get("/track/{order_number}")
def track_order(
    order_number: str,
    session: Session = Depends(get_session),
    notifier: CacheNotifier = Depends(get_notifier),
):
    projection = _state_machine(session, notifier).track(order_number)
    return {
        "order_number": projection.order_number,
        "status": projection.status,
        "message": projection.message,
        "carrier": projection.carrier,
        "tracking_number": projection.tracking_number,
        "estimated_delivery": iso(projection.estimated_delivery),
        "order_date": iso(projection.order_date),
        "last_updated": iso(projection.last_updated),
    }


@router.get("/admin/orders")
def list_all_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    status: str | None = Query(default=None),
    sort_by: str = Query(default="created_at"),
    sort_order: str = Query(default="desc"),
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    require_admin(actor)
    result = OrderQueries(SqlOrderRepository(session)).list_all(
        actor,
        page=page,
        limit=limit,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return page_to_dict(result)


@router.put("/admin/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    body: UpdateStatusRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    notifier: CacheNotifier = Depends(get_notifier),
):
    require_admin(actor)
    tracking = TrackingInfo(
        carrier=body.carrier,
        tracking_number=body.tracking_number,
        estimated_delivery=body.estimated_delivery,
    )
    order = _state_machine(session, notifier).update_status(order_id, actor, body.status, tracking)
    return {"message": "Order status updated successfully", "order": order_to_dict(order)}
