from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Request

from storefront.cache import CacheNotifier, NullReadCache
from storefront.domain.orders.aggregates import Order
from storefront.domain.orders.repository import OrderPage
from storefront.domain.payments.gateway import PaymentGateway, build_payment_gateway


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def get_notifier(request: Request) -> CacheNotifier:
    cache = getattr(request.app.state, "read_cache", None)
    return CacheNotifier(cache or NullReadCache())


def get_gateway(request: Request) -> PaymentGateway:
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway = build_payment_gateway()
        request.app.state.payment_gateway = gateway
    return gateway


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.order_id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "status": order.status,
        "total_amount": order.total_cents,
        "items": [
            {
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "price": line.unit_price_cents,
            }
            for line in order.lines
        ],
        "payment_details": {
            "method": order.payment.method,
            "status": order.payment.status,
            "gateway_order_id": order.payment.gateway_order_id,
            "gateway_payment_id": order.payment.gateway_payment_id,
        },
        "shipping_address": order.shipping_address.as_dict(),
        "tracking_info": {
            "carrier": order.tracking.carrier,
            "tracking_number": order.tracking.tracking_number,
            "estimated_delivery": iso(order.tracking.estimated_delivery),
        },
        "created_at": iso(order.created_at),
        "updated_at": iso(order.updated_at),
    }


def page_to_dict(page: OrderPage) -> dict:
    return {
        "orders": [order_to_dict(order) for order in page.orders],
        "current_page": page.page,
        "total_pages": page.total_pages,
        "total_orders": page.total,
        "has_next_page": page.has_next_page,
        "has_prev_page": page.has_prev_page,
    }
