from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from storefront.core.config import Settings, get_settings
from storefront.core.security import Actor
from storefront.domain.errors import AlreadyPaid, Forbidden, InvalidTransition, NotFound, SignatureMismatch
from storefront.domain.orders.aggregates import Order
from storefront.domain.orders.repository import OrderRepository
from storefront.domain.payments.gateway import PaymentGateway, signature_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentCallback:
    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    order_id: str


@dataclass(frozen=True)
class PaymentIntent:
    gateway_order_id: str
    amount: int
    currency: str
    key_id: str
    order_id: str
    order_number: str
    total_amount: int


@dataclass(frozen=True)
class PaymentSnapshot:
    order_id: str
    order_number: str
    payment_method: str
    payment_status: str
    gateway_order_id: str | None
    gateway_payment_id: str | None
    total_amount: int
    order_status: str


class PaymentHandshake:
    def __init__(self, orders: OrderRepository, gateway: PaymentGateway, settings: Settings | None = None):
        self.orders = orders
        self.gateway = gateway
        self.settings = settings or get_settings()

    def _owned_order(self, order_id: str, actor: Actor, for_update: bool = False) -> Order:
        order = self.orders.get(order_id, for_update=for_update)
        if order is None:
            raise NotFound("Order not found", order_id=order_id)
        if not order.owned_by(actor.id):
            raise Forbidden("Access denied")
        return order

    def create_intent(self, order_id: str, actor: Actor) -> PaymentIntent:
        order = self._owned_order(order_id, actor)
        if order.payment.completed:
            raise AlreadyPaid()
        if order.status == "cancelled":
            raise InvalidTransition(order.status, "confirmed", "cannot take payment for a cancelled order")

        if order.payment.gateway_order_id:
            # A checkout window may still be open on the issued gateway order; keep it payable.
            logger.info(
                "reusing payment intent: order=%s gateway_order=%s",
                order.order_number,
                order.payment.gateway_order_id,
            )
            return PaymentIntent(
                gateway_order_id=order.payment.gateway_order_id,
                amount=order.total_cents,
                currency=self.settings.currency,
                key_id=self.gateway.key_id,
                order_id=order.order_id,
                order_number=order.order_number,
                total_amount=order.total_cents,
            )

        gateway_order =self.gateway.create_order(
            amount=order.total_cents,
            currency=self.settings.currency,
            receipt=f"order_{order.order_number}",
            notes={"order_id": order.order_id, "user_id": actor.id},
        )

        order.payment.gateway_order_id = gateway_order.gateway_order_id
        order.updated_at = datetime.now(timezone.utc)
        self.orders.save(order)
        logger.info(
            "payment intent created: order=%s gateway_order=%s amount=%s %s",
            order.order_number,
            gateway_order.gateway_order_id,
            gateway_order.amount,
            gateway_order.currency,
        )
        return PaymentIntent(
            gateway_order_id=gateway_order.gateway_order_id,
            amount=gateway_order.amount,
            currency=gateway_order.currency,
            key_id=self.gateway.key_id,
            order_id=order.order_id,
            order_number=order.order_number,
            total_amount=order.total_cents,
        )

    def verify(self, callback: PaymentCallback, actor: Actor) -> Order:
        if not signature_matches(
            self.settings.gateway_key_secret,
            callback.gateway_order_id,
            callback.gateway_payment_id,
            callback.signature,
        ):
            logger.warning("payment signature mismatch for order=%s", callback.order_id)
            raise SignatureMismatch()

        order = self._owned_order(callback.order_id, actor, for_update=True)
        if order.payment.gateway_order_id != callback.gateway_order_id:
            # A valid signature for some other gateway order must not settle this one.
            logger.warning(
                "gateway order mismatch for order=%s: stored=%s callback=%s",
                order.order_number,
                order.payment.gateway_order_id,
                callback.gateway_order_id,
            )
            raise SignatureMismatch("Payment verification failed - gateway order does not match")

        if order.payment.completed:
            if order.payment.gateway_payment_id == callback.gateway_payment_id:
                logger.info("duplicate payment callback for order=%s ignored", order.order_number)
                return order
            raise AlreadyPaid()

        order.payment.gateway_payment_id = callback.gateway_payment_id
        order.payment.signature = callback.signature
        order.payment.status = "completed"
        if order.status == "pending":
            order.status = "confirmed"
        elif order.status == "cancelled":
            logger.warning("payment captured for cancelled order=%s; refund required", order.order_number)
        order.updated_at = datetime.now(timezone.utc)
        self.orders.save(order)
        logger.info(
            "payment verified: order=%s payment=%s status=%s",
            order.order_number,
            callback.gateway_payment_id,
            order.status,
        )
        return order

    def get_status(self, order_id: str, actor: Actor) -> PaymentSnapshot:
        order = self._owned_order(order_id, actor)
        return PaymentSnapshot(
            order_id=order.order_id,
            order_number=order.order_number,
            payment_method=order.payment.method,
            payment_status=order.payment.status,
            gateway_order_id=order.payment.gateway_order_id,
            gateway_payment_id=order.payment.gateway_payment_id,
            total_amount=order.total_cents,
            order_status=order.status,
        )
