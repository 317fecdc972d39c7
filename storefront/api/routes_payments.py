from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.schemas import CreateIntentRequest, VerifyPaymentRequest
from storefront.api.utils import get_gateway
from storefront.core.security import Actor, get_actor
from storefront.domain.payments.gateway import PaymentGateway
from storefront.domain.payments.handshake import PaymentCallback, PaymentHandshake
from storefront.persistence.pg import get_session
from storefront.persistence.repositories import SqlOrderRepository

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-order")
def create_payment_order(
    body: CreateIntentRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_gateway),
):
    intent = PaymentHandshake(SqlOrderRepository(session), gateway).create_intent(body.order_id, actor)
    return {
        "success": True,
        "gateway_order_id": intent.gateway_order_id,
        "amount": intent.amount,
        "currency": intent.currency,
        "key": intent.key_id,
        "order": {
            "id": intent.order_id,
            "order_number": intent.order_number,
            "total_amount": intent.total_amount,
        },
    }


@router.post("/verify-payment")
def verify_payment(
    body: VerifyPaymentRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_gateway),
):
    callback = PaymentCallback(
        gateway_order_id=body.gateway_order_id,
        gateway_payment_id=body.gateway_payment_id,
        signature=body.signature,
        order_id=body.order_id,
    )
    order = PaymentHandshake(SqlOrderRepository(session), gateway).verify(callback, actor)
    return {
        "success": True,
        "message": "Payment verified and completed successfully!",
        "order": {
            "id": order.order_id,
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment.status,
            "total_amount": order.total_cents,
        },
    }


@router.get("/status/{order_id}")
def get_payment_status(
    order_id: str,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_gateway),
):
    snapshot = PaymentHandshake(SqlOrderRepository(session), gateway).get_status(order_id, actor)
    return {
        "order_id": snapshot.order_id,
        "order_number": snapshot.order_number,
        "payment_method": snapshot.payment_method,
        "payment_status": snapshot.payment_status,
        "gateway_order_id": snapshot.gateway_order_id,
        "gateway_payment_id": snapshot.gateway_payment_id,
        "total_amount": snapshot.total_amount,
        "order_status": snapshot.order_status,
    }
