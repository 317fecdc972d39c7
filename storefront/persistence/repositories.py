from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import asc, delete, desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.domain.errors import ConflictError
from storefront.domain.orders.aggregates import (
    Order,
    OrderLine,
    PaymentDetails,
    ShippingAddress,
    TrackingInfo,
)
from storefront.domain.orders.cart import CartLine, CartSnapshot
from storefront.domain.orders.repository import OrderPage
from storefront.persistence.models import CartItemModel, OrderLineModel, OrderModel


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_domain(row: OrderModel) -> Order:
    return Order(
        order_id=row.id,
        order_number=row.order_number,
        user_id=row.user_id,
        lines=tuple(
            OrderLine(
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=int(line.quantity),
                unit_price_cents=int(line.unit_price_cents),
            )
            for line in row.lines
        ),
        shipping_address=ShippingAddress(**row.shipping_address),
        payment=PaymentDetails(
            method=row.payment_method,
            status=row.payment_status,
            gateway_order_id=row.gateway_order_id,
            gateway_payment_id=row.gateway_payment_id,
            signature=row.payment_signature,
        ),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        status=row.status,
        tracking=TrackingInfo(
            carrier=row.carrier,
            tracking_number=row.tracking_number,
            estimated_delivery=_as_utc(row.estimated_delivery),
        ),
    )


def _apply_mutable(row: OrderModel, order: Order) -> None:
    row.status = order.status
    row.payment_status = order.payment.status
    row.gateway_order_id = order.payment.gateway_order_id
    row.gateway_payment_id = order.payment.gateway_payment_id
    row.payment_signature = order.payment.signature
    row.carrier = order.tracking.carrier
    row.tracking_number = order.tracking.tracking_number
    row.estimated_delivery = order.tracking.estimated_delivery
    row.updated_at = order.updated_at


class SqlOrderRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, order: Order) -> None:
        row = OrderModel(
            id=order.order_id,
            order_number=order.order_number,
            user_id=order.user_id,
            total_cents=order.total_cents,
            payment_method=order.payment.method,
            shipping_address=order.shipping_address.as_dict(),
            created_at=order.created_at,
            lines=[
                OrderLineModel(
                    position=position,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                )
                for position, line in enumerate(order.lines)
            ],
        )
        _apply_mutable(row, order)
        try:
            with self.session.begin_nested():
                self.session.add(row)
                self.session.flush()
        except IntegrityError as exc:
            if "order_number" in str(exc.orig):
                raise ConflictError(
                    f"order number {order.order_number} already exists",
                    order_number=order.order_number,
                ) from exc
            raise

    def save(self, order: Order) -> None:
        row = self.session.get(OrderModel, order.order_id)
        if row is None:
            raise LookupError(f"order {order.order_id} is not persisted")
        _apply_mutable(row, order)
        self.session.flush()

    def get(self, order_id: str, for_update: bool = False) -> Order | None:
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.scalar(stmt.execution_options(populate_existing=True))
        return _to_domain(row) if row is not None else None

    def get_by_number(self, order_number: str) -> Order | None:
        row = self.session.scalar(select(OrderModel).where(OrderModel.order_number == order_number))
        return _to_domain(row) if row is not None else None

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
        stmt = select(OrderModel)
        count_stmt = select(func.count()).select_from(OrderModel)
        if user_id is not None:
            stmt = stmt.where(OrderModel.user_id == user_id)
            count_stmt = count_stmt.where(OrderModel.user_id == user_id)
        if status:
            stmt = stmt.where(OrderModel.status == status)
            count_stmt = count_stmt.where(OrderModel.status == status)

        column = getattr(OrderModel, sort_by)
        direction = asc if sort_order == "asc" else desc
        stmt = stmt.order_by(direction(column), direction(OrderModel.id))
        stmt = stmt.offset((page - 1) * limit).limit(limit)

        total = int(self.session.scalar(count_stmt) or 0)
        rows = self.session.scalars(stmt).all()
        return OrderPage(orders=[_to_domain(row) for row in rows], page=page, limit=limit, total=total)


class SqlCartStore:
    def __init__(self, session: Session):
        self.session = session

    def load(self, user_id: str) -> CartSnapshot:
        rows = self.session.scalars(
            select(CartItemModel)
            .where(CartItemModel.user_id == user_id)
            .order_by(CartItemModel.added_at.asc(), CartItemModel.id.asc())
        ).all()
        return CartSnapshot(
            user_id=user_id,
            lines=tuple(CartLine(product_id=row.product_id, quantity=int(row.quantity)) for row in rows),
        )

    def clear(self, user_id: str) -> None:
        # Savepoint so a failed delete does not poison the order already flushed.
        with self.session.begin_nested():
            self.session.execute(delete(CartItemModel).where(CartItemModel.user_id == user_id))

    def add_item(self, user_id: str, product_id: str, quantity: int) -> None:
        row = self.session.scalar(
            select(CartItemModel)
            .where(CartItemModel.user_id == user_id)
            .where(CartItemModel.product_id == product_id)
        )
        if row is None:
            self.session.add(
                CartItemModel(
                    user_id=user_id,
                    product_id=product_id,
                    quantity=quantity,
                    added_at=datetime.now(timezone.utc),
                )
            )
        else:
            row.quantity += quantity
        self.session.flush()
