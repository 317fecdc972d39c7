from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from storefront.cache import CacheNotifier
from storefront.core.config import Settings, get_settings
from storefront.domain.errors import ConflictError, ValidationError
from storefront.domain.inventory.ledger import InventoryLedger
from storefront.domain.orders.aggregates import (
    PAYMENT_METHODS,
    Order,
    OrderLine,
    PaymentDetails,
    ShippingAddress,
)
from storefront.domain.orders.cart import CartStore, CartValidator, ValidatedLine
from storefront.domain.orders.repository import OrderRepository
from storefront.reconciliation.journal import ReconciliationJournal

logger = logging.getLogger(__name__)

# Crockford base32 without padding: no I, L, O or U to misread when customers quote it.
_ORDER_NUMBER_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ORDER_NUMBER_RANDOM_CHARS = 12

CART_NOT_CLEARED = "cart_not_cleared"


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(_ORDER_NUMBER_RANDOM_CHARS))
    return f"ORD-{now:%Y%m%d}-{suffix}"


def validate_shipping_address(address: ShippingAddress) -> None:
    missing = [name for name, value in address.as_dict().items() if not (value or "").strip()]
    if missing:
        raise ValidationError(f"shipping address is missing: {', '.join(missing)}", fields=missing)


@dataclass
class CheckoutResult:
    order: Order
    warnings: list[str] = field(default_factory=list)


class _Reservations:
    """Stock decrements granted during one checkout attempt, undone in reverse on failure."""

    def __init__(self, ledger: InventoryLedger, journal: ReconciliationJournal, reference: str):
        self.ledger = ledger
        self.journal = journal
        self.reference = reference
        self.granted: list[tuple[str, int]] = []

    def reserve(self, product_id: str, quantity: int) -> None:
        self.ledger.reserve(product_id, quantity)
        self.granted.append((product_id, quantity))

    def compensate(self) -> None:
        while self.granted:
            product_id, quantity = self.granted.pop()
            try:
                self.ledger.release(product_id, quantity)
            except SQLAlchemyError as exc:
                # The session is unusable; its rollback undoes the reservation too.
                logger.warning(
                    "release of product=%s qty=%s for %s left to transaction rollback: %s",
                    product_id,
                    quantity,
                    self.reference,
                    exc,
                )
            except Exception as exc:
                self.journal.record("checkout_compensation", self.reference, product_id, quantity, exc)


class OrderAssembler:
    def __init__(
        self,
        ledger: InventoryLedger,
        orders: OrderRepository,
        carts: CartStore,
        notifier: CacheNotifier | None = None,
        journal: ReconciliationJournal | None = None,
        settings: Settings | None = None,
    ):
        self.ledger = ledger
        self.orders = orders
        self.carts = carts
        self.notifier = notifier or CacheNotifier()
        self.journal = journal or ReconciliationJournal()
        self.settings = settings or get_settings()
        self.validator = CartValidator(ledger)

    def create_from_cart(
        self,
        user_id: str,
        shipping_address: ShippingAddress,
        payment_method: str,
    ) -> CheckoutResult:
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"payment method must be one of {', '.join(PAYMENT_METHODS)}",
                payment_method=payment_method,
            )
        validate_shipping_address(shipping_address)

        lines = self.validator.validate(self.carts.load(user_id))

        order_id = str(uuid.uuid4())
        reservations = _Reservations(self.ledger, self.journal, reference=f"order:{order_id}")
        try:
            for line in lines:
                reservations.reserve(line.product_id, line.quantity)
            order = self._persist(order_id, user_id, lines, shipping_address, payment_method)
        except Exception:
            reservations.compensate()
            raise

        warnings: list[str] = []
        try:
            self.carts.clear(user_id)
        except Exception as exc:
            # The order is the financial record; a stale cart is not worth undoing it for.
            logger.warning(
                "order %s placed but cart for user %s was not cleared: %s",
                order.order_number,
                user_id,
                exc,
            )
            warnings.append(CART_NOT_CLEARED)

        self.notifier.invalidate_products(
            (line.product_id for line in lines),
            (line.category_id for line in lines),
        )
        logger.info(
            "order placed: order_number=%s user=%s lines=%s total_cents=%s method=%s",
            order.order_number,
            user_id,
            len(order.lines),
            order.total_cents,
            payment_method,
        )
        return CheckoutResult(order=order, warnings=warnings)

    def _persist(
        self,
        order_id: str,
        user_id: str,
        lines: list[ValidatedLine],
        shipping_address: ShippingAddress,
        payment_method: str,
    ) -> Order:
        now = datetime.now(timezone.utc)
        payment_status = "completed" if payment_method == "cash-on-delivery" else "pending"
        order_lines = tuple(
            OrderLine(
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
            )
            for line in lines
        )

        attempts = max(1, self.settings.order_number_max_attempts)
        for attempt in range(1, attempts + 1):
            order = Order(
                order_id=order_id,
                order_number=generate_order_number(now),
                user_id=user_id,
                lines=order_lines,
                shipping_address=shipping_address,
                payment=PaymentDetails(method=payment_method, status=payment_status),
                created_at=now,
                updated_at=now,
            )
            try:
                self.orders.add(order)
                return order
            except ConflictError:
                logger.warning("order number collision on attempt %s/%s: %s", attempt, attempts, order.order_number)
        raise ConflictError(f"could not allocate a unique order number after {attempts} attempts")
