from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["online", "cash-on-delivery"]
PaymentStatus = Literal["pending", "completed", "failed"]

ORDER_STATUSES: tuple[str, ...] = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_METHODS: tuple[str, ...] = ("online", "cash-on-delivery")


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    product_name: str
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class ShippingAddress:
    street: str
    city: str
    state: str
    zip_code: str
    country: str

    def as_dict(self) -> dict[str, str]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
        }


@dataclass
class PaymentDetails:
    method: PaymentMethod
    status: PaymentStatus = "pending"
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    signature: str | None = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"


@dataclass
class TrackingInfo:
    carrier: str | None = None
    tracking_number: str | None = None
    estimated_delivery: datetime | None = None

    def merge(self, other: TrackingInfo) -> TrackingInfo:
        return TrackingInfo(
            carrier=other.carrier or self.carrier,
            tracking_number=other.tracking_number or self.tracking_number,
            estimated_delivery=other.estimated_delivery or self.estimated_delivery,
        )

    def is_empty(self) -> bool:
        return not (self.carrier or self.tracking_number or self.estimated_delivery)


@dataclass
class Order:
    order_id: str
    order_number: str
    user_id: str
    lines: tuple[OrderLine, ...]
    shipping_address: ShippingAddress
    payment: PaymentDetails
    created_at: datetime
    updated_at: datetime
    status: OrderStatus = "pending"
    tracking: TrackingInfo = field(default_factory=TrackingInfo)

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    def owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id
