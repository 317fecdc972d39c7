from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class ShippingAddressIn(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str = Field(validation_alias=AliasChoices("zip_code", "zipCode"))
    country: str


class CreateOrderRequest(BaseModel):
    shipping_address: ShippingAddressIn = Field(validation_alias=AliasChoices("shipping_address", "shippingAddress"))
    payment_method: str = Field(validation_alias=AliasChoices("payment_method", "paymentMethod"))


class UpdateStatusRequest(BaseModel):
    status: str
    carrier: str | None = None
    tracking_number: str | None = Field(default=None, validation_alias=AliasChoices("tracking_number", "trackingNumber"))
    estimated_delivery: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("estimated_delivery", "estimatedDelivery"),
    )


class CreateIntentRequest(BaseModel):
    order_id: str = Field(validation_alias=AliasChoices("order_id", "orderId"))


class VerifyPaymentRequest(BaseModel):
    gateway_order_id: str = Field(validation_alias=AliasChoices("gateway_order_id", "razorpay_order_id"))
    gateway_payment_id: str = Field(validation_alias=AliasChoices("gateway_payment_id", "razorpay_payment_id"))
    signature: str = Field(validation_alias=AliasChoices("signature", "razorpay_signature"))
    order_id: str = Field(validation_alias=AliasChoices("order_id", "orderId"))
