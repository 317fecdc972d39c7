from __future__ import annotations

from typing import Any


class FulfillmentError(Exception):
    """Base class for recoverable checkout/fulfillment errors.

    Every subclass carries a stable ``kind`` string and the HTTP status the API
    layer reports it with. ``extra`` holds structured detail for the response body.
    """

    kind = "fulfillment_error"
    status_code = 400

    def __init__(self, detail: str, **extra: Any):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.detail, **self.extra}


class NotFound(FulfillmentError):
    kind = "not_found"
    status_code = 404


class Forbidden(FulfillmentError):
    kind = "forbidden"
    status_code = 403


class ValidationError(FulfillmentError):
    kind = "validation_error"
    status_code = 400


class EmptyCart(ValidationError):
    kind = "empty_cart"

    def __init__(self, detail: str = "Cart is empty"):
        super().__init__(detail)


class InsufficientStock(FulfillmentError):
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, product_id: str, product_name: str | None, available: int, requested: int):
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ProductUnavailable(FulfillmentError):
    kind = "product_unavailable"
    status_code = 409

    def __init__(self, product_id: str, product_name: str | None = None):
        super().__init__(
            f"Product {product_name or 'Unknown'} is no longer available",
            product_id=product_id,
        )
        self.product_id = product_id


class InvalidTransition(FulfillmentError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, requested: str, detail: str | None = None):
        super().__init__(
            detail or f"cannot move order from {current} to {requested}",
            current_status=current,
            requested_status=requested,
        )
        self.current = current
        self.requested = requested


class AlreadyPaid(FulfillmentError):
    kind = "already_paid"
    status_code = 409

    def __init__(self, detail: str = "Order already paid"):
        super().__init__(detail)


class SignatureMismatch(FulfillmentError):
    kind = "signature_mismatch"
    status_code = 400

    def __init__(self, detail: str = "Payment verification failed - Invalid signature"):
        super().__init__(detail)


class ExternalServiceError(FulfillmentError):
    kind = "external_service_error"
    status_code = 503

    def __init__(self, detail: str):
        super().__init__(detail, retryable=True)


class ConflictError(FulfillmentError):
    kind = "conflict"
    status_code = 409
