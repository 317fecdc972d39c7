from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Protocol
from uuid import uuid4

import httpx

from storefront.core.config import Settings, get_settings
from storefront.domain.errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    gateway_order_id: str
    amount: int
    currency: str
    receipt: str


class PaymentGateway(Protocol):
    backend: str
    key_id: str

    def create_order(self, amount: int, currency: str, receipt: str, notes: dict[str, str]) -> GatewayOrder:
        ...


def compute_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    body = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, sha256).hexdigest()


def signature_matches(secret: str, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    expected = compute_signature(secret, gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


class FakePaymentGateway:
    """In-process gateway for development and tests; records every call."""

    backend = "fake"

    def __init__(self, key_id: str = "rzp_test_fake"):
        self.key_id = key_id
        self.calls: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None

    def create_order(self, amount: int, currency: str, receipt: str, notes: dict[str, str]) -> GatewayOrder:
        self.calls.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": dict(notes)})
        if self.fail_with is not None:
            raise ExternalServiceError(f"payment gateway unavailable: {self.fail_with}") from self.fail_with
        return GatewayOrder(
            gateway_order_id=f"order_{uuid4().hex[:14]}",
            amount=amount,
            currency=currency,
            receipt=receipt,
        )


class HttpPaymentGateway:
    """Orders API client (Razorpay-compatible): basic auth with key id/secret."""

    backend = "http"

    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.gateway_base_url.rstrip("/")
        self.key_id = self.settings.gateway_key_id
        self.timeout = max(0.1, self.settings.gateway_timeout_seconds)
        self.transport = transport

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(
                timeout=self.timeout,
                auth=(self.key_id, self.settings.gateway_key_secret),
                transport=self.transport,
            ) as client:
                response = client.post(url, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(f"payment gateway timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                f"payment gateway rejected request: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"payment gateway unreachable: {exc}") from exc
        except ValueError as exc:
            raise ExternalServiceError("payment gateway returned an unexpected order payload") from exc

    def create_order(self, amount: int, currency: str, receipt: str, notes: dict[str, str]) -> GatewayOrder:
        payload = self._post(
            "/orders",
            {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes},
        )
        try:
            return GatewayOrder(
                gateway_order_id=str(payload["id"]),
                amount=int(payload.get("amount", amount)),
                currency=str(payload.get("currency", currency)),
                receipt=str(payload.get("receipt", receipt)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalServiceError("payment gateway returned an unexpected order payload") from exc


def build_payment_gateway(settings: Settings | None = None) -> PaymentGateway:
    settings = settings or get_settings()
    if settings.gateway_mode == "http":
        return HttpPaymentGateway(settings)
    if settings.gateway_mode != "fake":
        logger.warning("unknown gateway_mode=%s, using fake gateway", settings.gateway_mode)
    return FakePaymentGateway(key_id=settings.gateway_key_id)
