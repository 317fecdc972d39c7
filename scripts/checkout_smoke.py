#!/usr/bin/env python3
from __future__ import annotations

import argparse
import hmac
import json
from hashlib import sha256

import requests


def main() -> None:
    parser = argparse.ArgumentParser(description="Drive one online checkout end to end against a running server")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--token", required=True, help="Customer bearer token (see `storefront token`)")
    parser.add_argument(
        "--gateway-secret",
        required=True,
        help="Gateway key secret, used to sign the simulated payment callback",
    )
    parser.add_argument("--payment-id", default="pay_smoke_0001")
    args = parser.parse_args()

    headers = {"Authorization": f"Bearer {args.token}"}

    placed = requests.post(
        f"{args.base_url}/orders",
        json={
            "shipping_address": {
                "street": "1 Main St",
                "city": "Pune",
                "state": "MH",
                "zip_code": "411001",
                "country": "IN",
            },
            "payment_method": "online",
        },
        headers=headers,
        timeout=30,
    )
    placed.raise_for_status()
    order = placed.json()["order"]
    print("Placed order:")
    print(json.dumps(order, indent=2, ensure_ascii=False))

    intent = requests.post(
        f"{args.base_url}/payments/create-order",
        json={"order_id": order["id"]},
        headers=headers,
        timeout=30,
    )
    intent.raise_for_status()
    gateway_order_id = intent.json()["gateway_order_id"]

    signature = hmac.new(
        args.gateway_secret.encode("utf-8"),
        f"{gateway_order_id}|{args.payment_id}".encode("utf-8"),
        sha256,
    ).hexdigest()
    verified = requests.post(
        f"{args.base_url}/payments/verify-payment",
        json={
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": args.payment_id,
            "signature": signature,
            "order_id": order["id"],
        },
        headers=headers,
        timeout=30,
    )
    verified.raise_for_status()
    print("\nVerified payment:")
    print(json.dumps(verified.json(), indent=2, ensure_ascii=False))

    tracked = requests.get(f"{args.base_url}/track/{order['order_number']}", timeout=30)
    tracked.raise_for_status()
    print("\nTracking:")
    print(json.dumps(tracked.json(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
