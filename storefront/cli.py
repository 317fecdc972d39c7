from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from datetime import datetime, timezone

from storefront.core.logging import configure_logging
from storefront.core.security import create_access_token
from storefront.persistence.models import ProductModel
from storefront.persistence.pg import init_db, session_scope
from storefront.persistence.repositories import SqlCartStore
from storefront.reconciliation.journal import ReconciliationJournal


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront fulfillment CLI")
    top = parser.add_subparsers(dest="command", required=True)

    top.add_parser("init-db", help="Create database tables")

    product = top.add_parser("add-product", help="Insert a catalog product (development seeding)")
    product.add_argument("name")
    product.add_argument("--price-cents", type=int, required=True)
    product.add_argument("--stock", type=int, default=0)
    product.add_argument("--category-id", default=None)

    cart = top.add_parser("add-to-cart", help="Put a product into a user's cart (development seeding)")
    cart.add_argument("user_id")
    cart.add_argument("product_id")
    cart.add_argument("--quantity", type=int, default=1)

    token = top.add_parser("token", help="Mint a bearer token for local testing")
    token.add_argument("user_id")
    token.add_argument("--role", choices=["customer", "admin"], default="customer")
    token.add_argument("--ttl", type=int, default=None, help="Lifetime in seconds")

    recon = top.add_parser("reconciliation", help="Show stock compensations that need manual repair")
    recon.add_argument("--json", action="store_true", dest="as_json")

    return parser


def _add_product(args: argparse.Namespace) -> int:
    init_db()
    with session_scope() as session:
        row = ProductModel(
            name=args.name,
            price_cents=args.price_cents,
            stock=args.stock,
            category_id=args.category_id,
            is_active=True,
            updated_at=datetime.now(timezone.utc),
        )
        session.add(row)
        session.flush()
        print(row.id)
    return 0


def _add_to_cart(args: argparse.Namespace) -> int:
    init_db()
    with session_scope() as session:
        SqlCartStore(session).add_item(args.user_id, args.product_id, args.quantity)
    return 0


def _show_reconciliation(args: argparse.Namespace) -> int:
    entries = ReconciliationJournal().entries()
    if args.as_json:
        print(json.dumps([asdict(entry) for entry in entries], indent=2))
        return 1 if entries else 0
    if not entries:
        print("no pending compensations")
        return 0
    for entry in entries:
        print(f"{entry.recorded_at} {entry.operation} {entry.reference} product={entry.product_id} qty={entry.quantity} {entry.error}")
    return 1


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "init-db":
        init_db()
        return 0
    if args.command == "add-product":
        return _add_product(args)
    if args.command == "add-to-cart":
        return _add_to_cart(args)
    if args.command == "token":
        print(create_access_token(args.user_id, role=args.role, ttl_seconds=args.ttl))
        return 0
    if args.command == "reconciliation":
        return _show_reconciliation(args)

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
