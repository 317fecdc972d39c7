from __future__ import annotations

import json
import threading

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

import storefront.domain.orders.assembler as assembler_module
import storefront.persistence.pg as pg
from storefront.cache import CacheNotifier, InMemoryReadCache
from storefront.domain.errors import (
    ConflictError,
    EmptyCart,
    InsufficientStock,
    ProductUnavailable,
    ValidationError,
)
from storefront.domain.inventory.ledger import InventoryLedger
from storefront.domain.orders.aggregates import ShippingAddress
from storefront.domain.orders.assembler import CART_NOT_CLEARED, OrderAssembler, generate_order_number
from storefront.persistence.models import OrderModel, ProductModel
from storefront.persistence.repositories import SqlCartStore, SqlOrderRepository


def _assembler(session, ledger=None, carts=None, cache=None) -> OrderAssembler:
    return OrderAssembler(
        ledger or InventoryLedger(session),
        SqlOrderRepository(session),
        carts or SqlCartStore(session),
        notifier=CacheNotifier(cache or InMemoryReadCache()),
    )


def _order_count(session) -> int:
    return int(session.scalar(select(func.count()).select_from(OrderModel)))


def test_checkout_reserves_snapshots_prices_and_empties_cart(session, make_product, fill_cart, address):
    product_id = make_product(session, price_cents=1000, stock=5)
    fill_cart(session, "u1", [(product_id, 2)])

    result = _assembler(session).create_from_cart("u1", address, "online")

    order = result.order
    assert result.warnings == []
    assert order.total_cents == 2000
    assert order.status == "pending"
    assert order.payment.status == "pending"
    assert order.order_number.startswith("ORD-")
    assert InventoryLedger(session).available(product_id) == 3
    assert SqlCartStore(session).load("u1").lines == ()

    stored = SqlOrderRepository(session).get(order.order_id)
    assert stored.total_cents == 2000
    assert [(line.product_id, line.quantity, line.unit_price_cents) for line in stored.lines] == [(product_id, 2, 1000)]


def test_price_is_snapshotted_at_creation(session, make_product, fill_cart, address):
    product_id = make_product(session, price_cents=1000, stock=5)
    fill_cart(session, "u1", [(product_id, 1)])
    order = _assembler(session).create_from_cart("u1", address, "online").order

    session.execute(update(ProductModel).where(ProductModel.id == product_id).values(price_cents=9999))

    stored = SqlOrderRepository(session).get(order.order_id)
    assert stored.total_cents == 1000
    assert stored.lines[0].unit_price_cents == 1000


def test_cash_on_delivery_is_paid_on_creation(session, make_product, fill_cart, address):
    product_id = make_product(session, stock=5)
    fill_cart(session, "u1", [(product_id, 1)])

    order = _assembler(session).create_from_cart("u1", address, "cash-on-delivery").order

    assert order.status == "pending"
    assert order.payment.status == "completed"


def test_validation_errors_propagate_without_touching_stock(session, make_product, fill_cart, address):
    product_id = make_product(session, stock=1)
    assembler = _assembler(session)

    with pytest.raises(EmptyCart):
        assembler.create_from_cart("u1", address, "online")

    fill_cart(session, "u1", [(product_id, 2)])
    with pytest.raises(InsufficientStock):
        assembler.create_from_cart("u1", address, "online")

    assert InventoryLedger(session).available(product_id) == 1
    assert _order_count(session) == 0


def test_rejects_unknown_payment_method_and_blank_address(session, make_product, fill_cart, address):
    product_id = make_product(session, stock=5)
    fill_cart(session, "u1", [(product_id, 1)])
    assembler = _assembler(session)

    with pytest.raises(ValidationError):
        assembler.create_from_cart("u1", address, "bitcoin")
    with pytest.raises(ValidationError) as excinfo:
        assembler.create_from_cart(
            "u1",
            ShippingAddress(street="", city="Pune", state="MH", zip_code=" ", country="IN"),
            "online",
        )
    assert excinfo.value.extra["fields"] == ["street", "zip_code"]


class RacingLedger(InventoryLedger):
    """Another shopper drains ``steal_id`` between validation and reservation."""

    def __init__(self, session, steal_id: str):
        super().__init__(session)
        self.steal_id = steal_id

    def reserve(self, product_id: str, quantity: int) -> None:
        if product_id == self.steal_id:
            self.session.execute(update(ProductModel).where(ProductModel.id == product_id).values(stock=0))
        super().reserve(product_id, quantity)


def test_partial_reservation_is_compensated(session, make_product, fill_cart, address):
    a = make_product(session, name="A", stock=5)
    b = make_product(session, name="B", stock=3)
    fill_cart(session, "u1", [(a, 2), (b, 1)])

    with pytest.raises(InsufficientStock) as excinfo:
        _assembler(session, ledger=RacingLedger(session, steal_id=b)).create_from_cart("u1", address, "online")

    assert excinfo.value.product_id == b
    ledger = InventoryLedger(session)
    assert ledger.available(a) == 5
    assert ledger.available(b) == 0
    assert _order_count(session) == 0
    assert len(SqlCartStore(session).load("u1").lines) == 2


class BrokenReleaseLedger(RacingLedger):
    def release(self, product_id: str, quantity: int) -> None:
        raise RuntimeError("stock service down")


def test_failed_compensation_is_journaled(session, make_product, fill_cart, address, journal_path):
    a = make_product(session, name="A", stock=5)
    b = make_product(session, name="B", stock=3)
    fill_cart(session, "u1", [(a, 2), (b, 1)])

    with pytest.raises(InsufficientStock):
        _assembler(session, ledger=BrokenReleaseLedger(session, steal_id=b)).create_from_cart("u1", address, "online")

    entries = [json.loads(line) for line in journal_path.read_text().splitlines()]
    assert len(entries) == 1
    assert entries[0]["operation"] == "checkout_compensation"
    assert entries[0]["product_id"] == a
    assert entries[0]["quantity"] == 2
    assert "stock service down" in entries[0]["error"]


def test_product_deactivated_after_validation_is_unavailable(session, make_product, fill_cart, address):
    a = make_product(session, stock=5)

    class DeactivatingLedger(InventoryLedger):
        def reserve(self, product_id: str, quantity: int) -> None:
            self.session.execute(update(ProductModel).where(ProductModel.id == product_id).values(is_active=False))
            super().reserve(product_id, quantity)

    fill_cart(session, "u1", [(a, 1)])
    with pytest.raises(ProductUnavailable):
        _assembler(session, ledger=DeactivatingLedger(session)).create_from_cart("u1", address, "online")
    assert InventoryLedger(session).available(a) == 5


class FailingClearCartStore(SqlCartStore):
    def clear(self, user_id: str) -> None:
        raise RuntimeError("profile service timeout")


def test_cart_clear_failure_is_a_warning_not_a_rollback(session, make_product, fill_cart, address):
    product_id = make_product(session, stock=5)
    fill_cart(session, "u1", [(product_id, 2)])

    result = _assembler(session, carts=FailingClearCartStore(session)).create_from_cart("u1", address, "online")

    assert result.warnings == [CART_NOT_CLEARED]
    assert SqlOrderRepository(session).get(result.order.order_id) is not None
    assert InventoryLedger(session).available(product_id) == 3


def test_order_number_collision_is_retried(session, make_product, fill_cart, address, monkeypatch):
    product_id = make_product(session, stock=5)
    numbers = iter(["ORD-20260101-AAAAAAAAAAAA", "ORD-20260101-AAAAAAAAAAAA", "ORD-20260101-BBBBBBBBBBBB"])
    monkeypatch.setattr(assembler_module, "generate_order_number", lambda now=None: next(numbers))
    assembler = _assembler(session)

    fill_cart(session, "u1", [(product_id, 1)])
    first = assembler.create_from_cart("u1", address, "online").order
    fill_cart(session, "u2", [(product_id, 1)])
    second = assembler.create_from_cart("u2", address, "online").order

    assert first.order_number == "ORD-20260101-AAAAAAAAAAAA"
    assert second.order_number == "ORD-20260101-BBBBBBBBBBBB"
    assert _order_count(session) == 2


def test_exhausted_order_number_retries_raise_conflict_and_release_stock(session, make_product, fill_cart, address, monkeypatch):
    product_id = make_product(session, stock=5)
    monkeypatch.setattr(assembler_module, "generate_order_number", lambda now=None: "ORD-20260101-SAMESAMESAME")
    assembler = _assembler(session)

    fill_cart(session, "u1", [(product_id, 1)])
    assembler.create_from_cart("u1", address, "online")
    fill_cart(session, "u2", [(product_id, 2)])
    with pytest.raises(ConflictError):
        assembler.create_from_cart("u2", address, "online")

    assert InventoryLedger(session).available(product_id) == 4


def test_checkout_invalidates_product_and_category_cache(session, make_product, fill_cart, address):
    product_id = make_product(session, stock=5, category_id="cat-9")
    cache = InMemoryReadCache()
    cache.set(f"product:{product_id}:detail", {"stock": 5})
    cache.set("category:cat-9:page:1", ["x"])
    cache.set("products:{}", ["x"])
    cache.set("unrelated", "keep")
    fill_cart(session, "u1", [(product_id, 1)])

    _assembler(session, cache=cache).create_from_cart("u1", address, "online")

    assert cache.get(f"product:{product_id}:detail") is None
    assert cache.get("category:cat-9:page:1") is None
    assert cache.get("products:{}") is None
    assert cache.get("unrelated") == "keep"


def test_generated_order_numbers_are_distinct():
    numbers = {generate_order_number() for _ in range(2000)}
    assert len(numbers) == 2000


def test_concurrent_checkouts_for_last_unit_sell_exactly_once(make_product, fill_cart, address):
    with pg.session_scope() as s:
        product_id = make_product(s, stock=1)
        fill_cart(s, "racer-1", [(product_id, 1)])
        fill_cart(s, "racer-2", [(product_id, 1)])

    barrier = threading.Barrier(2)
    outcomes: dict[str, object] = {}

    def checkout(user_id: str) -> None:
        barrier.wait()
        try:
            with pg.session_scope() as s:
                outcomes[user_id] = _assembler(s).create_from_cart(user_id, address, "online").order.order_number
        except InsufficientStock as exc:
            outcomes[user_id] = exc

    threads = [threading.Thread(target=checkout, args=(user_id,)) for user_id in ("racer-1", "racer-2")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    successes = [value for value in outcomes.values() if isinstance(value, str)]
    failures = [value for value in outcomes.values() if isinstance(value, InsufficientStock)]
    assert len(successes) == 1
    assert len(failures) == 1
    with pg.session_scope() as s:
        assert InventoryLedger(s).available(product_id) == 0


class StorageFailureReleaseLedger(RacingLedger):
    def release(self, product_id: str, quantity: int) -> None:
        raise OperationalError("UPDATE products", {}, Exception("server closed the connection"))


def test_storage_failure_during_compensation_is_left_to_rollback(session, make_product, fill_cart, address, journal_path):
    a = make_product(session, name="A", stock=5)
    b = make_product(session, name="B", stock=3)
    fill_cart(session, "u1", [(a, 2), (b, 1)])

    with pytest.raises(InsufficientStock):
        _assembler(session, ledger=StorageFailureReleaseLedger(session, steal_id=b)).create_from_cart(
            "u1", address, "online"
        )

    assert not journal_path.exists()
