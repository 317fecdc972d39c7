from __future__ import annotations

import pytest

from storefront.domain.errors import EmptyCart, InsufficientStock, ProductUnavailable, ValidationError
from storefront.domain.inventory.ledger import InventoryLedger
from storefront.domain.orders.cart import CartLine, CartSnapshot, CartValidator


def _snapshot(*lines: tuple[str, int]) -> CartSnapshot:
    return CartSnapshot(user_id="u1", lines=tuple(CartLine(pid, qty) for pid, qty in lines))


def test_empty_cart_is_rejected(session):
    with pytest.raises(EmptyCart) as excinfo:
        CartValidator(InventoryLedger(session)).validate(_snapshot())
    assert excinfo.value.kind == "empty_cart"
    assert isinstance(excinfo.value, ValidationError)


def test_lines_are_priced_from_current_catalog(session, make_product):
    a = make_product(session, name="A", price_cents=1000, stock=5)
    b = make_product(session, name="B", price_cents=250, stock=5, category_id="cat-2")

    lines = CartValidator(InventoryLedger(session)).validate(_snapshot((a, 2), (b, 1)))

    assert [(line.product_id, line.quantity, line.unit_price_cents) for line in lines] == [(a, 2, 1000), (b, 1, 250)]
    assert lines[1].product_name == "B"
    assert lines[1].category_id == "cat-2"


def test_inactive_and_deleted_products_are_unavailable(session, make_product):
    inactive = make_product(session, name="Old", stock=5, is_active=False)
    validator = CartValidator(InventoryLedger(session))

    with pytest.raises(ProductUnavailable) as excinfo:
        validator.validate(_snapshot((inactive, 1)))
    assert "Old" in excinfo.value.detail

    with pytest.raises(ProductUnavailable):
        validator.validate(_snapshot(("gone", 1)))


def test_insufficient_stock_names_product_and_counts(session, make_product):
    product_id = make_product(session, name="Mug", stock=1)

    with pytest.raises(InsufficientStock) as excinfo:
        CartValidator(InventoryLedger(session)).validate(_snapshot((product_id, 2)))

    assert excinfo.value.to_dict() == {
        "error": "insufficient_stock",
        "detail": "Insufficient stock for Mug. Available: 1, Requested: 2",
        "product_id": product_id,
        "available": 1,
        "requested": 2,
    }


def test_duplicate_lines_are_merged_before_the_stock_check(session, make_product):
    product_id = make_product(session, stock=3)
    validator = CartValidator(InventoryLedger(session))

    with pytest.raises(InsufficientStock):
        validator.validate(_snapshot((product_id, 2), (product_id, 2)))

    lines = validator.validate(_snapshot((product_id, 1), (product_id, 2)))
    assert len(lines) == 1
    assert lines[0].quantity == 3


def test_non_positive_quantity_is_a_validation_error(session, make_product):
    product_id = make_product(session, stock=3)
    with pytest.raises(ValidationError):
        CartValidator(InventoryLedger(session)).validate(_snapshot((product_id, 0)))
