from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.domain.errors import InsufficientStock, ProductUnavailable, ValidationError
from storefront.domain.inventory.aggregates import InventoryRecord
from storefront.persistence.models import ProductModel

logger = logging.getLogger(__name__)


def _to_record(row: ProductModel) -> InventoryRecord:
    return InventoryRecord(
        product_id=row.id,
        name=row.name,
        price_cents=int(row.price_cents),
        stock=int(row.stock),
        is_active=bool(row.is_active),
        category_id=row.category_id,
    )


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"quantity must be a positive integer, got {quantity!r}")


class InventoryLedger:
    """Per-product stock counts with conditional reserve and unconditional release.

    ``reserve`` is one ``UPDATE ... WHERE stock >= :qty`` statement, so the
    database serializes concurrent reservations against the same row and stock
    can never go below zero. Nothing else in the engine writes ``stock``.
    """

    def __init__(self, session: Session):
        self.session = session

    def find(self, product_id: str) -> InventoryRecord | None:
        row = self.session.scalar(
            select(ProductModel)
            .where(ProductModel.id == product_id)
            .execution_options(populate_existing=True)
        )
        return _to_record(row) if row is not None else None

    def find_many(self, product_ids: Iterable[str]) -> dict[str, InventoryRecord]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return {}
        rows = self.session.scalars(
            select(ProductModel)
            .where(ProductModel.id.in_(ids))
            .execution_options(populate_existing=True)
        ).all()
        return {row.id: _to_record(row) for row in rows}

    def available(self, product_id: str) -> int | None:
        record = self.find(product_id)
        return record.stock if record is not None else None

    def reserve(self, product_id: str, quantity: int) -> None:
        _require_positive(quantity)
        result = self.session.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .where(ProductModel.is_active.is_(True))
            .where(ProductModel.stock >= quantity)
            .values(stock=ProductModel.stock - quantity, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.debug("reserved product=%s qty=%s", product_id, quantity)
            return

        record = self.find(product_id)
        if record is None or not record.is_active:
            raise ProductUnavailable(product_id, record.name if record else None)
        raise InsufficientStock(product_id, record.name, available=record.stock, requested=quantity)

    def release(self, product_id: str, quantity: int) -> None:
        _require_positive(quantity)
        result = self.session.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock=ProductModel.stock + quantity, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # The catalog deleted the row; there is nothing to put the units back on.
            raise ProductUnavailable(product_id)
        logger.debug("released product=%s qty=%s", product_id, quantity)
