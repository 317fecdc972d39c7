from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import storefront.persistence.pg as pg
from storefront.cache import InMemoryReadCache
from storefront.core.config import get_settings
from storefront.core.security import create_access_token
from storefront.domain.orders.aggregates import ShippingAddress
from storefront.domain.payments.gateway import FakePaymentGateway
from storefront.persistence.models import Base, ProductModel
from storefront.persistence.repositories import SqlCartStore


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.gateway_mode = "fake"
    settings.cache_backend = "memory"
    settings.auth_enabled = True
    settings.reconciliation_dir = test_db_path.parent / "reconciliation"

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(configure_test_engine):
    yield
    with pg.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def journal_path() -> Path:
    path = get_settings().reconciliation_dir / "compensation_failures.jsonl"
    if path.exists():
        path.unlink()
    return path


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def make_product():
    def _make(session, name: str = "Widget", price_cents: int = 1000, stock: int = 5, is_active: bool = True, category_id: str | None = "cat-1") -> str:
        row = ProductModel(
            name=name,
            price_cents=price_cents,
            stock=stock,
            is_active=is_active,
            category_id=category_id,
            updated_at=datetime.now(timezone.utc),
        )
        session.add(row)
        session.flush()
        return row.id

    return _make


@pytest.fixture()
def fill_cart():
    def _fill(session, user_id: str, items: list[tuple[str, int]]) -> None:
        store = SqlCartStore(session)
        for product_id, quantity in items:
            store.add_item(user_id, product_id, quantity)

    return _fill


@pytest.fixture()
def address() -> ShippingAddress:
    return ShippingAddress(street="1 Main St", city="Pune", state="MH", zip_code="411001", country="IN")


@pytest.fixture()
def client(configure_test_engine):
    from storefront.main import app

    with TestClient(app) as c:
        app.state.payment_gateway = FakePaymentGateway()
        app.state.read_cache = InMemoryReadCache()
        yield c


@pytest.fixture()
def bearer():
    def _headers(user_id: str, role: str = "customer") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}

    return _headers
