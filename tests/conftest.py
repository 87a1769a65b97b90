"""
Shared fixtures: a file-backed SQLite database per test, the coordinator and
service built on it, and a TestClient wired to that service.
"""
import os
import tempfile

# app.infrastructure.db builds its module-level engine from settings on import
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(), "stock-ledger.db"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app.application.catalog import Catalog
from app.application.coordinator import TransactionCoordinator
from app.application.ledger import StockLedger
from app.application.service import InventoryService
from app.infrastructure.db import get_inventory_service, init_models, make_engine, make_session_factory
from app.main import app as fastapi_app


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_models(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def coordinator(session_factory):
    return TransactionCoordinator(session_factory, max_attempts=3, backoff_base=0.001, backoff_max=0.005)


@pytest.fixture
def service(coordinator):
    return InventoryService(coordinator)


@pytest.fixture
def client(service):
    fastapi_app.dependency_overrides[get_inventory_service] = lambda: service
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_product(coordinator):
    """Register a product and optionally receive opening stock."""

    def _make(sku, price=1000, stock=0, name=None):
        def operation(db):
            product = Catalog(db).register(sku, name or f"Product {sku}", price)
            if stock:
                StockLedger(db).adjust(product.id, stock, "opening stock")
            return product

        return coordinator.run(operation, name="make_product")

    return _make


@pytest.fixture
def count_rows(session_factory):
    def _count(model):
        with session_factory() as db:
            return db.scalar(select(func.count()).select_from(model))

    return _count


@pytest.fixture
def quantity(session_factory):
    def _quantity(product_id):
        with session_factory() as db:
            return StockLedger(db).quantity_of(product_id)

    return _quantity
