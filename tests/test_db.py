import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from app.application.coordinator import SQLITE_BEGIN
from app.domain.models import Product, Stock
from app.infrastructure import db as db_module
from app.infrastructure.db import make_coordinator, make_engine, make_session_factory


def test_loaded_state_survives_commit(session_factory):
    with session_factory() as db:
        product = Product(sku="A1", name="Widget", price=10, stock=Stock(quantity=0))
        db.add(product)
        db.commit()

    assert product.sku == "A1"
    assert product.stock.quantity == 0


def test_sqlite_connections_enforce_foreign_keys_and_wal(engine):
    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"


def test_write_transactions_hold_the_write_lock_from_the_start(engine):
    impatient_engine = make_engine(str(engine.url), lock_timeout_ms=100)
    writer = engine.connect().execution_options(**{SQLITE_BEGIN: "IMMEDIATE"})
    writer.begin()
    other = impatient_engine.connect().execution_options(**{SQLITE_BEGIN: "IMMEDIATE"})
    try:
        with pytest.raises(OperationalError, match="database is locked"):
            other.begin()
    finally:
        other.close()
        writer.rollback()
        writer.close()
        impatient_engine.dispose()


def test_module_wiring_follows_settings():
    settings = db_module.settings
    coordinator = make_coordinator(make_session_factory(db_module.engine), settings)

    assert coordinator.max_attempts == settings.TX_MAX_ATTEMPTS
    assert coordinator.lock_timeout_ms == settings.LOCK_TIMEOUT_MS
    assert coordinator.timeout == settings.TX_TIMEOUT_SECONDS
    assert db_module.get_inventory_service().coordinator is db_module.coordinator
    with db_module.SessionLocal() as db:
        assert db.execute(text("SELECT 1")).scalar() == 1
