import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from app.application.catalog import Catalog
from app.application.coordinator import SQLITE_BEGIN, TransactionCoordinator, is_conflict, is_timeout
from app.application.ledger import StockLedger
from app.domain.errors import Conflict, InsufficientStock, Timeout
from app.domain.models import Product, StockMovement
from app.infrastructure.db import make_engine, make_session_factory


class FakePgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def pg_error(pgcode):
    return OperationalError("UPDATE stock SET quantity=%(q)s", {"q": 1}, FakePgError("boom", pgcode))


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def recording_coordinator(session_factory, sleeps):
    return TransactionCoordinator(
        session_factory,
        max_attempts=3,
        backoff_base=0.01,
        backoff_max=0.04,
        timeout=60,
        sleep=sleeps.append,
    )


def failing(times, exc, result="done"):
    calls = []

    def operation(db):
        calls.append(db)
        if len(calls) <= times:
            raise exc
        return result

    return operation, calls


def test_success_commits_once(recording_coordinator, count_rows, sleeps):
    product = recording_coordinator.run(lambda db: Catalog(db).register("A1", "Widget", 10))
    assert product.id is not None
    assert count_rows(Product) == 1
    assert sleeps == []


def test_stale_write_is_retried_until_it_succeeds(recording_coordinator, sleeps):
    operation, calls = failing(2, StaleDataError("stock row changed"))

    assert recording_coordinator.run(operation) == "done"
    assert len(calls) == 3
    assert len(sleeps) == 2


def test_each_attempt_gets_a_fresh_session(recording_coordinator):
    operation, calls = failing(1, StaleDataError("stock row changed"))
    recording_coordinator.run(operation)
    assert calls[0] is not calls[1]


def test_conflict_after_exhausting_attempts(recording_coordinator, sleeps):
    operation, calls = failing(10, StaleDataError("stock row changed"))

    with pytest.raises(Conflict) as excinfo:
        recording_coordinator.run(operation, name="create_order", skus=["A1", "B1"])

    assert len(calls) == 3
    assert len(sleeps) == 2
    assert excinfo.value.context == {"operation": "create_order", "attempts": 3, "skus": ["A1", "B1"]}


@pytest.mark.parametrize("pgcode", ["40001", "40P01"])
def test_serialization_failures_and_deadlocks_are_retried(recording_coordinator, pgcode):
    operation, calls = failing(1, pg_error(pgcode))
    assert recording_coordinator.run(operation) == "done"
    assert len(calls) == 2


@pytest.mark.parametrize("pgcode", ["55P03", "57014"])
def test_lock_timeouts_surface_immediately(recording_coordinator, sleeps, pgcode):
    operation, calls = failing(1, pg_error(pgcode))

    with pytest.raises(Timeout) as excinfo:
        recording_coordinator.run(operation, name="adjust_stock", sku="A1")

    assert len(calls) == 1
    assert sleeps == []
    assert excinfo.value.context == {"operation": "adjust_stock", "sku": "A1"}


def test_business_errors_are_not_retried(recording_coordinator, sleeps):
    operation, calls = failing(5, InsufficientStock("A1", requested=5, available=2))

    with pytest.raises(InsufficientStock):
        recording_coordinator.run(operation)

    assert len(calls) == 1
    assert sleeps == []


def test_other_database_errors_propagate(recording_coordinator):
    operation, calls = failing(5, IntegrityError("INSERT", {}, Exception("constraint failed")))

    with pytest.raises(IntegrityError):
        recording_coordinator.run(operation)

    assert len(calls) == 1


def test_failed_attempt_rolls_back_its_writes(recording_coordinator, count_rows):
    def operation(db):
        Catalog(db).register("A1", "Widget", 10)
        raise StaleDataError("stock row changed")

    with pytest.raises(Conflict):
        recording_coordinator.run(operation)

    assert count_rows(Product) == 0


def test_deadline_turns_a_retry_into_timeout(session_factory):
    coordinator = TransactionCoordinator(session_factory, max_attempts=10, timeout=0, sleep=lambda _: None)
    operation, calls = failing(10, StaleDataError("stock row changed"))

    with pytest.raises(Timeout) as excinfo:
        coordinator.run(operation, name="create_order", skus=["A1"])

    assert len(calls) == 1
    assert excinfo.value.context["skus"] == ["A1"]


def test_backoff_is_bounded(recording_coordinator):
    for attempt in range(1, 8):
        delay = recording_coordinator.backoff(attempt)
        assert 0 <= delay <= min(0.04, 0.01 * 2 ** (attempt - 1))


def test_max_attempts_must_be_positive(session_factory):
    with pytest.raises(ValueError):
        TransactionCoordinator(session_factory, max_attempts=0)


def test_error_classification():
    assert is_conflict(StaleDataError("x"))
    assert is_conflict(pg_error("40001"))
    assert not is_conflict(OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked")))
    assert not is_conflict(pg_error("55P03"))
    assert not is_conflict(ValueError("x"))
    assert is_timeout(pg_error("55P03"))
    assert is_timeout(OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked")))
    assert not is_timeout(pg_error("40001"))
    assert not is_timeout(StaleDataError("x"))


def test_held_write_lock_turns_into_timeout(engine, make_product, count_rows, sleeps):
    product = make_product("A1", stock=5)
    impatient_engine = make_engine(str(engine.url), lock_timeout_ms=100)
    impatient = TransactionCoordinator(make_session_factory(impatient_engine), sleep=sleeps.append)

    holder = engine.connect().execution_options(**{SQLITE_BEGIN: "IMMEDIATE"})
    holder.begin()
    try:
        with pytest.raises(Timeout) as excinfo:
            impatient.run(
                lambda db: StockLedger(db).adjust(product.id, 1, "restock"),
                name="adjust_stock",
                product_id=product.id,
            )
    finally:
        holder.rollback()
        holder.close()
        impatient_engine.dispose()

    assert excinfo.value.context == {"operation": "adjust_stock", "product_id": product.id}
    assert sleeps == []
    assert count_rows(StockMovement) == 1


def test_readers_do_not_wait_for_a_held_write_lock(engine, make_product, sleeps):
    product = make_product("A1", stock=5)
    impatient_engine = make_engine(str(engine.url), lock_timeout_ms=100)
    impatient = TransactionCoordinator(make_session_factory(impatient_engine), sleep=sleeps.append)

    holder = engine.connect().execution_options(**{SQLITE_BEGIN: "IMMEDIATE"})
    holder.begin()
    try:
        found = impatient.run(lambda db: StockLedger(db).quantity_of(product.id), readonly=True)
    finally:
        holder.rollback()
        holder.close()
        impatient_engine.dispose()

    assert found == 5
