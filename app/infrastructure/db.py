from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from app.core_settings import Settings, get_settings
from app.application.coordinator import SQLITE_BEGIN, TransactionCoordinator
from app.application.service import InventoryService
from app.domain.models import Base

def make_engine(url: str, lock_timeout_ms: int = 2000) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            future=True,
            # busy handler: how long a writer waits for another writer's lock
            connect_args={"check_same_thread": False, "timeout": lock_timeout_ms / 1000},
        )

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            # pysqlite must not emit its own BEGIN; _sqlite_begin does it
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            # Readers never block the writer
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            # IMMEDIATE takes the write lock up front, so writers queue instead of colliding
            mode = conn.get_execution_options().get(SQLITE_BEGIN, "DEFERRED")
            conn.exec_driver_sql(f"BEGIN {mode}")

        return engine
    return create_engine(url, echo=False, future=True, pool_pre_ping=True)

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

def make_coordinator(session_factory: sessionmaker, settings: Settings) -> TransactionCoordinator:
    return TransactionCoordinator(
        session_factory,
        max_attempts=settings.TX_MAX_ATTEMPTS,
        backoff_base=settings.TX_BACKOFF_BASE_MS / 1000,
        backoff_max=settings.TX_BACKOFF_MAX_MS / 1000,
        timeout=settings.TX_TIMEOUT_SECONDS,
        lock_timeout_ms=settings.LOCK_TIMEOUT_MS,
    )

settings = get_settings()
engine = make_engine(settings.database_url(), lock_timeout_ms=settings.LOCK_TIMEOUT_MS)
SessionLocal = make_session_factory(engine)
coordinator = make_coordinator(SessionLocal, settings)

def get_inventory_service() -> InventoryService:
    return InventoryService(coordinator)

def init_models(bind: Engine = None):
    Base.metadata.create_all(bind or engine)
