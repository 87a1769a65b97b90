"""Transaction boundary and retry policy shared by the ledger and settlement.

Every operation group runs on a fresh ``Session`` inside ``session.begin()``.
Writers take their locks before reading what they change: stock rows are read
with ``SELECT ... FOR UPDATE`` on PostgreSQL, and on SQLite the transaction
opens with ``BEGIN IMMEDIATE``. Contending writers therefore wait for each
other instead of failing. Lock waits are bounded; running out of patience is a
:class:`Timeout`. Collisions that still slip through (a version-checked UPDATE
that matched no row, or a serialization failure/deadlock reported by the
store) are retried from the start with jittered exponential backoff.
Everything else, including all business errors, rolls back and propagates on
the first attempt.
"""

import random
import time
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.domain.errors import Conflict, Timeout
from shared.core import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATEs
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"
QUERY_CANCELED = "57014"

CONFLICT_SQLSTATES = {SERIALIZATION_FAILURE, DEADLOCK_DETECTED}
TIMEOUT_SQLSTATES = {LOCK_NOT_AVAILABLE, QUERY_CANCELED}

# Connection execution option read by the SQLite begin hook in app.infrastructure.db
SQLITE_BEGIN = "sqlite_begin"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _sqlite_busy(exc: DBAPIError) -> bool:
    # the busy handler gave up waiting for another writer
    return "database is locked" in str(exc.orig)


def is_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    return isinstance(exc, DBAPIError) and _sqlstate(exc) in CONFLICT_SQLSTATES


def is_timeout(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    return _sqlstate(exc) in TIMEOUT_SQLSTATES or _sqlite_busy(exc)


class TransactionCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        max_attempts: int = 3,
        backoff_base: float = 0.02,
        backoff_max: float = 0.25,
        timeout: float = 5.0,
        lock_timeout_ms: int = 2000,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.timeout = timeout
        self.lock_timeout_ms = lock_timeout_ms
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Full jitter: uniform in [0, min(max, base * 2**(attempt-1))]."""
        return random.uniform(0, min(self.backoff_max, self.backoff_base * 2 ** (attempt - 1)))

    def run(
        self,
        operation: Callable[[Session], T],
        name: str = "operation",
        readonly: bool = False,
        **context: Any,
    ) -> T:
        """Run ``operation(session)`` atomically, retrying on write conflicts.

        The operation must be safe to re-run from scratch: it is handed a new
        session on each attempt and must re-read whatever state it depends on.
        ``readonly`` operations skip the up-front write lock on SQLite.
        ``context`` names what the operation touches (``sku``, ``skus``,
        ``product_id``...) and is attached to :class:`Conflict` and
        :class:`Timeout`.
        """
        deadline = time.monotonic() + self.timeout
        attempt = 0
        while True:
            attempt += 1
            session = self.session_factory()
            try:
                with session.begin():
                    self._open(session, readonly)
                    return operation(session)
            except (StaleDataError, DBAPIError) as exc:
                if is_timeout(exc):
                    logger.warning(
                        f"{name} timed out waiting for locks",
                        extra={'extra_fields': {'operation': name, 'attempt': attempt, **context}}
                    )
                    raise Timeout(name, **context) from exc
                if not is_conflict(exc):
                    raise
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"{name} aborted: conflict persisted after {attempt} attempts",
                        extra={'extra_fields': {'operation': name, 'attempts': attempt, **context}}
                    )
                    raise Conflict(name, attempt, **context) from exc
                delay = self.backoff(attempt)
                if time.monotonic() + delay >= deadline:
                    raise Timeout(
                        name, f"deadline of {self.timeout}s exceeded after {attempt} attempt(s)", **context
                    ) from exc
                logger.info(
                    f"{name} hit a concurrent write, retrying",
                    extra={'extra_fields': {
                        'operation': name,
                        'attempt': attempt,
                        'delay_ms': round(delay * 1000, 1),
                        **context,
                    }}
                )
            finally:
                session.close()
            self._sleep(delay)

    def _open(self, session: Session, readonly: bool) -> None:
        """Check out the attempt's connection and bound its lock waits."""
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            session.connection(execution_options={SQLITE_BEGIN: "DEFERRED" if readonly else "IMMEDIATE"})
        elif dialect == "postgresql" and self.lock_timeout_ms:
            # SET does not take bind parameters
            session.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))
