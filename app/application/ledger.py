"""Stock ledger: per-product quantity plus the append-only movement log.

Quantities are only ever written through :meth:`StockLedger.adjust`, which
locks the account row, re-reads it, and pairs the new quantity with its
movement in one flush. The ``stock`` row is also version-stamped, so an UPDATE
built from a stale read matches nothing and SQLAlchemy raises
``StaleDataError``; the transaction coordinator retries that on fresh state.
"""

from dataclasses import dataclass
from typing import List, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.domain.errors import InsufficientStock, InvalidInput, ProductNotFound
from app.domain.models import Product, Stock, StockMovement
from shared.core import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    product_id: int
    sku: str
    quantity: int
    ledger_total: int

    @property
    def consistent(self) -> bool:
        return self.quantity == self.ledger_total


class StockLedger:
    def __init__(self, db: Session):
        self.db = db

    def account(self, product_id: int) -> Stock:
        stock = self.db.get(Stock, product_id)
        if stock is None:
            raise self._not_found(product_id)
        return stock

    def lock(self, product_id: int) -> Stock:
        """Row-lock the account and refresh it from the committed row.

        Blocks while another transaction holds the lock (PostgreSQL). SQLite has
        no row locks; there the coordinator already holds the write lock.
        """
        stock = self.db.scalar(
            select(Stock)
            .where(Stock.product_id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if stock is None:
            raise self._not_found(product_id)
        return stock

    def _not_found(self, product_id: int) -> ProductNotFound:
        product = self.db.get(Product, product_id)
        return ProductNotFound(product.sku if product is not None else str(product_id))

    def quantity_of(self, product_id: int) -> int:
        """Point-in-time read; advisory only once returned."""
        return self.account(product_id).quantity

    def adjust(self, product_id: int, delta: int, reason: str) -> Tuple[int, StockMovement]:
        if not delta:
            raise InvalidInput("delta must be a non-zero integer", field="delta", product_id=product_id)
        reason = (reason or "").strip()
        if not reason:
            raise InvalidInput("reason must not be empty", field="reason", product_id=product_id)

        stock = self.lock(product_id)
        current = stock.quantity
        next_quantity = current + delta
        if next_quantity < 0:
            raise InsufficientStock(stock.product.sku, requested=-delta, available=current)

        stock.quantity = next_quantity
        movement = StockMovement(product_id=product_id, delta=delta, reason=reason)
        self.db.add(movement)
        # UPDATE stock ... WHERE version = :read_version, then INSERT movement
        self.db.flush()

        logger.info(
            f"Stock adjusted for {stock.product.sku}: {current} -> {next_quantity}",
            extra={'extra_fields': {
                'product_id': product_id,
                'delta': delta,
                'reason': reason,
                'quantity': next_quantity,
                'movement_id': movement.id,
            }}
        )
        return next_quantity, movement

    def movements(self, product_id: int) -> List[StockMovement]:
        return list(
            self.db.scalars(
                select(StockMovement)
                .where(StockMovement.product_id == product_id)
                .order_by(StockMovement.id)
            )
        )

    def reconcile(self, product_id: int) -> Reconciliation:
        """Replay the movement log from zero and compare with the cached quantity."""
        stock = self.account(product_id)
        ledger_total = self.db.scalar(
            select(func.coalesce(func.sum(StockMovement.delta), 0))
            .where(StockMovement.product_id == product_id)
        )
        result = Reconciliation(
            product_id=product_id,
            sku=stock.product.sku,
            quantity=stock.quantity,
            ledger_total=int(ledger_total),
        )
        if not result.consistent:
            logger.error(
                f"Ledger mismatch for {result.sku}",
                extra={'extra_fields': {
                    'product_id': product_id,
                    'quantity': result.quantity,
                    'ledger_total': result.ledger_total,
                }}
            )
        return result
