"""Order settlement: turns a requested item list into a committed order.

Runs inside one coordinator transaction. Stock rows are locked in product-id
order before any check or decrement, so two orders sharing products always
take their row locks in the same sequence and never deadlock on each other.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.application.catalog import Catalog
from app.application.ledger import StockLedger
from app.domain.errors import InsufficientStock, InvalidInput, OrderNotFound, ProductNotFound
from app.domain.models import Order, OrderItem, OrderStatus
from shared.core import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderLine:
    sku: str
    qty: int


def order_reason(order_id: int) -> str:
    return f"Order#{order_id}"


class OrderSettlement:
    def __init__(self, db: Session, catalog: Optional[Catalog] = None, ledger: Optional[StockLedger] = None):
        self.db = db
        self.catalog = catalog or Catalog(db)
        self.ledger = ledger or StockLedger(db)

    @staticmethod
    def validate(lines: Sequence[OrderLine]) -> None:
        if not lines:
            raise InvalidInput("an order needs at least one item", field="items")
        seen = set()
        for line in lines:
            if not line.sku:
                raise InvalidInput("sku must not be empty", field="sku")
            if line.qty is None or line.qty <= 0:
                raise InvalidInput(f"qty must be positive, got {line.qty}", field="qty", sku=line.sku)
            if line.sku in seen:
                raise InvalidInput(f"duplicate sku in order: {line.sku}", field="items", sku=line.sku)
            seen.add(line.sku)

    def create_order(self, lines: Sequence[OrderLine]) -> Order:
        self.validate(lines)

        products = self.catalog.resolve_many(line.sku for line in lines)
        for line in lines:
            product = products.get(line.sku)
            if product is None or product.stock is None:
                raise ProductNotFound(line.sku)

        # Fixed processing order across concurrent orders
        ordered = sorted(lines, key=lambda line: products[line.sku].id)

        for line in ordered:
            available = self.ledger.lock(products[line.sku].id).quantity
            if available - line.qty < 0:
                raise InsufficientStock(line.sku, requested=line.qty, available=available)

        order = Order(status=OrderStatus.CREATED.value, total_price=0)
        for line in lines:
            product = products[line.sku]
            order.items.append(
                OrderItem(
                    product=product,
                    qty=line.qty,
                    unit_price=product.price,
                    line_total=product.price * line.qty,
                )
            )
        order.total_price = sum(item.line_total for item in order.items)
        self.db.add(order)
        self.db.flush()

        reason = order_reason(order.id)
        for line in ordered:
            self.ledger.adjust(products[line.sku].id, -line.qty, reason)

        logger.info(
            f"Order {order.id} settled",
            extra={'extra_fields': {
                'order_id': order.id,
                'total_price': order.total_price,
                'items': [{'sku': line.sku, 'qty': line.qty} for line in lines],
            }}
        )
        return order

    def _orders(self):
        return select(Order).options(selectinload(Order.items).selectinload(OrderItem.product))

    def get_order(self, order_id: int) -> Order:
        order = self.db.scalar(self._orders().where(Order.id == order_id))
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list_orders(self) -> List[Order]:
        return list(self.db.scalars(self._orders().order_by(Order.id)))
