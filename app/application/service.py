from typing import List
from app.application.catalog import Catalog
from app.application.coordinator import TransactionCoordinator
from app.application.ledger import Reconciliation, StockLedger
from app.application.settlement import OrderLine, OrderSettlement
from app.domain.models import Order, Product, StockMovement
from .schemas import AdjustmentRead, MovementRead, OrderCreate, ProductCreate, ProductRead, StockAdjust

class InventoryService:
    """Runs each catalog/ledger/settlement operation group as one coordinated transaction."""

    def __init__(self, coordinator: TransactionCoordinator):
        self.coordinator = coordinator

    def register_product(self, data: ProductCreate) -> Product:
        return self.coordinator.run(
            lambda db: Catalog(db).register(data.sku, data.name, data.price),
            name="register_product",
            sku=data.sku,
        )

    def list_products(self) -> List[Product]:
        return self.coordinator.run(lambda db: Catalog(db).list(), name="list_products", readonly=True)

    def get_product(self, sku: str) -> Product:
        return self.coordinator.run(lambda db: Catalog(db).get(sku), name="get_product", readonly=True, sku=sku)

    def adjust_stock(self, data: StockAdjust) -> AdjustmentRead:
        def operation(db):
            product = Catalog(db).get(data.sku)
            quantity, movement = StockLedger(db).adjust(product.id, data.delta, data.reason)
            return AdjustmentRead(
                product=ProductRead.model_validate(product),
                quantity=quantity,
                movement=MovementRead.model_validate(movement),
            )

        return self.coordinator.run(operation, name="adjust_stock", sku=data.sku)

    def movements(self, sku: str) -> List[StockMovement]:
        def operation(db):
            product = Catalog(db).get(sku)
            return StockLedger(db).movements(product.id)

        return self.coordinator.run(operation, name="list_movements", readonly=True, sku=sku)

    def reconcile(self, sku: str) -> Reconciliation:
        def operation(db):
            product = Catalog(db).get(sku)
            return StockLedger(db).reconcile(product.id)

        return self.coordinator.run(operation, name="reconcile", readonly=True, sku=sku)

    def create_order(self, data: OrderCreate) -> Order:
        lines = [OrderLine(sku=item.sku, qty=item.qty) for item in data.items]
        return self.coordinator.run(
            lambda db: OrderSettlement(db).create_order(lines),
            name="create_order",
            skus=[line.sku for line in lines],
        )

    def get_order(self, order_id: int) -> Order:
        return self.coordinator.run(
            lambda db: OrderSettlement(db).get_order(order_id),
            name="get_order",
            readonly=True,
            order_id=order_id,
        )

    def list_orders(self) -> List[Order]:
        return self.coordinator.run(lambda db: OrderSettlement(db).list_orders(), name="list_orders", readonly=True)
