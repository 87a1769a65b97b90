from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, ForeignKey, DateTime, CheckConstraint
from enum import Enum
from typing import Optional
import datetime

def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)

class Base(DeclarativeBase):
    pass

class OrderStatus(str, Enum):
    # Only CREATED is produced; the rest are reserved for payment/cancellation flows
    CREATED = "CREATED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    # Minor currency unit
    price: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)
    stock: Mapped[Optional["Stock"]] = relationship("Stock", back_populates="product", uselist=False)

    __table_args__ = (CheckConstraint("price >= 0", name="ck_products_price_non_negative"),)

    @property
    def quantity(self) -> int:
        return self.stock.quantity if self.stock is not None else 0

class Stock(Base):
    """Materialized quantity per product; the movement log is the source of truth."""
    __tablename__ = "stock"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    # Bumped on every write; UPDATEs are issued as ... WHERE version = <read version>
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
    product: Mapped[Product] = relationship("Product", back_populates="stock")

    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),)
    __mapper_args__ = {"version_id_col": version}

class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    # Positive = inbound, negative = outbound
    delta: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.CREATED.value)
    total_price: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow)
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", order_by="OrderItem.id"
    )

    __table_args__ = (CheckConstraint("total_price >= 0", name="ck_orders_total_non_negative"),)

class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    qty: Mapped[int] = mapped_column(Integer)
    # Price snapshot taken at order time
    unit_price: Mapped[int] = mapped_column(Integer)
    line_total: Mapped[int] = mapped_column(Integer)
    order: Mapped[Order] = relationship("Order", back_populates="items")
    product: Mapped[Product] = relationship("Product")

    __table_args__ = (CheckConstraint("qty > 0", name="ck_order_items_qty_positive"),)

    @property
    def sku(self) -> str:
        return self.product.sku
