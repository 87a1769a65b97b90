from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from typing import Dict, Iterable, List
from app.domain.models import Product, Stock
from app.domain.errors import DuplicateSku, InvalidInput, ProductNotFound
from shared.core import get_logger

logger = get_logger(__name__)

class Catalog:
    """Product identity: sku <-> id, name and price."""

    def __init__(self, db: Session):
        self.db = db

    def register(self, sku: str, name: str, price: int) -> Product:
        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku:
            raise InvalidInput("sku must not be empty", field="sku")
        if not name:
            raise InvalidInput("name must not be empty", field="name", sku=sku)
        if price is None or price < 0:
            raise InvalidInput(f"price must be a non-negative integer, got {price}", field="price", sku=sku)

        if self.db.scalar(select(Product.id).where(Product.sku == sku)) is not None:
            raise DuplicateSku(sku)

        product = Product(sku=sku, name=name, price=price)
        # A product is never visible without its stock account
        product.stock = Stock(quantity=0)
        self.db.add(product)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same sku
            raise DuplicateSku(sku) from exc

        logger.info(
            f"Registered product {sku}",
            extra={'extra_fields': {'sku': sku, 'product_id': product.id, 'price': price}}
        )
        return product

    def resolve_many(self, skus: Iterable[str]) -> Dict[str, Product]:
        """Return the products matching ``skus``; unknown skus are simply absent."""
        wanted = set(skus)
        if not wanted:
            return {}
        rows = self.db.scalars(
            select(Product).options(selectinload(Product.stock)).where(Product.sku.in_(wanted))
        )
        return {product.sku: product for product in rows}

    def get(self, sku: str) -> Product:
        product = self.resolve_many([sku]).get(sku)
        if product is None:
            raise ProductNotFound(sku)
        return product

    def list(self) -> List[Product]:
        return list(
            self.db.scalars(select(Product).options(selectinload(Product.stock)).order_by(Product.id))
        )
