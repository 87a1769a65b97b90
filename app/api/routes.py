from fastapi import APIRouter, Depends
from app.infrastructure.db import get_inventory_service
from app.application.service import InventoryService
from app.application.schemas import (
    AdjustmentRead,
    MovementRead,
    OrderCreate,
    OrderRead,
    ProductCreate,
    ProductRead,
    ReconciliationRead,
    StockAdjust,
)

products_router = APIRouter(prefix="/products", tags=["products"])
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])
orders_router = APIRouter(prefix="/orders", tags=["orders"])

@products_router.post("", response_model=ProductRead, status_code=201)
def register_product(payload: ProductCreate, service: InventoryService = Depends(get_inventory_service)):
    return service.register_product(payload)

@products_router.get("", response_model=list[ProductRead])
def list_products(service: InventoryService = Depends(get_inventory_service)):
    return service.list_products()

@products_router.get("/{sku}", response_model=ProductRead)
def get_product(sku: str, service: InventoryService = Depends(get_inventory_service)):
    return service.get_product(sku)

@inventory_router.post("/adjust", response_model=AdjustmentRead)
def adjust_stock(payload: StockAdjust, service: InventoryService = Depends(get_inventory_service)):
    return service.adjust_stock(payload)

@inventory_router.get("/{sku}/movements", response_model=list[MovementRead])
def list_movements(sku: str, service: InventoryService = Depends(get_inventory_service)):
    return service.movements(sku)

@inventory_router.get("/{sku}/reconcile", response_model=ReconciliationRead)
def reconcile(sku: str, service: InventoryService = Depends(get_inventory_service)):
    return ReconciliationRead.model_validate(service.reconcile(sku))

@orders_router.post("", response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, service: InventoryService = Depends(get_inventory_service)):
    return service.create_order(payload)

@orders_router.get("", response_model=list[OrderRead])
def list_orders(service: InventoryService = Depends(get_inventory_service)):
    return service.list_orders()

@orders_router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, service: InventoryService = Depends(get_inventory_service)):
    return service.get_order(order_id)
