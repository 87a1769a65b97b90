from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    price: int = Field(ge=0)

class ProductRead(BaseModel):
    id: int
    sku: str
    name: str
    price: int
    quantity: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class StockAdjust(BaseModel):
    sku: str = Field(min_length=1)
    # Positive = inbound, negative = outbound
    delta: int
    reason: str = Field(min_length=1, max_length=255)

class MovementRead(BaseModel):
    id: int
    product_id: int
    delta: int
    reason: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AdjustmentRead(BaseModel):
    product: ProductRead
    quantity: int
    movement: MovementRead

    class Config:
        from_attributes = True

class ReconciliationRead(BaseModel):
    product_id: int
    sku: str
    quantity: int
    ledger_total: int
    consistent: bool

    class Config:
        from_attributes = True

class OrderItemCreate(BaseModel):
    sku: str = Field(min_length=1)
    qty: int = Field(gt=0)

class OrderCreate(BaseModel):
    items: list[OrderItemCreate] = Field(min_length=1)

class OrderItemRead(BaseModel):
    id: int
    product_id: int
    sku: str
    qty: int
    unit_price: int
    line_total: int

    class Config:
        from_attributes = True

class OrderRead(BaseModel):
    id: int
    status: str
    total_price: int
    created_at: datetime
    items: list[OrderItemRead]

    class Config:
        from_attributes = True
