"""Inventory domain errors.

Raised by the catalog, ledger and settlement layers when a business rule or a
consistency check fails. The API layer translates each kind into an HTTP
response; the transaction coordinator retries only :class:`Conflict`.
"""

from typing import Any, Dict


class InventoryError(Exception):
    """Base class; ``context`` names the identifiers involved (sku, order_id...)."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, **self.context}


class InvalidInput(InventoryError):
    """Malformed or out-of-range caller data. Nothing was written."""


class DuplicateSku(InventoryError):
    def __init__(self, sku: str):
        super().__init__(f"SKU already registered: {sku}", sku=sku)


class ProductNotFound(InventoryError):
    def __init__(self, sku: str):
        super().__init__(f"Product not found: {sku}", sku=sku)


class OrderNotFound(InventoryError):
    def __init__(self, order_id: int):
        super().__init__(f"Order not found: {order_id}", order_id=order_id)


class InsufficientStock(InventoryError):
    """Applying the change would take the product's quantity below zero."""

    def __init__(self, sku: str, requested: int, available: int):
        super().__init__(
            f"Not enough stock for: {sku} (requested {requested}, available {available})",
            sku=sku,
            requested=requested,
            available=available,
        )


class Conflict(InventoryError):
    """A concurrent write collided with ours and retries were exhausted."""

    def __init__(self, operation: str, attempts: int, **context: Any):
        super().__init__(
            f"Concurrent update conflict in {operation} after {attempts} attempt(s)",
            operation=operation,
            attempts=attempts,
            **context,
        )


class Timeout(InventoryError):
    """Locks or commit could not be obtained within the allowed time."""

    def __init__(self, operation: str, detail: str = "lock wait exceeded", **context: Any):
        super().__init__(f"Timed out in {operation}: {detail}", operation=operation, **context)
