"""SQLAlchemy models."""

from storeops.models.user import User
from storeops.models.product import Product
from storeops.models.stock import MovementReason, StockMovement
from storeops.models.inventory_check import (
    InventoryCheck,
    InventoryCheckItem,
    InventoryCheckStatus,
)

__all__ = [
    "User",
    "Product",
    "MovementReason",
    "StockMovement",
    "InventoryCheck",
    "InventoryCheckItem",
    "InventoryCheckStatus",
]
