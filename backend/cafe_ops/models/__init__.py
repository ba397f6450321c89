"""SQLAlchemy models."""

from cafe_ops.models.supplier import Supplier
from cafe_ops.models.ingredient import Ingredient
from cafe_ops.models.stock import MovementType, SeasonalAdjustment, StockMovement
from cafe_ops.models.menu import MenuItem, RecipeIngredient
from cafe_ops.models.order import Order, OrderItem, OrderStatus
from cafe_ops.models.audit import AuditLogEntry

__all__ = [
    "Supplier",
    "Ingredient",
    "StockMovement",
    "MovementType",
    "SeasonalAdjustment",
    "MenuItem",
    "RecipeIngredient",
    "Order",
    "OrderItem",
    "OrderStatus",
    "AuditLogEntry",
]
