"""Ingredient model."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_ops.db.base import Base, TimestampMixin


class Ingredient(Base, TimestampMixin):
    """A stocked raw ingredient (coffee beans, milk, sugar...)."""

    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)  # coffee, tea, ice, dairy...
    unit: Mapped[str] = mapped_column(String(20), nullable=False)  # gram, ml, piece
    current_stock: Mapped[Decimal] = mapped_column(Numeric(10, 3), default=0, nullable=False)
    minimum_stock: Mapped[Decimal] = mapped_column(Numeric(10, 3), default=0, nullable=False)
    maximum_stock: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3), nullable=True)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    supplier_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Relationships
    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier", back_populates="ingredients")
    stock_movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="ingredient"
    )
    recipe_lines: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient", back_populates="ingredient"
    )


# Forward references
from cafe_ops.models.supplier import Supplier
from cafe_ops.models.stock import StockMovement
from cafe_ops.models.menu import RecipeIngredient
