"""Supplier model."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_ops.db.base import Base, TimestampMixin


class Supplier(Base, TimestampMixin):
    """Supplier of ingredients."""

    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    delivery_days: Mapped[int] = mapped_column(Integer, default=7, nullable=False)
    minimum_order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_preferred: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    ingredients: Mapped[list["Ingredient"]] = relationship("Ingredient", back_populates="supplier")


# Forward references
from cafe_ops.models.ingredient import Ingredient
