"""Stock models: StockMovement and SeasonalAdjustment."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_ops.db.base import Base, TimestampMixin


class MovementType(str, Enum):
    """Kinds of stock movements."""

    PURCHASE = "purchase"  # Goods received
    USAGE = "usage"  # Consumed by orders (the series forecasts are built from)
    WASTE = "waste"  # Spoilage, breakage
    ADJUSTMENT = "adjustment"  # Manual correction
    INITIAL = "initial"  # Opening balance
    RETURN = "return"  # Returned to supplier


class StockMovement(Base):
    """Ledger of all stock changes for an ingredient."""

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)  # positive in, negative out
    reference_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # order, purchase_order, manual
    reference_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    # Relationships
    ingredient: Mapped["Ingredient"] = relationship("Ingredient", back_populates="stock_movements")


class SeasonalAdjustment(Base, TimestampMixin):
    """Owner-provided demand multiplier for an ingredient over a date range."""

    __tablename__ = "seasonal_adjustments"
    __table_args__ = (
        UniqueConstraint("ingredient_id", "season", "start_date", name="uq_seasonal_adjustment"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    season: Mapped[str] = mapped_column(String(20), nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


# Forward references
from cafe_ops.models.ingredient import Ingredient
