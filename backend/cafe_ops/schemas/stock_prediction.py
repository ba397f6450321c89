"""Stock prediction schemas."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

Urgency = Literal["low", "medium", "high", "critical"]
SeasonName = Literal["dry", "wet", "holiday", "ramadan"]


class StockPredictionRequest(BaseModel):
    """Predict consumption for specific ingredients."""

    ingredient_ids: List[int] = Field(..., min_length=1)
    prediction_days: int = Field(..., ge=1, le=90)
    include_seasonal: bool = True
    include_trends: bool = True
    confidence_threshold: Optional[float] = Field(default=None, ge=0, le=1)


class BulkPredictionRequest(BaseModel):
    """Predict consumption for every active ingredient."""

    prediction_days: int = Field(..., ge=1, le=90)
    category_filter: Optional[str] = None
    min_stock_threshold: Optional[float] = Field(default=None, ge=0)
    include_reorder_suggestions: bool = False
    seasonal_adjustments: bool = True


class PatternAnalysisRequest(BaseModel):
    """Analyze historical consumption patterns."""

    ingredient_ids: Optional[List[int]] = None
    analysis_period_days: int = Field(default=30, ge=7, le=365)
    include_menu_correlation: bool = False
    detect_anomalies: bool = True


class SeasonalAdjustmentItem(BaseModel):
    """A demand multiplier for one ingredient over a date range."""

    ingredient_id: int
    season: SeasonName
    multiplier: float = Field(..., gt=0, le=10)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_date_range(self) -> "SeasonalAdjustmentItem":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SeasonalAdjustmentRequest(BaseModel):
    """Store seasonal adjustments and optionally recalculate predictions."""

    adjustments: List[SeasonalAdjustmentItem] = Field(..., min_length=1)
    apply_to_predictions: bool = False
