"""Price suggestion schemas."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class RecipeIngredientInput(BaseModel):
    """One line of a recipe."""

    ingredient_id: int
    quantity: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=20)


class PriceCalculationRequest(BaseModel):
    """Price a recipe."""

    menu_item_id: Optional[int] = None
    recipe_ingredients: List[RecipeIngredientInput] = Field(..., min_length=1)
    menu_category: str = Field(..., min_length=1, max_length=50)
    target_margin: Optional[float] = Field(default=None, gt=0, lt=100)
    market_analysis: bool = False
    competitor_prices: Optional[List[float]] = None
    preparation_complexity: Optional[Literal["simple", "medium", "complex"]] = None


class NewRecipeInput(BaseModel):
    """A recipe that has no menu item yet."""

    menu_item_name: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=50)
    recipe_ingredients: List[RecipeIngredientInput] = Field(..., min_length=1)


class BulkCalculationRequest(BaseModel):
    """Price several menu items and/or new recipes."""

    menu_item_ids: Optional[List[int]] = None
    recipe_data: Optional[List[NewRecipeInput]] = None
    target_margin: Optional[float] = Field(default=None, gt=0, lt=100)
    update_existing: bool = False

    @model_validator(mode="after")
    def check_has_items(self) -> "BulkCalculationRequest":
        if not self.menu_item_ids and not self.recipe_data:
            raise ValueError("Either menu_item_ids or recipe_data is required")
        return self


class MarginAnalysisRequest(BaseModel):
    """Analyze current menu margins."""

    menu_item_ids: Optional[List[int]] = None
    category_filter: Optional[str] = None
    include_suggestions: bool = True


class IngredientCostUpdate(BaseModel):
    """New unit cost for one ingredient."""

    ingredient_id: int
    new_cost_per_unit: float = Field(..., ge=0)
    effective_date: Optional[date] = None


class CostUpdateRequest(BaseModel):
    """Update ingredient costs and reprice affected menu items."""

    ingredient_updates: List[IngredientCostUpdate] = Field(..., min_length=1)
    recalculate_affected_items: bool = True
