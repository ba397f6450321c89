"""Price Suggestion Service.

Prices menu items from their recipes: ingredient cost, overhead and labor
build the total cost, and a category-adjusted 60-70% target margin sets the
price.  Also analyzes current menu margins and propagates ingredient cost
changes to menu prices.

Writes are flushed, not committed; the calling route owns the transaction.
"""

from __future__ import annotations

import logging
import statistics
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from cafe_ops.core import pricing
from cafe_ops.core.config import settings
from cafe_ops.core.currency import format_currency
from cafe_ops.models.ingredient import Ingredient
from cafe_ops.models.menu import MenuItem, RecipeIngredient
from cafe_ops.services import price_calculator as pc

logger = logging.getLogger(__name__)


class IngredientValidationError(ValueError):
    """Raised when recipe lines reference unknown ingredients or wrong units."""
    def __init__(self, missing_ingredients: Sequence[int], invalid_units: Sequence[str]):
        self.missing_ingredients = list(missing_ingredients)
        self.invalid_units = list(invalid_units)
        super().__init__(
            f"Invalid ingredients: missing={self.missing_ingredients} units={self.invalid_units}"
        )


class PriceSuggestionService:
    """Recipe-based menu pricing."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calculate_menu_item_price(
        self,
        recipe_ingredients: Sequence[Dict[str, Any]],
        menu_category: str,
        menu_item_id: Optional[int] = None,
        target_margin: Optional[float] = None,
        market_analysis: bool = False,
        competitor_prices: Optional[Sequence[float]] = None,
        preparation_complexity: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Full price breakdown for a recipe.

        Each recipe line is ``{"ingredient_id", "quantity", "unit"}``.
        Raises IngredientValidationError for missing/inactive ingredients or
        unit mismatches.
        """
        ingredients = self._validate_ingredients(recipe_ingredients)

        lines = []
        for line in recipe_ingredients:
            ing = ingredients[line["ingredient_id"]]
            quantity = float(line["quantity"])
            cost_per_unit = float(ing.cost_per_unit)
            lines.append({
                "ingredient_id": ing.id,
                "ingredient_name": ing.name,
                "quantity": quantity,
                "unit": ing.unit,
                "cost_per_unit": cost_per_unit,
                "total_cost": round(quantity * cost_per_unit, 2),
            })
        ingredient_cost = sum(line["quantity"] * line["cost_per_unit"] for line in lines)

        breakdown = pc.cost_breakdown(ingredient_cost, menu_category, preparation_complexity)
        modifier = pc.category_modifier(menu_category)
        margin = pc.target_margin(target_margin, modifier["margin_adjustment"])

        total_cost = breakdown["total_cost"]
        raw_price = pc.suggest_price(total_cost, margin)
        rounded_price = pc.round_price(raw_price, settings.price_rounding_increment)

        market = pc.market_analysis(rounded_price, competitor_prices) if market_analysis else None

        confidence = pc.confidence_score(
            [
                {"last_updated": ing.updated_at, "current_stock": float(ing.current_stock)}
                for ing in ingredients.values()
            ],
            has_market_analysis=market is not None,
        )

        return {
            "menu_item_id": menu_item_id,
            "menu_category": menu_category,
            "ingredient_costs": lines,
            "total_ingredient_cost": round(ingredient_cost, 2),
            "overhead_percentage": breakdown["overhead_percentage"],
            "overhead_cost": round(breakdown["overhead_cost"], 2),
            "labor_cost": round(breakdown["labor_cost"], 2),
            "total_cost": round(total_cost, 2),
            "target_margin": margin,
            "suggested_price": round(raw_price, 2),
            "rounded_price": rounded_price,
            "formatted_price": format_currency(rounded_price),
            "ppn_amount": pricing.calculate_ppn(rounded_price),
            "price_with_ppn": pricing.amount_with_tax(rounded_price),
            "competitor_analysis": market,
            "profitability": pc.profitability(rounded_price, total_cost),
            "confidence_score": confidence,
            "factors_considered": pc.factors_considered(market is not None),
        }

    def calculate_bulk_prices(
        self,
        menu_item_ids: Optional[Sequence[int]] = None,
        recipe_data: Optional[Sequence[Dict[str, Any]]] = None,
        target_margin: Optional[float] = None,
        update_existing: bool = False,
    ) -> Dict[str, Any]:
        """Price existing menu items and/or new recipes.

        Per-item failures are reported in the results; they do not abort
        the batch.  With *update_existing* the rounded price and total cost
        are written back to existing menu items.
        """
        results: List[Dict[str, Any]] = []
        margins: List[float] = []

        if menu_item_ids:
            items = {item.id: item for item in self._load_menu_items(menu_item_ids=menu_item_ids)}
            for item_id in menu_item_ids:
                item = items.get(item_id)
                if item is None:
                    results.append({
                        "menu_item_id": item_id,
                        "menu_item_name": None,
                        "success": False,
                        "error": "Menu item not found",
                    })
                    continue

                entry = self._price_entry(
                    item.id, item.name, self._recipe_lines(item), item.category, target_margin,
                )
                if entry["success"]:
                    margins.append(entry["calculation"]["profitability"]["profit_margin"])
                    if update_existing:
                        item.base_price = entry["calculation"]["rounded_price"]
                        item.cost_price = entry["calculation"]["total_cost"]
                results.append(entry)

        for recipe in recipe_data or []:
            entry = self._price_entry(
                None, recipe.get("menu_item_name"), recipe.get("recipe_ingredients") or [],
                recipe.get("category"), target_margin,
            )
            if entry["success"]:
                margins.append(entry["calculation"]["profitability"]["profit_margin"])
            results.append(entry)

        if update_existing:
            self.db.flush()

        successful = sum(1 for r in results if r["success"])
        logger.info("Bulk price calculation: %d of %d succeeded", successful, len(results))
        return {
            "results": results,
            "summary": {
                "total_processed": len(results),
                "successful": successful,
                "failed": len(results) - successful,
                "average_margin": round(sum(margins) / len(margins), 2) if margins else 0.0,
            },
        }

    def analyze_menu_margins(
        self,
        menu_item_ids: Optional[Sequence[int]] = None,
        category_filter: Optional[str] = None,
        include_suggestions: bool = True,
    ) -> Dict[str, Any]:
        """Compare current menu margins with recipe-based optimal prices."""
        items = self._load_menu_items(menu_item_ids=menu_item_ids, category=category_filter)

        distribution = {"below_target": 0, "within_target": 0, "above_target": 0}
        by_category: Dict[str, List[float]] = defaultdict(list)
        opportunities: List[Dict[str, Any]] = []
        margins: List[float] = []
        total_potential = 0.0

        for item in items:
            lines = self._recipe_lines(item)
            if not lines:
                continue
            try:
                optimal = self.calculate_menu_item_price(lines, item.category, menu_item_id=item.id)
            except IngredientValidationError as exc:
                logger.warning("Skipping menu item %s in margin analysis: %s", item.id, exc)
                continue

            current_price = float(item.base_price)
            if current_price <= 0:
                continue
            cost = float(item.cost_price) if item.cost_price is not None else optimal["total_cost"]
            current_margin = (current_price - cost) / current_price * 100

            margins.append(current_margin)
            by_category[item.category].append(current_margin)
            distribution[pc.margin_band(current_margin)] += 1

            difference = optimal["rounded_price"] - current_price
            if abs(difference) > pc.OPPORTUNITY_THRESHOLD:
                total_potential += abs(difference)
                if include_suggestions:
                    opportunities.append({
                        "menu_item_id": item.id,
                        "menu_item_name": item.name,
                        "current_price": current_price,
                        "current_margin": round(current_margin, 2),
                        "optimal_price": optimal["rounded_price"],
                        "optimal_margin": optimal["profitability"]["profit_margin"],
                        "price_adjustment": difference,
                        "adjustment_type": "increase" if difference > 0 else "decrease",
                        "impact": abs(difference),
                        "priority": pc.optimization_priority(difference, current_margin),
                    })

        opportunities.sort(key=lambda o: o["priority"], reverse=True)

        return {
            "total_items": len(items),
            "items_analyzed": len(margins),
            "margin_distribution": distribution,
            "category_analysis": {
                category: {
                    "items": len(values),
                    "average_margin": round(sum(values) / len(values), 2),
                }
                for category, values in by_category.items()
            },
            "optimization_opportunities": opportunities,
            "summary_metrics": {
                "average_margin": round(sum(margins) / len(margins), 2) if margins else 0.0,
                "median_margin": round(statistics.median(margins), 2) if margins else 0.0,
                "total_potential_savings": total_potential,
                "underpriced_items": sum(1 for o in opportunities if o["adjustment_type"] == "increase"),
                "overpriced_items": sum(1 for o in opportunities if o["adjustment_type"] == "decrease"),
            },
        }

    def update_ingredient_costs(
        self,
        updates: Sequence[Dict[str, Any]],
        recalculate_menu_items: bool = True,
    ) -> Dict[str, Any]:
        """Write new unit costs and reprice the menu items that use them."""
        total_impact = 0.0
        affected: set = set()
        not_found: List[int] = []
        updated = 0

        for update in updates:
            ingredient = self.db.get(Ingredient, update["ingredient_id"])
            if ingredient is None:
                not_found.append(update["ingredient_id"])
                continue

            new_cost = float(update["new_cost_per_unit"])
            total_impact += abs(new_cost - float(ingredient.cost_per_unit))
            ingredient.cost_per_unit = new_cost
            updated += 1

            if recalculate_menu_items:
                rows = (
                    self.db.query(RecipeIngredient.menu_item_id)
                    .filter(RecipeIngredient.ingredient_id == ingredient.id)
                    .all()
                )
                affected.update(row.menu_item_id for row in rows)

        self.db.flush()

        recalculation = None
        if recalculate_menu_items and affected:
            recalculation = self.calculate_bulk_prices(
                menu_item_ids=sorted(affected),
                target_margin=pc.DEFAULT_TARGET_MARGIN,
                update_existing=True,
            )
            if recalculation["summary"]["failed"]:
                logger.warning(
                    "Price recalculation failed for %d menu items after cost update",
                    recalculation["summary"]["failed"],
                )

        return {
            "summary": {
                "updated_ingredients": updated,
                "affected_menu_items": len(affected),
                "total_cost_impact": round(total_impact, 2),
                "recalculation_performed": recalculation is not None,
            },
            "affected_menu_items": sorted(affected),
            "not_found": not_found,
            "recalculation": recalculation,
        }

    def market_data(self, category: Optional[str] = None, location: Optional[str] = None) -> Dict[str, Any]:
        return pc.market_benchmarks(category, location or settings.market_location)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _validate_ingredients(self, recipe_ingredients: Sequence[Dict[str, Any]]) -> Dict[int, Ingredient]:
        ids = [line["ingredient_id"] for line in recipe_ingredients]
        rows = (
            self.db.query(Ingredient)
            .filter(Ingredient.id.in_(ids), Ingredient.is_active.is_(True))
            .all()
        )
        found = {ing.id: ing for ing in rows}

        missing = [i for i in ids if i not in found]
        invalid_units = [
            f"{line['ingredient_id']}: expected {found[line['ingredient_id']].unit}, got {line['unit']}"
            for line in recipe_ingredients
            if line["ingredient_id"] in found and found[line["ingredient_id"]].unit != line["unit"]
        ]
        if missing or invalid_units:
            raise IngredientValidationError(missing, invalid_units)
        return found

    def _price_entry(
        self,
        menu_item_id: Optional[int],
        name: Optional[str],
        lines: Sequence[Dict[str, Any]],
        category: Optional[str],
        target_margin: Optional[float],
    ) -> Dict[str, Any]:
        """One bulk result row; validation failures become ``success: False``."""
        entry: Dict[str, Any] = {"menu_item_id": menu_item_id, "menu_item_name": name}
        if not lines:
            entry.update(success=False, error="No recipe ingredients")
            return entry
        try:
            calculation = self.calculate_menu_item_price(
                lines, category or "", menu_item_id=menu_item_id, target_margin=target_margin,
            )
        except IngredientValidationError as exc:
            entry.update(
                success=False,
                error=str(exc),
                missing_ingredients=exc.missing_ingredients,
                invalid_units=exc.invalid_units,
            )
            return entry
        entry.update(success=True, calculation=calculation)
        return entry

    def _load_menu_items(
        self,
        menu_item_ids: Optional[Sequence[int]] = None,
        category: Optional[str] = None,
    ) -> List[MenuItem]:
        query = self.db.query(MenuItem).options(selectinload(MenuItem.recipe_ingredients))
        if menu_item_ids:
            query = query.filter(MenuItem.id.in_(list(menu_item_ids)))
        if category:
            query = query.filter(MenuItem.category == category)
        return query.order_by(MenuItem.id).all()

    @staticmethod
    def _recipe_lines(item: MenuItem) -> List[Dict[str, Any]]:
        return [
            {"ingredient_id": r.ingredient_id, "quantity": float(r.quantity), "unit": r.unit}
            for r in item.recipe_ingredients
        ]
