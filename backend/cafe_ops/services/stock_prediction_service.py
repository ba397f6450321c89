"""Stock Prediction Service.

Uses historical usage (StockMovement with movement_type=usage) to predict
per-ingredient consumption, score stockout risk and generate reorder
suggestions.  The numeric work lives in ``consumption_analytics``; this
service loads data from the database and assembles the results.
Seasonal adjustments are flushed; the calling route commits.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from cafe_ops.core.config import settings
from cafe_ops.models.ingredient import Ingredient
from cafe_ops.models.menu import MenuItem, RecipeIngredient
from cafe_ops.models.order import Order, OrderItem, OrderStatus
from cafe_ops.models.stock import MovementType, SeasonalAdjustment, StockMovement
from cafe_ops.services import consumption_analytics as ca

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.3
SEASONAL_CONFIDENCE = 0.8
REORDER_CANDIDATE_RATIO = 1.5
RECENT_RATE_DAYS = 7
RECALCULATION_DAYS = 30
WEEKLY_SIGNIFICANCE = 0.6
MENU_CORRELATION = 0.7


class UnknownIngredientsError(ValueError):
    """Raised when requested ingredient IDs do not exist or are inactive."""
    def __init__(self, invalid_ingredients: Sequence[int]):
        self.invalid_ingredients = list(invalid_ingredients)
        super().__init__(f"Invalid ingredients: {self.invalid_ingredients}")


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def utc_today() -> date:
    """Today on the UTC clock, the same clock that stamps ``created_at``."""
    return datetime.now(timezone.utc).date()


class StockPredictionService:
    """Consumption forecasting and reorder recommendations."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def predict_consumption(
        self,
        ingredient_ids: Sequence[int],
        prediction_days: int,
        include_seasonal: bool = True,
        include_trends: bool = True,
        confidence_threshold: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Predict daily consumption for each ingredient over *prediction_days*.

        Raises UnknownIngredientsError if any ID is not an active ingredient.
        """
        ingredients = self._load_active_ingredients(ingredient_ids)
        today = utc_today()

        predictions = []
        for ingredient_id in ingredient_ids:
            result = self._predict_ingredient(
                ingredients[ingredient_id], prediction_days, include_seasonal, include_trends, today,
            )
            if confidence_threshold is not None:
                overall = result["confidence_factors"]["overall_confidence"]
                result["meets_confidence_threshold"] = overall >= confidence_threshold
            predictions.append(result)

        logger.info(
            "Predicted consumption for %d ingredients over %d days",
            len(predictions), prediction_days,
        )
        return predictions

    def predict_bulk(
        self,
        prediction_days: int,
        category_filter: Optional[str] = None,
        min_stock_threshold: Optional[float] = None,
        include_reorder_suggestions: bool = False,
        seasonal_adjustments: bool = True,
    ) -> Dict[str, Any]:
        """Predict consumption for all active ingredients with a summary."""
        query = self.db.query(Ingredient).filter(Ingredient.is_active.is_(True))
        if category_filter:
            query = query.filter(func.lower(Ingredient.category) == category_filter.lower())
        if min_stock_threshold is not None:
            query = query.filter(Ingredient.current_stock >= min_stock_threshold)
        ingredients = query.order_by(Ingredient.id).all()

        today = utc_today()
        predictions = [
            self._predict_ingredient(ing, prediction_days, seasonal_adjustments, True, today)
            for ing in ingredients
        ]

        reorder = self.reorder_suggestions() if include_reorder_suggestions else []

        return {
            "predictions": predictions,
            "summary": ca.summarize_predictions(predictions),
            "reorder_suggestions": reorder,
        }

    def reorder_suggestions(
        self,
        urgency_filter: Optional[str] = None,
        supplier_filter: Optional[int] = None,
        budget_limit: Optional[float] = None,
        lead_time_days: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Suggest reorders for ingredients at or below 150% of minimum stock.

        Sorted by urgency first, then estimated cost, both descending.
        """
        lead_time = lead_time_days or settings.default_lead_time_days
        candidates = (
            self.db.query(Ingredient)
            .filter(
                Ingredient.is_active.is_(True),
                Ingredient.current_stock <= Ingredient.minimum_stock * REORDER_CANDIDATE_RATIO,
            )
            .all()
        )

        today = utc_today()
        suggestions: List[Dict[str, Any]] = []
        for ing in candidates:
            current = float(ing.current_stock)
            minimum = float(ing.minimum_stock)
            maximum = float(ing.maximum_stock) if ing.maximum_stock is not None else None
            cost_per_unit = float(ing.cost_per_unit)

            rate = self._recent_consumption_rate(ing.id, RECENT_RATE_DAYS, today)
            days_left = int(math.floor(current / rate)) if rate > 0 else ca.NO_STOCKOUT_DAYS

            urgency = ca.classify_urgency(days_left, minimum, current)
            if urgency_filter and urgency != urgency_filter:
                continue

            quantity = ca.reorder_quantity(current, minimum, maximum, rate, lead_time)
            estimated_cost = round(quantity * cost_per_unit, 2)
            if budget_limit is not None and estimated_cost > budget_limit:
                continue

            suppliers = self.supplier_recommendations(ing, quantity, supplier_filter)
            if supplier_filter is not None and not suppliers:
                continue

            suggestions.append({
                "ingredient_id": ing.id,
                "ingredient_name": ing.name,
                "unit": ing.unit,
                "current_stock": current,
                "minimum_stock": minimum,
                "suggested_quantity": quantity,
                "estimated_cost": estimated_cost,
                "urgency": urgency,
                "days_until_stockout": days_left,
                "consumption_rate": round(rate, 3),
                "reason": ca.reorder_reason(urgency, days_left, current, minimum),
                "supplier_recommendations": suppliers,
                "preferred_supplier_id": suppliers[0]["supplier_id"] if suppliers else None,
                "created_at": datetime.now(timezone.utc).isoformat(),
            })

        suggestions.sort(
            key=lambda s: ca.URGENCY_RANK[s["urgency"]] * 1000 + s["estimated_cost"],
            reverse=True,
        )
        return suggestions

    def analyze_patterns(
        self,
        ingredient_ids: Optional[Sequence[int]] = None,
        analysis_period_days: int = 30,
        include_menu_correlation: bool = False,
        detect_anomalies: bool = True,
    ) -> Dict[str, Any]:
        """Weekly patterns, anomalies and menu correlations over a lookback window."""
        query = self.db.query(Ingredient).filter(Ingredient.is_active.is_(True))
        if ingredient_ids:
            query = query.filter(Ingredient.id.in_(list(ingredient_ids)))
        ingredients = query.order_by(Ingredient.id).all()

        today = utc_today()
        analysis: Dict[str, Any] = {
            "period_analyzed": analysis_period_days,
            "ingredients_analyzed": len(ingredients),
            "patterns": {
                "weekly_patterns": [],
                "trend_analysis": [],
            },
            "anomalies": [],
            "correlations": [],
            "recommendations": [],
        }

        for ing in ingredients:
            series = self._load_series(ing.id, analysis_period_days, today)
            if len(series) < ca.MIN_HISTORICAL_DAYS:
                continue

            weekly = ca.analyze_weekly_pattern(series)
            if weekly["significance"] > WEEKLY_SIGNIFICANCE:
                analysis["patterns"]["weekly_patterns"].append({
                    "ingredient_id": ing.id,
                    "ingredient_name": ing.name,
                    "pattern": weekly,
                })

            trend = ca.analyze_trend(series)
            if trend.direction != "stable" and trend.confidence > ca.CONFIDENCE_THRESHOLD:
                analysis["patterns"]["trend_analysis"].append({
                    "ingredient_id": ing.id,
                    "ingredient_name": ing.name,
                    "trend": trend.to_dict(),
                })

            if detect_anomalies:
                for anomaly in ca.detect_anomalies(series):
                    analysis["anomalies"].append({"ingredient_id": ing.id, **anomaly})

            if include_menu_correlation:
                correlation = self._menu_correlation(ing, series)
                if correlation["correlation"] > MENU_CORRELATION:
                    analysis["correlations"].append({
                        "ingredient_id": ing.id,
                        "ingredient_name": ing.name,
                        "correlation": correlation,
                    })

        analysis["recommendations"] = ca.pattern_recommendations(analysis)
        return analysis

    def apply_seasonal_adjustments(
        self,
        adjustments: Sequence[Dict[str, Any]],
        apply_to_predictions: bool = False,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Upsert seasonal adjustments keyed by (ingredient, season, start date).

        Adjustments for unknown ingredients are reported as failures; the rest
        are stored.  With *apply_to_predictions* a fresh 30-day prediction is
        returned for each stored adjustment.
        """
        ids = {adj["ingredient_id"] for adj in adjustments}
        known = {
            ing.id: ing
            for ing in self.db.query(Ingredient).filter(Ingredient.id.in_(list(ids))).all()
        }

        pending: Dict[tuple, SeasonalAdjustment] = {}
        stored: List[tuple] = []
        details: List[Dict[str, Any]] = []
        for adj in adjustments:
            ingredient = known.get(adj["ingredient_id"])
            if ingredient is None:
                details.append({
                    "ingredient_id": adj["ingredient_id"],
                    "success": False,
                    "error": "Unknown ingredient",
                })
                continue

            start = _as_date(adj["start_date"])
            key = (ingredient.id, adj["season"], start)
            row = pending.get(key)
            if row is None:
                row = (
                    self.db.query(SeasonalAdjustment)
                    .filter(
                        SeasonalAdjustment.ingredient_id == ingredient.id,
                        SeasonalAdjustment.season == adj["season"],
                        SeasonalAdjustment.start_date == start,
                    )
                    .first()
                )
            if row is None:
                row = SeasonalAdjustment(
                    ingredient_id=ingredient.id,
                    season=adj["season"],
                    start_date=start,
                )
                self.db.add(row)
            pending[key] = row
            row.multiplier = adj["multiplier"]
            row.end_date = _as_date(adj["end_date"])
            row.is_active = True
            row.created_by = user_id
            stored.append((ingredient, adj))

        self.db.flush()

        today = utc_today()
        for ingredient, adj in stored:
            echo = {
                "ingredient_id": ingredient.id,
                "season": adj["season"],
                "multiplier": adj["multiplier"],
                "start_date": _as_date(adj["start_date"]).isoformat(),
                "end_date": _as_date(adj["end_date"]).isoformat(),
            }
            if apply_to_predictions:
                details.append({
                    "ingredient_id": ingredient.id,
                    "success": True,
                    "adjustment_applied": echo,
                    "updated_predictions": self._predict_ingredient(
                        ingredient, RECALCULATION_DAYS, True, True, today,
                    ),
                })
            else:
                details.append({
                    "ingredient_id": ingredient.id,
                    "success": True,
                    "adjustment_stored": echo,
                })

        successful = sum(1 for d in details if d["success"])
        logger.info("Stored %d of %d seasonal adjustments", successful, len(adjustments))
        return {
            "total_processed": len(adjustments),
            "successful": successful,
            "failed": len(details) - successful,
            "details": details,
        }

    def supplier_recommendations(
        self,
        ingredient: Ingredient,
        quantity: float,
        supplier_filter: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Quote the ingredient's active supplier for *quantity* units."""
        supplier = ingredient.supplier
        if supplier is None or not supplier.is_active:
            return []
        if supplier_filter is not None and supplier.id != supplier_filter:
            return []

        estimated_price = round(quantity * float(ingredient.cost_per_unit), 2)
        minimum_order = float(supplier.minimum_order_amount or 0)
        return [{
            "supplier_id": supplier.id,
            "supplier_name": supplier.name,
            "estimated_price": estimated_price,
            "delivery_days": supplier.delivery_days,
            "minimum_order_amount": minimum_order,
            "meets_minimum_order": estimated_price >= minimum_order,
            "is_preferred": supplier.is_preferred,
        }]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _load_active_ingredients(self, ingredient_ids: Sequence[int]) -> Dict[int, Ingredient]:
        rows = (
            self.db.query(Ingredient)
            .filter(Ingredient.id.in_(list(ingredient_ids)), Ingredient.is_active.is_(True))
            .all()
        )
        found = {ing.id: ing for ing in rows}
        invalid = [i for i in ingredient_ids if i not in found]
        if invalid:
            raise UnknownIngredientsError(invalid)
        return found

    def _predict_ingredient(
        self,
        ingredient: Ingredient,
        prediction_days: int,
        include_seasonal: bool,
        include_trends: bool,
        today: date,
    ) -> Dict[str, Any]:
        lookback = max(prediction_days * 3, 30)
        series = self._load_series(ingredient.id, lookback, today)
        current_stock = float(ingredient.current_stock)

        if len(series) < ca.MIN_HISTORICAL_DAYS:
            logger.debug(
                "Ingredient %s has %d days of history, using fallback prediction",
                ingredient.id, len(series),
            )
            return self._fallback_prediction(ingredient, len(series))

        trend = ca.analyze_trend(series)
        predictions = ca.generate_base_prediction(series, prediction_days, today)

        if include_seasonal:
            multipliers = self._seasonal_multipliers(ingredient, [p.date for p in predictions])
            predictions = ca.apply_seasonal_factors(predictions, multipliers)

        if include_trends and trend.confidence > ca.CONFIDENCE_THRESHOLD:
            predictions = ca.apply_trend_adjustment(predictions, trend)

        risk = ca.assess_risk(current_stock, predictions, self._affected_menu_items(ingredient.id))

        reorder = ca.recommend_reorder(
            current_stock,
            predictions,
            risk,
            cost_per_unit=float(ingredient.cost_per_unit),
            maximum_stock=float(ingredient.maximum_stock) if ingredient.maximum_stock is not None else None,
            lead_time_days=self._lead_time(ingredient),
            today=today,
        )
        reorder["supplier_recommendations"] = self.supplier_recommendations(
            ingredient, reorder["suggested_quantity"],
        )

        return {
            "ingredient_id": ingredient.id,
            "ingredient_name": ingredient.name,
            "unit": ingredient.unit,
            "current_stock": current_stock,
            "consumption_predictions": [p.to_dict() for p in predictions],
            "reorder_recommendation": reorder,
            "risk_analysis": risk,
            "trend_analysis": trend.to_dict(),
            "confidence_factors": {
                "data_quality": round(ca.data_quality(series), 4),
                "trend_confidence": round(trend.confidence, 4),
                "seasonal_confidence": SEASONAL_CONFIDENCE if include_seasonal else 0,
                "overall_confidence": round(ca.overall_confidence(series, trend), 4),
            },
            "data_points": len(series),
        }

    def _fallback_prediction(self, ingredient: Ingredient, data_points: int) -> Dict[str, Any]:
        """Result for ingredients without enough history to forecast."""
        return {
            "ingredient_id": ingredient.id,
            "ingredient_name": ingredient.name,
            "unit": ingredient.unit,
            "current_stock": float(ingredient.current_stock),
            "consumption_predictions": [],
            "reorder_recommendation": None,
            "risk_analysis": {
                "stockout_probability": 0.0,
                "days_until_stockout": ca.NO_STOCKOUT_DAYS,
                "impact_severity": "low",
                "affected_menu_items": [],
            },
            "trend_analysis": None,
            "confidence_factors": {"overall_confidence": FALLBACK_CONFIDENCE},
            "data_points": data_points,
        }

    def _lead_time(self, ingredient: Ingredient) -> int:
        supplier = ingredient.supplier
        if supplier is not None and supplier.is_active and supplier.delivery_days:
            return supplier.delivery_days
        return settings.default_lead_time_days

    def _get_daily_consumption(
        self, ingredient_id: int, lookback_days: int, today: date,
    ) -> Dict[date, float]:
        """Aggregate absolute usage quantity by date over the last *lookback_days*
        (today included)."""
        cutoff = datetime.combine(today - timedelta(days=lookback_days - 1), time.min)

        rows = (
            self.db.query(
                func.date(StockMovement.created_at).label("day"),
                func.sum(func.abs(StockMovement.quantity)).label("total"),
            )
            .filter(
                StockMovement.ingredient_id == ingredient_id,
                StockMovement.movement_type == MovementType.USAGE.value,
                StockMovement.created_at >= cutoff,
            )
            .group_by(func.date(StockMovement.created_at))
            .all()
        )

        result: Dict[date, float] = {}
        for row in rows:
            day_val = _as_date(row.day)
            if day_val <= today:
                result[day_val] = float(row.total or 0)
        return result

    def _load_series(self, ingredient_id: int, lookback_days: int, today: date) -> List[ca.ConsumptionPoint]:
        """Daily series from the first recorded usage in the window up to today."""
        totals = self._get_daily_consumption(ingredient_id, lookback_days, today)
        if not totals:
            return []
        return ca.build_daily_series(totals, min(totals), today)

    def _recent_consumption_rate(self, ingredient_id: int, days: int, today: date) -> float:
        totals = self._get_daily_consumption(ingredient_id, days, today)
        return sum(totals.values()) / days

    def _seasonal_multipliers(self, ingredient: Ingredient, days: Sequence[date]) -> List[float]:
        """Per-day multiplier: stored adjustments first, then the category table."""
        if not days:
            return []
        rows = (
            self.db.query(SeasonalAdjustment)
            .filter(
                SeasonalAdjustment.ingredient_id == ingredient.id,
                SeasonalAdjustment.is_active.is_(True),
                SeasonalAdjustment.start_date <= max(days),
                SeasonalAdjustment.end_date >= min(days),
            )
            .order_by(SeasonalAdjustment.start_date.desc())
            .all()
        )

        multipliers = []
        for day in days:
            stored = next((r for r in rows if r.start_date <= day <= r.end_date), None)
            if stored is not None:
                multipliers.append(float(stored.multiplier))
            else:
                multipliers.append(ca.category_multiplier(ca.current_season(day), ingredient.category))
        return multipliers

    def _affected_menu_items(self, ingredient_id: int) -> List[str]:
        rows = (
            self.db.query(MenuItem.name)
            .join(RecipeIngredient, RecipeIngredient.menu_item_id == MenuItem.id)
            .filter(RecipeIngredient.ingredient_id == ingredient_id)
            .distinct()
            .order_by(MenuItem.name)
            .all()
        )
        return [row.name for row in rows]

    def _menu_correlation(
        self, ingredient: Ingredient, series: Sequence[ca.ConsumptionPoint],
    ) -> Dict[str, Any]:
        """Correlate daily ingredient usage with daily orders of the menu items using it."""
        recipe_rows = (
            self.db.query(RecipeIngredient, MenuItem)
            .join(MenuItem, RecipeIngredient.menu_item_id == MenuItem.id)
            .filter(RecipeIngredient.ingredient_id == ingredient.id)
            .all()
        )
        if not recipe_rows:
            return {"correlation": 0.0}

        menu_item_ids = [menu_item.id for _, menu_item in recipe_rows]
        start = datetime.combine(series[0].date, time.min)
        end = datetime.combine(series[-1].date + timedelta(days=1), time.min)

        rows = (
            self.db.query(
                func.date(Order.created_at).label("day"),
                func.sum(OrderItem.quantity).label("qty"),
            )
            .join(OrderItem, OrderItem.order_id == Order.id)
            .filter(
                OrderItem.menu_item_id.in_(menu_item_ids),
                Order.status != OrderStatus.CANCELLED.value,
                Order.created_at >= start,
                Order.created_at < end,
            )
            .group_by(func.date(Order.created_at))
            .all()
        )
        ordered = {_as_date(row.day): float(row.qty or 0) for row in rows}

        correlation = ca.pearson_correlation(
            [p.consumption for p in series],
            [ordered.get(p.date, 0.0) for p in series],
        )

        return {
            "correlation": round(correlation, 4),
            "related_menu_items": [
                {
                    "name": menu_item.name,
                    "category": menu_item.category,
                    "usage_quantity": float(recipe.quantity),
                }
                for recipe, menu_item in recipe_rows
            ],
            "primary_category": recipe_rows[0][1].category,
        }
