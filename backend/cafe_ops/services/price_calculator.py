"""Price calculator: cost build-up and margin-based menu pricing.

Pure functions.  ``PriceSuggestionService`` supplies ingredient data from
the database.  Prices are in IDR.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

DEFAULT_TARGET_MARGIN = 65.0
MIN_MARGIN = 60.0
MAX_MARGIN = 70.0
OVERHEAD_PERCENTAGE = 15.0  # utilities, rent
LABOR_COST_PERCENTAGE = 20.0  # preparation labor
ROUNDING_INCREMENT = 500
OPPORTUNITY_THRESHOLD = 1000  # IDR difference worth suggesting
FRESH_COST_DAYS = 30

# margin_adjustment in percentage points, complexity_factor scales labor
CATEGORY_MODIFIERS: Dict[str, Dict[str, float]] = {
    "coffee": {"margin_adjustment": 0, "complexity_factor": 1.2},
    "tea": {"margin_adjustment": -5, "complexity_factor": 1.0},
    "pastry": {"margin_adjustment": 5, "complexity_factor": 1.5},
    "main_course": {"margin_adjustment": -3, "complexity_factor": 2.0},
    "dessert": {"margin_adjustment": 8, "complexity_factor": 1.8},
    "snack": {"margin_adjustment": 10, "complexity_factor": 1.1},
    "beverage": {"margin_adjustment": 0, "complexity_factor": 1.0},
}
_NEUTRAL_MODIFIER = {"margin_adjustment": 0, "complexity_factor": 1.0}

COMPLEXITY_MULTIPLIERS: Dict[str, float] = {
    "simple": 0.8,
    "medium": 1.0,
    "complex": 1.5,
}

MARKET_BENCHMARKS: Dict[str, Any] = {
    "average_prices": {
        "coffee": {"min": 15000, "max": 35000, "avg": 25000},
        "tea": {"min": 10000, "max": 25000, "avg": 17500},
        "pastry": {"min": 12000, "max": 30000, "avg": 20000},
        "main_course": {"min": 25000, "max": 75000, "avg": 45000},
    },
    "market_trends": {
        "price_inflation": 3.2,  # percent
        "demand_growth": 8.5,
        "competition_level": "medium",
    },
    "recommendations": [
        "Prices for coffee drinks are competitive in Kendari market",
        "Consider premium positioning for specialty items",
        "Local purchasing power supports moderate pricing strategy",
    ],
}

FACTORS_CONSIDERED = [
    "Ingredient costs",
    "Overhead allocation",
    "Labor complexity",
    "Category adjustments",
    "Target margin optimization",
]


def category_modifier(category: Optional[str]) -> Dict[str, float]:
    return CATEGORY_MODIFIERS.get((category or "").lower(), _NEUTRAL_MODIFIER)


def target_margin(requested: Optional[float], category_adjustment: float = 0) -> float:
    """Requested (or default) margin plus the category adjustment, clamped to 60-70%."""
    base = requested or DEFAULT_TARGET_MARGIN
    return max(MIN_MARGIN, min(MAX_MARGIN, base + category_adjustment))


def complexity_multiplier(complexity: Optional[str]) -> float:
    return COMPLEXITY_MULTIPLIERS.get(complexity or "", 1.0)


def round_price(price: float, increment: int = ROUNDING_INCREMENT) -> float:
    """Round to the nearest *increment*, halves rounded up."""
    return math.floor(price / increment + 0.5) * increment


def cost_breakdown(
    ingredient_cost: float,
    category: Optional[str],
    complexity: Optional[str] = None,
) -> Dict[str, float]:
    """Build total cost from ingredient cost plus overhead and labor."""
    modifier = category_modifier(category)
    overhead = ingredient_cost * OVERHEAD_PERCENTAGE / 100
    labor = (
        ingredient_cost
        * LABOR_COST_PERCENTAGE / 100
        * modifier["complexity_factor"]
        * complexity_multiplier(complexity)
    )
    return {
        "total_ingredient_cost": ingredient_cost,
        "overhead_percentage": OVERHEAD_PERCENTAGE,
        "overhead_cost": overhead,
        "labor_cost": labor,
        "total_cost": ingredient_cost + overhead + labor,
    }


def suggest_price(total_cost: float, margin: float) -> float:
    """Price that yields *margin* percent on *total_cost*."""
    return total_cost / (1 - margin / 100)


def profitability(price: float, cost: float) -> Dict[str, Any]:
    """Profit, margin percent and units needed to recover one unit's cost."""
    profit = price - cost
    return {
        "profit_amount": round(profit, 2),
        "profit_margin": round(profit / price * 100, 2) if price > 0 else 0.0,
        "break_even_quantity": math.ceil(cost / profit) if profit > 0 else None,
    }


def market_analysis(price: float, competitor_prices: Optional[Sequence[float]] = None) -> Dict[str, Any]:
    """Position *price* against the average competitor price."""
    if competitor_prices:
        average = sum(competitor_prices) / len(competitor_prices)
    else:
        average = price

    if price < average * 0.9:
        position = "below"
        recommendation = "Consider raising price to market level"
    elif price > average * 1.1:
        position = "premium"
        recommendation = "Premium pricing - ensure value justification"
    else:
        position = "competitive"
        recommendation = "Competitive pricing position"

    return {
        "average_market_price": round(average, 2),
        "price_position": position,
        "recommendation": recommendation,
    }


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def confidence_score(
    ingredients: Sequence[Dict[str, Any]],
    has_market_analysis: bool,
    now: Optional[datetime] = None,
) -> float:
    """Confidence in a price from cost freshness, stock availability and market data.

    Each ingredient dict needs ``last_updated`` (datetime or None) and
    ``current_stock``.
    """
    confidence = 0.7
    if ingredients:
        now = _as_aware(now) or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=FRESH_COST_DAYS)
        fresh = [
            ing for ing in ingredients
            if ing.get("last_updated") is not None and _as_aware(ing["last_updated"]) >= cutoff
        ]
        in_stock = [ing for ing in ingredients if (ing.get("current_stock") or 0) > 0]
        confidence += len(fresh) / len(ingredients) * 0.2
        confidence += len(in_stock) / len(ingredients) * 0.1
    if has_market_analysis:
        confidence += 0.1
    return round(min(1.0, confidence), 4)


def optimization_priority(price_difference: float, current_margin: float) -> float:
    """Larger price gaps first, boosted for margins outside the 60-70% band."""
    priority = abs(price_difference) / 1000
    if current_margin < MIN_MARGIN:
        priority *= 2
    elif current_margin > MAX_MARGIN:
        priority *= 1.5
    return round(priority, 4)


def margin_band(margin: float) -> str:
    if margin < MIN_MARGIN:
        return "below_target"
    if margin <= MAX_MARGIN:
        return "within_target"
    return "above_target"


def market_benchmarks(category: Optional[str], location: str) -> Dict[str, Any]:
    average_prices = MARKET_BENCHMARKS["average_prices"]
    key = (category or "").lower()
    if key in average_prices:
        average_prices = {key: average_prices[key]}
    return {
        "location": location,
        "category": category or "general",
        "data": {
            "average_prices": average_prices,
            "market_trends": dict(MARKET_BENCHMARKS["market_trends"]),
            "recommendations": list(MARKET_BENCHMARKS["recommendations"]),
        },
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }


def factors_considered(has_market_analysis: bool) -> List[str]:
    factors = list(FACTORS_CONSIDERED)
    if has_market_analysis:
        factors.append("Market positioning")
    return factors
