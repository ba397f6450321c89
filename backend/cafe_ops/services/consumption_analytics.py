"""Consumption analytics: the numeric core of stock prediction.

Pure functions over small per-ingredient daily consumption series.  Nothing
in here touches the database; ``StockPredictionService`` loads the data and
feeds it through these helpers.

Algorithms:
1. Exponential smoothing (flat forecast)
2. Least-squares trend with R-squared confidence
3. Weekly (lag 7) autocorrelation for seasonality
4. Standard-deviation anomaly detection
5. Stockout risk scoring and reorder quantities
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

MIN_HISTORICAL_DAYS = 7
CONFIDENCE_THRESHOLD = 0.6
SMOOTHING_FACTOR = 0.3
ANOMALY_THRESHOLD = 2.0
LEAD_TIME_BUFFER = 3
STABLE_SLOPE = 0.1
MAX_TREND_FACTOR = 0.5
NO_STOCKOUT_DAYS = 999

SEASONALITY_LAG = 7
SEASONALITY_MIN_POINTS = 14
SEASONALITY_THRESHOLD = 0.3
SEASONAL_CONFIDENCE_PENALTY = 0.9
FULL_CONFIDENCE_POINTS = 30

# Demand multipliers by season and ingredient category (Sulawesi climate)
SEASONAL_MULTIPLIERS: Dict[str, Dict[str, float]] = {
    "dry_season": {  # April - September
        "coffee": 1.2,
        "tea": 0.9,
        "ice": 1.5,
        "cold_drinks": 1.3,
        "default": 1.0,
    },
    "wet_season": {  # October - March
        "coffee": 1.1,
        "tea": 1.2,
        "hot_drinks": 1.3,
        "soup": 1.4,
        "default": 1.0,
    },
    "ramadan": {
        "all_items": 0.3,
        "iftar_items": 2.5,
        "sahur_items": 1.8,
        "default": 1.0,
    },
    "holidays": {
        "premium_items": 1.5,
        "party_items": 2.0,
        "default": 1.2,
    },
}

URGENCY_RANK: Dict[str, int] = {"critical": 4, "high": 3, "medium": 2, "low": 1}

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass
class ConsumptionPoint:
    """Total consumption of one ingredient on one calendar day."""
    date: date
    consumption: float
    order_count: int = 0
    day_of_week: int = 0  # 0=Monday
    is_holiday: bool = False


@dataclass
class TrendAnalysis:
    """Linear trend fitted over a consumption series."""
    slope: float
    intercept: float
    direction: str  # increasing | decreasing | stable
    confidence: float
    seasonality_detected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slope": round(self.slope, 4),
            "intercept": round(self.intercept, 4),
            "direction": self.direction,
            "confidence": round(self.confidence, 4),
            "seasonality_detected": self.seasonality_detected,
        }


@dataclass
class DailyPrediction:
    """Forecast for a single future day."""
    date: date
    predicted_consumption: int
    confidence: float
    factors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        data["confidence"] = round(self.confidence, 4)
        return data


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def current_season(day: date) -> str:
    """April to September is the dry season, the rest of the year is wet."""
    return "dry_season" if 4 <= day.month <= 9 else "wet_season"


def category_multiplier(season: str, category: Optional[str]) -> float:
    """Look up the seasonal multiplier for an ingredient category."""
    table = SEASONAL_MULTIPLIERS.get(season, {})
    if category and category.lower() in table:
        return table[category.lower()]
    return table.get("default", 1.0)


# ---------------------------------------------------------------------------
# Series construction and statistics
# ---------------------------------------------------------------------------

def build_daily_series(
    totals_by_date: Dict[date, float],
    start: date,
    end: date,
    order_counts: Optional[Dict[date, int]] = None,
) -> List[ConsumptionPoint]:
    """Build one point per calendar day in ``[start, end]``, zero-filling gaps."""
    order_counts = order_counts or {}
    series: List[ConsumptionPoint] = []
    current = start
    while current <= end:
        series.append(ConsumptionPoint(
            date=current,
            consumption=float(totals_by_date.get(current, 0.0)),
            order_count=int(order_counts.get(current, 0)),
            day_of_week=current.weekday(),
        ))
        current += timedelta(days=1)
    return series


def _values(series: Iterable[ConsumptionPoint]) -> List[float]:
    return [p.consumption for p in series]


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _population_std(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = _mean(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def exponential_smoothing(values: Sequence[float], alpha: float = SMOOTHING_FACTOR) -> float:
    """Return the last exponentially smoothed value (0 for an empty series)."""
    if not values:
        return 0.0
    smoothed = float(values[0])
    for value in values[1:]:
        smoothed = alpha * value + (1 - alpha) * smoothed
    return smoothed


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation over mean; 1 when empty, 0 on zero mean."""
    if not values:
        return 1.0
    mean = _mean(values)
    if mean == 0:
        return 0.0
    return _population_std(values) / mean


def _autocorrelation(values: Sequence[float], lag: int) -> float:
    n = len(values)
    if n <= lag:
        return 0.0
    mean = _mean(values)
    denominator = sum((v - mean) ** 2 for v in values)
    if denominator == 0:
        return 0.0
    numerator = sum((values[i] - mean) * (values[i + lag] - mean) for i in range(n - lag))
    return numerator / denominator


def detect_seasonality(values: Sequence[float]) -> bool:
    """A weekly cycle is present when lag-7 autocorrelation is strong enough."""
    if len(values) < SEASONALITY_MIN_POINTS:
        return False
    return _autocorrelation(values, SEASONALITY_LAG) > SEASONALITY_THRESHOLD


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation coefficient; 0 for < 3 pairs or zero variance."""
    n = min(len(xs), len(ys))
    if n < 3:
        return 0.0
    xs, ys = list(xs[:n]), list(ys[:n])
    mean_x, mean_y = _mean(xs), _mean(ys)
    cov = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    var_x = sum((x - mean_x) ** 2 for x in xs)
    var_y = sum((y - mean_y) ** 2 for y in ys)
    if var_x == 0 or var_y == 0:
        return 0.0
    return cov / math.sqrt(var_x * var_y)


# ---------------------------------------------------------------------------
# Trend and forecast
# ---------------------------------------------------------------------------

def analyze_trend(series: Sequence[ConsumptionPoint]) -> TrendAnalysis:
    """Fit a least-squares line over the day index of *series*."""
    if len(series) < MIN_HISTORICAL_DAYS:
        return TrendAnalysis(
            slope=0.0, intercept=0.0, direction="stable",
            confidence=0.0, seasonality_detected=False,
        )

    y = _values(series)
    n = len(y)
    x = list(range(n))
    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(xi * yi for xi, yi in zip(x, y))
    sum_xx = sum(xi * xi for xi in x)

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n

    y_mean = sum_y / n
    ss_res = sum((yi - (slope * xi + intercept)) ** 2 for xi, yi in zip(x, y))
    ss_tot = sum((yi - y_mean) ** 2 for yi in y)
    r_squared = 0.0 if ss_tot == 0 else 1 - ss_res / ss_tot

    if abs(slope) < STABLE_SLOPE:
        direction = "stable"
    elif slope > 0:
        direction = "increasing"
    else:
        direction = "decreasing"

    return TrendAnalysis(
        slope=slope,
        intercept=intercept,
        direction=direction,
        confidence=max(0.0, r_squared),
        seasonality_detected=detect_seasonality(y),
    )


def prediction_confidence(n_points: int, day_offset: int) -> float:
    """Confidence decays with forecast distance and grows with history length."""
    base = max(0.4, 1 - day_offset * 0.05)
    sample_factor = min(1.0, n_points / FULL_CONFIDENCE_POINTS)
    return base * sample_factor


def generate_base_prediction(
    series: Sequence[ConsumptionPoint],
    days: int,
    today: date,
) -> List[DailyPrediction]:
    """Flat forecast of the smoothed level for ``today + 1 .. today + days``."""
    if not series:
        return []

    level = exponential_smoothing(_values(series), SMOOTHING_FACTOR)
    predicted = max(0, round_half_up(level))
    return [
        DailyPrediction(
            date=today + timedelta(days=i + 1),
            predicted_consumption=predicted,
            confidence=prediction_confidence(len(series), i),
            factors=["exponential_smoothing", "historical_average"],
        )
        for i in range(days)
    ]


def apply_seasonal_factors(
    predictions: Sequence[DailyPrediction],
    multipliers: Sequence[float],
) -> List[DailyPrediction]:
    """Scale each day by its seasonal multiplier."""
    adjusted: List[DailyPrediction] = []
    for pred, multiplier in zip(predictions, multipliers):
        adjusted.append(DailyPrediction(
            date=pred.date,
            predicted_consumption=max(0, round_half_up(pred.predicted_consumption * multiplier)),
            confidence=pred.confidence * SEASONAL_CONFIDENCE_PENALTY,
            factors=pred.factors + ["seasonal_adjustment"],
        ))
    return adjusted


def apply_trend_adjustment(
    predictions: Sequence[DailyPrediction],
    trend: TrendAnalysis,
) -> List[DailyPrediction]:
    """Compound the trend into the forecast, capped at +/-50% per step."""
    trend_factor = min(abs(trend.slope), MAX_TREND_FACTOR)
    if trend.direction == "increasing":
        multiplier = 1 + trend_factor
    elif trend.direction == "decreasing":
        multiplier = 1 - trend_factor
    else:
        multiplier = 1.0

    return [
        DailyPrediction(
            date=pred.date,
            predicted_consumption=max(
                0, round_half_up(pred.predicted_consumption * multiplier ** (i * 0.1))
            ),
            confidence=pred.confidence * trend.confidence,
            factors=pred.factors + [f"trend_{trend.direction}"],
        )
        for i, pred in enumerate(predictions)
    ]


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

def data_quality(series: Sequence[ConsumptionPoint]) -> float:
    """Average of completeness (share of non-zero days) and consistency (1 - CV)."""
    if not series:
        return 0.0
    values = _values(series)
    completeness = sum(1 for v in values if v > 0) / len(values)
    consistency = 1 - coefficient_of_variation(values)
    return (completeness + consistency) / 2


def overall_confidence(series: Sequence[ConsumptionPoint], trend: TrendAnalysis) -> float:
    sample_size = min(1.0, len(series) / FULL_CONFIDENCE_POINTS)
    return data_quality(series) * 0.4 + trend.confidence * 0.4 + sample_size * 0.2


# ---------------------------------------------------------------------------
# Risk and reordering
# ---------------------------------------------------------------------------

def impact_severity(days_until_stockout: int, affected_count: int) -> str:
    if affected_count > 5 or days_until_stockout <= 3:
        return "critical"
    if affected_count > 2 or days_until_stockout <= 7:
        return "high"
    if days_until_stockout <= 14:
        return "medium"
    return "low"


def assess_risk(
    current_stock: float,
    predictions: Sequence[DailyPrediction],
    affected_menu_items: Sequence[str],
) -> Dict[str, Any]:
    """Stockout probability, days of cover and impact severity."""
    total = sum(p.predicted_consumption for p in predictions)
    if total > 0:
        probability = min(1.0, max(0.0, (total - current_stock) / total))
    else:
        probability = 0.0

    average_daily = total / len(predictions) if predictions else 0.0
    if average_daily > 0:
        days_until_stockout = int(math.floor(current_stock / average_daily))
    else:
        days_until_stockout = NO_STOCKOUT_DAYS

    return {
        "stockout_probability": round(probability, 4),
        "days_until_stockout": days_until_stockout,
        "impact_severity": impact_severity(days_until_stockout, len(affected_menu_items)),
        "affected_menu_items": list(affected_menu_items),
    }


def recommend_reorder(
    current_stock: float,
    predictions: Sequence[DailyPrediction],
    risk: Dict[str, Any],
    cost_per_unit: float,
    maximum_stock: Optional[float],
    lead_time_days: int,
    today: date,
) -> Dict[str, Any]:
    """When and how much to reorder so stock covers lead time plus buffer."""
    total = sum(p.predicted_consumption for p in predictions)
    average_daily = total / len(predictions) if predictions else 0.0
    cover_days = lead_time_days + LEAD_TIME_BUFFER
    reorder_point = cover_days * average_daily

    days_left = risk["days_until_stockout"]
    suggested_date = today + timedelta(days=max(0, days_left - cover_days))

    target = maximum_stock if maximum_stock else total * 2
    quantity = round_half_up(max(reorder_point, target - current_stock))

    return {
        "suggested_date": suggested_date.isoformat(),
        "suggested_quantity": quantity,
        "reorder_point": round(reorder_point, 2),
        "estimated_cost": round(quantity * cost_per_unit, 2),
        "urgency": risk["impact_severity"],
        "lead_time_days": lead_time_days,
    }


def classify_urgency(days_until_stockout: int, minimum_stock: float, current_stock: float) -> str:
    if days_until_stockout <= 3 or current_stock <= minimum_stock * 0.5:
        return "critical"
    if days_until_stockout <= 7 or current_stock <= minimum_stock:
        return "high"
    if days_until_stockout <= 14:
        return "medium"
    return "low"


def reorder_quantity(
    current_stock: float,
    minimum_stock: float,
    maximum_stock: Optional[float],
    consumption_rate: float,
    lead_time_days: int,
) -> int:
    """Refill to the target level, or cover lead time plus safety stock if larger."""
    target = maximum_stock if maximum_stock else minimum_stock * 3
    lead_time_consumption = consumption_rate * lead_time_days
    return round_half_up(max(target - current_stock, lead_time_consumption + minimum_stock))


def _fmt_qty(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def reorder_reason(urgency: str, days_until_stockout: int, current_stock: float, minimum_stock: float) -> str:
    if urgency == "critical":
        return f"URGENT: Stock critically low ({days_until_stockout} days until stockout)"
    if urgency == "high":
        return (
            f"HIGH: Below minimum stock level "
            f"({_fmt_qty(current_stock)} < {_fmt_qty(minimum_stock)})"
        )
    if urgency == "medium":
        return "MEDIUM: Stock running low, reorder recommended"
    return "LOW: Preventive reorder to maintain optimal levels"


# ---------------------------------------------------------------------------
# Pattern analysis
# ---------------------------------------------------------------------------

def analyze_weekly_pattern(series: Sequence[ConsumptionPoint]) -> Dict[str, Any]:
    """Per-weekday averages, peak and low day, and how regular the week is."""
    totals = [0.0] * 7
    counts = [0] * 7
    for point in series:
        totals[point.day_of_week] += point.consumption
        counts[point.day_of_week] += 1

    averages = [totals[i] / counts[i] if counts[i] else 0.0 for i in range(7)]
    mean = sum(averages) / 7
    std = math.sqrt(sum((a - mean) ** 2 for a in averages) / 7)
    significance = 1 - std / mean if mean > 0 else 0.0

    peak_day = averages.index(max(averages))
    low_day = averages.index(min(averages))
    return {
        "daily_averages": [round(a, 2) for a in averages],
        "peak_day": peak_day,
        "peak_day_name": DAY_NAMES[peak_day],
        "low_day": low_day,
        "low_day_name": DAY_NAMES[low_day],
        "significance": round(max(0.0, significance), 4),
    }


def detect_anomalies(
    series: Sequence[ConsumptionPoint],
    threshold: float = ANOMALY_THRESHOLD,
) -> List[Dict[str, Any]]:
    """Days whose consumption is more than *threshold* standard deviations off the mean."""
    values = _values(series)
    if not values:
        return []
    mean = _mean(values)
    std = _population_std(values)
    if std == 0:
        return []

    anomalies: List[Dict[str, Any]] = []
    for point in series:
        deviation = abs(point.consumption - mean)
        if deviation > threshold * std:
            anomalies.append({
                "date": point.date.isoformat(),
                "consumption": point.consumption,
                "expected": round(mean, 2),
                "deviation": round(deviation, 2),
                "type": "spike" if point.consumption > mean else "drop",
                "severity": round(deviation / std, 2),
            })
    return anomalies


def pattern_recommendations(analysis: Dict[str, Any]) -> List[str]:
    recommendations: List[str] = []

    if analysis["patterns"]["weekly_patterns"]:
        recommendations.extend([
            "Adjust staffing levels based on weekly consumption patterns",
            "Schedule deliveries to align with peak consumption days",
        ])

    if any(a["severity"] > 3 for a in analysis["anomalies"]):
        recommendations.extend([
            "Investigate causes of consumption spikes and drops",
            "Implement alerts for unusual consumption patterns",
        ])

    if analysis["correlations"]:
        recommendations.extend([
            "Consider menu popularity when planning ingredient purchases",
            "Bundle ingredient orders for highly correlated items",
        ])

    return recommendations


def summarize_predictions(predictions: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Roll-up of a batch of ingredient predictions."""
    severities = [p["risk_analysis"]["impact_severity"] for p in predictions]
    distribution = {level: severities.count(level) for level in ("critical", "high", "medium", "low")}

    confidences = [
        (p.get("confidence_factors") or {}).get("overall_confidence", 0) for p in predictions
    ]
    average_confidence = sum(confidences) / len(confidences) if confidences else 0.0

    reorders = [p["reorder_recommendation"] for p in predictions if p.get("reorder_recommendation")]

    return {
        "total_ingredients": len(predictions),
        "high_risk_items": distribution["critical"] + distribution["high"],
        "critical_items": distribution["critical"],
        "average_confidence": round(average_confidence, 2),
        "items_needing_reorder": sum(1 for r in reorders if r["urgency"] in ("high", "critical")),
        "total_predicted_cost": round(sum(r["estimated_cost"] for r in reorders), 2),
        "risk_distribution": distribution,
    }
