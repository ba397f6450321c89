"""Stock Prediction API routes.

Consumption forecasting, reorder suggestions, pattern analysis and
seasonal adjustments powered by historical usage movements.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from cafe_ops.core.rate_limit import limiter
from cafe_ops.core.rbac import RequireOwner, RequireOwnerOrStok, RequireStaff
from cafe_ops.db.session import DbSession
from cafe_ops.schemas.stock_prediction import (
    BulkPredictionRequest,
    PatternAnalysisRequest,
    SeasonalAdjustmentRequest,
    StockPredictionRequest,
    Urgency,
)
from cafe_ops.services import audit_service
from cafe_ops.services.stock_prediction_service import StockPredictionService, UnknownIngredientsError

router = APIRouter()


# ---------------------------------------------------------------------------
# Consumption prediction
# ---------------------------------------------------------------------------

@router.post("/predict")
@limiter.limit("30/minute")
def predict_stock(
    request: Request,
    data: StockPredictionRequest,
    db: DbSession,
    caller: RequireStaff,
):
    """Predict daily consumption for specific ingredients.

    Returns per-day forecasts, stockout risk and a reorder recommendation
    for each ingredient.  Ingredients with less than a week of usage history
    get a low-confidence fallback result.
    """
    svc = StockPredictionService(db)
    try:
        predictions = svc.predict_consumption(
            ingredient_ids=data.ingredient_ids,
            prediction_days=data.prediction_days,
            include_seasonal=data.include_seasonal,
            include_trends=data.include_trends,
            confidence_threshold=data.confidence_threshold,
        )
    except UnknownIngredientsError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid ingredients", "invalid_ingredients": exc.invalid_ingredients},
        )

    high_risk = [
        p for p in predictions
        if p["risk_analysis"]["impact_severity"] in ("high", "critical")
    ]
    reorders = [
        p for p in predictions
        if p["reorder_recommendation"] and p["reorder_recommendation"]["urgency"] in ("high", "critical")
    ]

    audit_service.log_action(
        action=audit_service.STOCK_PREDICTION,
        entity_type="ingredient",
        actor_id=caller.device_id,
        actor_role=caller.role.value,
        ip_address=caller.ip_address,
        details={
            "ingredient_ids": data.ingredient_ids,
            "prediction_days": data.prediction_days,
            "high_risk_ingredients": len(high_risk),
        },
        db=db,
    )
    db.commit()

    return {
        "predictions": predictions,
        "summary": {
            "total_ingredients": len(predictions),
            "prediction_period": f"{data.prediction_days} days",
            "high_risk_ingredients": len(high_risk),
            "immediate_reorders_needed": len(reorders),
        },
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/bulk-predict")
@limiter.limit("10/minute")
def bulk_predict(
    request: Request,
    data: BulkPredictionRequest,
    db: DbSession,
    caller: RequireOwnerOrStok,
):
    """Predict consumption for every active ingredient.

    Optionally filtered by ingredient category and a minimum current stock.
    """
    svc = StockPredictionService(db)
    result = svc.predict_bulk(
        prediction_days=data.prediction_days,
        category_filter=data.category_filter,
        min_stock_threshold=data.min_stock_threshold,
        include_reorder_suggestions=data.include_reorder_suggestions,
        seasonal_adjustments=data.seasonal_adjustments,
    )

    audit_service.log_action(
        action=audit_service.BULK_STOCK_PREDICTION,
        entity_type="ingredient",
        actor_id=caller.device_id,
        actor_role=caller.role.value,
        ip_address=caller.ip_address,
        details={
            "prediction_days": data.prediction_days,
            "category_filter": data.category_filter,
            "total_ingredients": result["summary"]["total_ingredients"],
        },
        db=db,
    )
    db.commit()

    result["generated_at"] = datetime.now(timezone.utc).isoformat()
    return result


# ---------------------------------------------------------------------------
# Reorder suggestions
# ---------------------------------------------------------------------------

@router.get("/reorder-suggestions")
@limiter.limit("60/minute")
def get_reorder_suggestions(
    request: Request,
    db: DbSession,
    caller: RequireStaff,
    urgency: Optional[Urgency] = Query(default=None, description="Only this urgency level"),
    supplier_id: Optional[int] = Query(default=None, description="Only items from this supplier"),
    budget_limit: Optional[float] = Query(default=None, gt=0, description="Max cost per suggestion"),
    lead_time_days: Optional[int] = Query(default=None, ge=1, le=60),
):
    """Get reorder suggestions for ingredients running low.

    Sorted by urgency, then by estimated cost.
    """
    svc = StockPredictionService(db)
    suggestions = svc.reorder_suggestions(
        urgency_filter=urgency,
        supplier_filter=supplier_id,
        budget_limit=budget_limit,
        lead_time_days=lead_time_days,
    )

    suppliers = sorted({s["preferred_supplier_id"] for s in suggestions if s["preferred_supplier_id"]})
    return {
        "suggestions": suggestions,
        "summary": {
            "total_suggestions": len(suggestions),
            "critical_items": sum(1 for s in suggestions if s["urgency"] == "critical"),
            "total_estimated_cost": round(sum(s["estimated_cost"] for s in suggestions), 2),
            "suppliers_involved": suppliers,
        },
        "filters_applied": {
            "urgency": urgency,
            "supplier": supplier_id,
            "budget_limit": budget_limit,
            "lead_time_days": lead_time_days,
        },
    }


# ---------------------------------------------------------------------------
# Pattern analysis
# ---------------------------------------------------------------------------

@router.post("/analyze-patterns")
@limiter.limit("20/minute")
def analyze_patterns(
    request: Request,
    data: PatternAnalysisRequest,
    db: DbSession,
    caller: RequireStaff,
):
    """Detect weekly patterns, anomalies and menu correlations."""
    svc = StockPredictionService(db)
    return svc.analyze_patterns(
        ingredient_ids=data.ingredient_ids,
        analysis_period_days=data.analysis_period_days,
        include_menu_correlation=data.include_menu_correlation,
        detect_anomalies=data.detect_anomalies,
    )


# ---------------------------------------------------------------------------
# Seasonal adjustments
# ---------------------------------------------------------------------------

@router.post("/seasonal-adjustments")
@limiter.limit("10/minute")
def apply_seasonal_adjustments(
    request: Request,
    data: SeasonalAdjustmentRequest,
    db: DbSession,
    caller: RequireOwner,
):
    """Store seasonal demand multipliers (owner only).

    With ``apply_to_predictions`` each stored adjustment comes back with a
    recalculated 30-day prediction.
    """
    svc = StockPredictionService(db)
    result = svc.apply_seasonal_adjustments(
        adjustments=[adj.model_dump() for adj in data.adjustments],
        apply_to_predictions=data.apply_to_predictions,
        user_id=caller.device_id,
    )

    audit_service.log_action(
        action=audit_service.SEASONAL_ADJUSTMENT_APPLIED,
        entity_type="seasonal_adjustment",
        actor_id=caller.device_id,
        actor_role=caller.role.value,
        ip_address=caller.ip_address,
        details={
            "total_processed": result["total_processed"],
            "successful": result["successful"],
            "failed": result["failed"],
        },
        db=db,
    )
    db.commit()

    return result
