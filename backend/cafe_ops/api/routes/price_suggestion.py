"""Price Suggestion API routes.

Recipe-based menu pricing with 60-70% target margins, margin analysis
and ingredient cost updates.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from cafe_ops.core.rate_limit import limiter
from cafe_ops.core.rbac import RequireOwner, RequireOwnerOrKasir
from cafe_ops.db.session import DbSession
from cafe_ops.schemas.price_suggestion import (
    BulkCalculationRequest,
    CostUpdateRequest,
    MarginAnalysisRequest,
    PriceCalculationRequest,
)
from cafe_ops.services import audit_service
from cafe_ops.services.price_suggestion_service import IngredientValidationError, PriceSuggestionService

router = APIRouter()


# ---------------------------------------------------------------------------
# Price calculation
# ---------------------------------------------------------------------------

@router.post("/calculate")
@limiter.limit("60/minute")
def calculate_price(
    request: Request,
    data: PriceCalculationRequest,
    db: DbSession,
    caller: RequireOwnerOrKasir,
):
    """Suggest a price for a recipe.

    Builds total cost from ingredients, overhead and labor, then applies the
    category-adjusted target margin and rounds to the nearest Rp 500.
    """
    svc = PriceSuggestionService(db)
    try:
        result = svc.calculate_menu_item_price(
            recipe_ingredients=[line.model_dump() for line in data.recipe_ingredients],
            menu_category=data.menu_category,
            menu_item_id=data.menu_item_id,
            target_margin=data.target_margin,
            market_analysis=data.market_analysis,
            competitor_prices=data.competitor_prices,
            preparation_complexity=data.preparation_complexity,
        )
    except IngredientValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Invalid ingredients",
                "missing_ingredients": exc.missing_ingredients,
                "invalid_units": exc.invalid_units,
            },
        )

    audit_service.log_action(
        action=audit_service.PRICE_CALCULATION,
        entity_type="menu_item",
        entity_id=str(data.menu_item_id) if data.menu_item_id else "",
        actor_id=caller.device_id,
        actor_role=caller.role.value,
        ip_address=caller.ip_address,
        details={
            "menu_category": data.menu_category,
            "rounded_price": result["rounded_price"],
            "target_margin": result["target_margin"],
        },
        db=db,
    )
    db.commit()

    return {
        "calculation": result,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/bulk-calculate")
@limiter.limit("10/minute")
def bulk_calculate(
    request: Request,
    data: BulkCalculationRequest,
    db: DbSession,
    caller: RequireOwner,
):
    """Price several menu items and/or new recipes (owner only).

    Failures are reported per item.  With ``update_existing`` the suggested
    prices are written to the menu.
    """
    svc = PriceSuggestionService(db)
    result = svc.calculate_bulk_prices(
        menu_item_ids=data.menu_item_ids,
        recipe_data=[r.model_dump() for r in data.recipe_data] if data.recipe_data else None,
        target_margin=data.target_margin,
        update_existing=data.update_existing,
    )

    audit_service.log_action(
        action=audit_service.BULK_PRICE_CALCULATION,
        entity_type="menu_item",
        actor_id=caller.device_id,
        actor_role=caller.role.value,
        ip_address=caller.ip_address,
        details={**result["summary"], "update_existing": data.update_existing},
        db=db,
    )
    db.commit()

    return result


# ---------------------------------------------------------------------------
# Margin analysis
# ---------------------------------------------------------------------------

@router.post("/analyze-margins")
@limiter.limit("20/minute")
def analyze_margins(
    request: Request,
    data: MarginAnalysisRequest,
    db: DbSession,
    caller: RequireOwnerOrKasir,
):
    """Compare current menu margins with the 60-70% target band."""
    svc = PriceSuggestionService(db)
    return svc.analyze_menu_margins(
        menu_item_ids=data.menu_item_ids,
        category_filter=data.category_filter,
        include_suggestions=data.include_suggestions,
    )


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

@router.get("/market-data")
@limiter.limit("60/minute")
def get_market_data(
    request: Request,
    db: DbSession,
    caller: RequireOwnerOrKasir,
    category: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
):
    """Get local market price benchmarks."""
    svc = PriceSuggestionService(db)
    return svc.market_data(category=category, location=location)


# ---------------------------------------------------------------------------
# Ingredient cost updates
# ---------------------------------------------------------------------------

@router.post("/update-costs")
@limiter.limit("10/minute")
def update_costs(
    request: Request,
    data: CostUpdateRequest,
    db: DbSession,
    caller: RequireOwner,
):
    """Update ingredient unit costs and reprice affected menu items (owner only)."""
    svc = PriceSuggestionService(db)
    result = svc.update_ingredient_costs(
        updates=[u.model_dump() for u in data.ingredient_updates],
        recalculate_menu_items=data.recalculate_affected_items,
    )

    audit_service.log_action(
        action=audit_service.INGREDIENT_COST_UPDATE,
        entity_type="ingredient",
        actor_id=caller.device_id,
        actor_role=caller.role.value,
        ip_address=caller.ip_address,
        details=result["summary"],
        db=db,
    )
    db.commit()

    return result
