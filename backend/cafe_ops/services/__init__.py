# Services module

from cafe_ops.services.stock_prediction_service import (
    StockPredictionService,
    UnknownIngredientsError,
)
from cafe_ops.services.price_suggestion_service import (
    PriceSuggestionService,
    IngredientValidationError,
)
from cafe_ops.services.audit_service import log_action

__all__ = [
    "StockPredictionService",
    "UnknownIngredientsError",
    "PriceSuggestionService",
    "IngredientValidationError",
    "log_action",
]
