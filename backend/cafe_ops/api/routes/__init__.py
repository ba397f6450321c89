"""API routes."""

from fastapi import APIRouter

from cafe_ops.api.routes import price_suggestion, stock_prediction

api_router = APIRouter()

api_router.include_router(stock_prediction.router, prefix="/stock-prediction", tags=["stock-prediction"])
api_router.include_router(price_suggestion.router, prefix="/price-suggestion", tags=["price-suggestion"])
