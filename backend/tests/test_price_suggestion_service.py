"""Tests for PriceSuggestionService against an in-memory database."""

import pytest
from decimal import Decimal

from cafe_ops.models.menu import MenuItem
from cafe_ops.services.price_suggestion_service import IngredientValidationError, PriceSuggestionService


def _kopi_susu_lines(recipe):
    return [
        {"ingredient_id": recipe["beans"].id, "quantity": 18, "unit": "gram"},
        {"ingredient_id": recipe["milk"].id, "quantity": 150, "unit": "ml"},
    ]


class TestCalculateMenuItemPrice:
    """Single recipe pricing."""

    def test_coffee_price(self, db_session, coffee_recipe):
        svc = PriceSuggestionService(db_session)
        result = svc.calculate_menu_item_price(_kopi_susu_lines(coffee_recipe), "coffee")

        assert result["total_ingredient_cost"] == 6600.0
        assert result["overhead_cost"] == 990.0
        assert result["labor_cost"] == 1584.0
        assert result["total_cost"] == 9174.0
        assert result["target_margin"] == 65.0
        assert result["suggested_price"] == pytest.approx(26211.43)
        assert result["rounded_price"] == 26000
        assert result["formatted_price"] == "Rp 26.000"
        assert result["ppn_amount"] == 2860
        assert result["price_with_ppn"] == 28860
        assert result["profitability"]["profit_margin"] == 64.72
        assert result["competitor_analysis"] is None
        assert result["confidence_score"] == 1.0  # fresh costs, all in stock

        beans_line = result["ingredient_costs"][0]
        assert beans_line["ingredient_name"] == "Espresso Beans"
        assert beans_line["total_cost"] == 3600.0

    def test_category_adjusts_margin(self, db_session, coffee_recipe):
        svc = PriceSuggestionService(db_session)
        tea = svc.calculate_menu_item_price(_kopi_susu_lines(coffee_recipe), "tea")
        assert tea["target_margin"] == 60.0
        capped = svc.calculate_menu_item_price(_kopi_susu_lines(coffee_recipe), "coffee", target_margin=80)
        assert capped["target_margin"] == 70.0

    def test_market_analysis(self, db_session, coffee_recipe):
        svc = PriceSuggestionService(db_session)
        result = svc.calculate_menu_item_price(
            _kopi_susu_lines(coffee_recipe), "coffee",
            market_analysis=True, competitor_prices=[20000, 22000],
        )
        assert result["competitor_analysis"]["price_position"] == "premium"
        assert result["factors_considered"][-1] == "Market positioning"
        assert result["confidence_score"] == 1.0

    def test_preparation_complexity(self, db_session, coffee_recipe):
        svc = PriceSuggestionService(db_session)
        simple = svc.calculate_menu_item_price(
            _kopi_susu_lines(coffee_recipe), "coffee", preparation_complexity="simple",
        )
        complex_ = svc.calculate_menu_item_price(
            _kopi_susu_lines(coffee_recipe), "coffee", preparation_complexity="complex",
        )
        assert simple["labor_cost"] < complex_["labor_cost"]
        assert simple["rounded_price"] <= complex_["rounded_price"]

    def test_missing_and_unit_mismatch(self, db_session, coffee_recipe):
        svc = PriceSuggestionService(db_session)
        lines = [
            {"ingredient_id": coffee_recipe["beans"].id, "quantity": 0.018, "unit": "kg"},
            {"ingredient_id": 999, "quantity": 1, "unit": "piece"},
        ]
        with pytest.raises(IngredientValidationError) as exc_info:
            svc.calculate_menu_item_price(lines, "coffee")
        assert exc_info.value.missing_ingredients == [999]
        assert exc_info.value.invalid_units == [
            f"{coffee_recipe['beans'].id}: expected gram, got kg",
        ]

    def test_inactive_ingredient_is_missing(self, db_session, make_ingredient):
        syrup = make_ingredient(name="Old Syrup", unit="ml", is_active=False)
        with pytest.raises(IngredientValidationError) as exc_info:
            PriceSuggestionService(db_session).calculate_menu_item_price(
                [{"ingredient_id": syrup.id, "quantity": 10, "unit": "ml"}], "beverage",
            )
        assert exc_info.value.missing_ingredients == [syrup.id]


class TestBulkPrices:
    """Bulk pricing of menu items and new recipes."""

    def test_existing_and_new_items(self, db_session, coffee_recipe):
        svc = PriceSuggestionService(db_session)
        kopi_susu = coffee_recipe["menu_item"]
        result = svc.calculate_bulk_prices(
            menu_item_ids=[kopi_susu.id, 404],
            recipe_data=[{
                "menu_item_name": "Es Kopi Hitam",
                "category": "coffee",
                "recipe_ingredients": [{"ingredient_id": coffee_recipe["beans"].id, "quantity": 20, "unit": "gram"}],
            }],
        )

        summary = result["summary"]
        assert summary["total_processed"] == 3
        assert summary["successful"] == 2
        assert summary["failed"] == 1

        first, missing, new = result["results"]
        assert first["success"] is True
        assert first["calculation"]["rounded_price"] == 26000
        assert missing == {
            "menu_item_id": 404, "menu_item_name": None, "success": False, "error": "Menu item not found",
        }
        assert new["menu_item_id"] is None
        assert new["menu_item_name"] == "Es Kopi Hitam"

        # Not written back without update_existing
        db_session.refresh(kopi_susu)
        assert float(kopi_susu.base_price) == 15000

    def test_update_existing(self, db_session, coffee_recipe):
        kopi_susu = coffee_recipe["menu_item"]
        PriceSuggestionService(db_session).calculate_bulk_prices(
            menu_item_ids=[kopi_susu.id], update_existing=True,
        )
        db_session.refresh(kopi_susu)
        assert float(kopi_susu.base_price) == 26000
        assert float(kopi_susu.cost_price) == 9174

    def test_update_existing_waits_for_caller_commit(self, db_session, coffee_recipe):
        kopi_susu = coffee_recipe["menu_item"]
        PriceSuggestionService(db_session).calculate_bulk_prices(
            menu_item_ids=[kopi_susu.id], update_existing=True,
        )
        db_session.rollback()

        db_session.refresh(kopi_susu)
        assert float(kopi_susu.base_price) == 15000

    def test_item_without_recipe(self, db_session):
        empty = MenuItem(name="Air Mineral", category="beverage", base_price=Decimal("5000"))
        db_session.add(empty)
        db_session.commit()

        result = PriceSuggestionService(db_session).calculate_bulk_prices(menu_item_ids=[empty.id])
        assert result["results"][0]["error"] == "No recipe ingredients"
        assert result["summary"]["average_margin"] == 0.0


class TestMarginAnalysis:
    """Menu margin analysis."""

    def test_underpriced_item(self, db_session, coffee_recipe):
        result = PriceSuggestionService(db_session).analyze_menu_margins()

        assert result["total_items"] == 1
        assert result["items_analyzed"] == 1
        assert result["margin_distribution"]["below_target"] == 1
        assert result["category_analysis"]["coffee"] == {"items": 1, "average_margin": 38.84}

        [opportunity] = result["optimization_opportunities"]
        assert opportunity["optimal_price"] == 26000
        assert opportunity["price_adjustment"] == 11000
        assert opportunity["adjustment_type"] == "increase"
        assert opportunity["priority"] == 22.0

        metrics = result["summary_metrics"]
        assert metrics["average_margin"] == 38.84
        assert metrics["median_margin"] == 38.84
        assert metrics["total_potential_savings"] == 11000
        assert metrics["underpriced_items"] == 1
        assert metrics["overpriced_items"] == 0

    def test_uses_stored_cost_price(self, db_session, coffee_recipe):
        kopi_susu = coffee_recipe["menu_item"]
        kopi_susu.base_price = Decimal("26000")
        kopi_susu.cost_price = Decimal("9100")
        db_session.commit()

        result = PriceSuggestionService(db_session).analyze_menu_margins(include_suggestions=False)
        assert result["margin_distribution"]["within_target"] == 1
        assert result["optimization_opportunities"] == []
        assert result["summary_metrics"]["average_margin"] == 65.0

    def test_suggestions_off_still_counts_potential(self, db_session, coffee_recipe):
        result = PriceSuggestionService(db_session).analyze_menu_margins(include_suggestions=False)
        assert result["optimization_opportunities"] == []
        assert result["summary_metrics"]["total_potential_savings"] == 11000

    def test_category_filter(self, db_session, coffee_recipe):
        svc = PriceSuggestionService(db_session)
        assert svc.analyze_menu_margins(category_filter="pastry")["total_items"] == 0
        assert svc.analyze_menu_margins(category_filter="coffee")["total_items"] == 1


class TestIngredientCostUpdates:
    """Cost updates and menu repricing."""

    def test_update_and_reprice(self, db_session, coffee_recipe):
        beans = coffee_recipe["beans"]
        kopi_susu = coffee_recipe["menu_item"]

        result = PriceSuggestionService(db_session).update_ingredient_costs([
            {"ingredient_id": beans.id, "new_cost_per_unit": 250},
            {"ingredient_id": 31337, "new_cost_per_unit": 1},
        ])

        assert result["summary"] == {
            "updated_ingredients": 1,
            "affected_menu_items": 1,
            "total_cost_impact": 50.0,
            "recalculation_performed": True,
        }
        assert result["affected_menu_items"] == [kopi_susu.id]
        assert result["not_found"] == [31337]
        assert result["recalculation"]["summary"]["successful"] == 1

        db_session.refresh(beans)
        db_session.refresh(kopi_susu)
        assert float(beans.cost_per_unit) == 250
        assert float(kopi_susu.base_price) == 30000
        assert float(kopi_susu.cost_price) == 10425

    def test_update_without_recalculation(self, db_session, coffee_recipe):
        milk = coffee_recipe["milk"]
        kopi_susu = coffee_recipe["menu_item"]

        result = PriceSuggestionService(db_session).update_ingredient_costs(
            [{"ingredient_id": milk.id, "new_cost_per_unit": 15}], recalculate_menu_items=False,
        )
        assert result["summary"]["recalculation_performed"] is False
        assert result["summary"]["affected_menu_items"] == 0
        assert result["recalculation"] is None

        db_session.refresh(kopi_susu)
        assert float(kopi_susu.base_price) == 15000

    def test_cost_update_waits_for_caller_commit(self, db_session, coffee_recipe):
        beans = coffee_recipe["beans"]
        PriceSuggestionService(db_session).update_ingredient_costs(
            [{"ingredient_id": beans.id, "new_cost_per_unit": 250}],
        )
        db_session.rollback()

        db_session.refresh(beans)
        assert float(beans.cost_per_unit) == 200


class TestMarketData:

    def test_default_location(self, db_session):
        data = PriceSuggestionService(db_session).market_data(category="coffee")
        assert data["location"] == "kendari"
        assert data["data"]["average_prices"]["coffee"]["avg"] == 25000
