"""API tests for the stock prediction endpoints."""

from datetime import timedelta

from cafe_ops.models.audit import AuditLogEntry
from cafe_ops.models.stock import SeasonalAdjustment
from cafe_ops.services.stock_prediction_service import utc_today

BASE = "/api/v1/stock-prediction"


def _steady(days: int, quantity: float) -> dict:
    return {days_ago: quantity for days_ago in range(days)}


class TestDeviceIdentity:
    """Device header authentication and role checks."""

    def test_missing_headers_unauthorized(self, client):
        response = client.post(f"{BASE}/predict", json={"ingredient_ids": [1], "prediction_days": 7})
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing device identity"

    def test_unknown_role_forbidden(self, client):
        response = client.get(
            f"{BASE}/reorder-suggestions",
            headers={"X-Device-ID": "x", "X-Device-Role": "barista"},
        )
        assert response.status_code == 403

    def test_kasir_cannot_bulk_predict(self, client, kasir_headers):
        response = client.post(f"{BASE}/bulk-predict", json={"prediction_days": 7}, headers=kasir_headers)
        assert response.status_code == 403

    def test_stok_cannot_store_seasonal_adjustments(self, client, stok_headers, make_ingredient):
        milk = make_ingredient()
        payload = {"adjustments": [{
            "ingredient_id": milk.id, "season": "dry", "multiplier": 1.2,
            "start_date": "2025-04-01", "end_date": "2025-09-30",
        }]}
        response = client.post(f"{BASE}/seasonal-adjustments", json=payload, headers=stok_headers)
        assert response.status_code == 403


class TestPredictEndpoint:
    """POST /predict."""

    def test_predict(self, client, db_session, owner_headers, make_ingredient, add_usage):
        milk = make_ingredient(current_stock=30)
        add_usage(milk, _steady(14, 10))

        response = client.post(
            f"{BASE}/predict",
            json={"ingredient_ids": [milk.id], "prediction_days": 7},
            headers=owner_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["total_ingredients"] == 1
        assert data["summary"]["prediction_period"] == "7 days"
        # 3 days of cover -> critical
        assert data["summary"]["high_risk_ingredients"] == 1
        assert data["summary"]["immediate_reorders_needed"] == 1
        assert data["predictions"][0]["risk_analysis"]["days_until_stockout"] == 3
        assert "generated_at" in data

        entry = db_session.query(AuditLogEntry).one()
        assert entry.action == "STOCK_PREDICTION"
        assert entry.actor_id == "owner-dashboard"
        assert entry.actor_role == "owner"
        assert entry.details["ingredient_ids"] == [milk.id]

    def test_unknown_ingredient(self, client, owner_headers, make_ingredient):
        milk = make_ingredient()
        response = client.post(
            f"{BASE}/predict",
            json={"ingredient_ids": [milk.id, 404], "prediction_days": 7},
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["invalid_ingredients"] == [404]

    def test_validation(self, client, stok_headers):
        for payload in (
            {"ingredient_ids": [], "prediction_days": 7},
            {"ingredient_ids": [1], "prediction_days": 0},
            {"ingredient_ids": [1], "prediction_days": 91},
            {"ingredient_ids": [1], "prediction_days": 7, "confidence_threshold": 1.5},
        ):
            response = client.post(f"{BASE}/predict", json=payload, headers=stok_headers)
            assert response.status_code == 422, payload


class TestBulkPredictEndpoint:
    """POST /bulk-predict."""

    def test_bulk_predict(self, client, db_session, stok_headers, make_ingredient, add_usage):
        milk = make_ingredient()
        make_ingredient(name="Sugar", category="sweetener")
        add_usage(milk, _steady(14, 10))

        response = client.post(
            f"{BASE}/bulk-predict",
            json={"prediction_days": 14, "category_filter": "dairy"},
            headers=stok_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["total_ingredients"] == 1
        assert data["predictions"][0]["ingredient_name"] == "Fresh Milk"
        assert len(data["predictions"][0]["consumption_predictions"]) == 14

        entry = db_session.query(AuditLogEntry).one()
        assert entry.action == "BULK_STOCK_PREDICTION"
        assert entry.actor_role == "stok"


class TestReorderSuggestionsEndpoint:
    """GET /reorder-suggestions."""

    def test_suggestions_summary(self, client, kasir_headers, make_ingredient, add_usage, test_supplier):
        milk = make_ingredient(current_stock=20, minimum_stock=50, supplier=test_supplier)
        add_usage(milk, _steady(7, 10))
        make_ingredient(name="Cheese", current_stock=45, minimum_stock=50, maximum_stock=None, cost_per_unit=10)

        response = client.get(f"{BASE}/reorder-suggestions", headers=kasir_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["total_suggestions"] == 2
        assert data["summary"]["critical_items"] == 1
        assert data["summary"]["total_estimated_cost"] == 10650.0
        assert data["summary"]["suppliers_involved"] == [test_supplier.id]
        assert data["suggestions"][0]["urgency"] == "critical"

    def test_filters_echoed(self, client, owner_headers, make_ingredient):
        make_ingredient(name="Cheese", current_stock=45, minimum_stock=50, maximum_stock=None, cost_per_unit=10)

        response = client.get(
            f"{BASE}/reorder-suggestions",
            params={"urgency": "critical", "budget_limit": 100000},
            headers=owner_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["suggestions"] == []
        assert data["filters_applied"]["urgency"] == "critical"
        assert data["filters_applied"]["budget_limit"] == 100000

    def test_invalid_urgency(self, client, owner_headers):
        response = client.get(f"{BASE}/reorder-suggestions", params={"urgency": "asap"}, headers=owner_headers)
        assert response.status_code == 422


class TestAnalyzePatternsEndpoint:
    """POST /analyze-patterns."""

    def test_analyze_patterns(self, client, stok_headers, make_ingredient, add_usage):
        milk = make_ingredient()
        add_usage(milk, _steady(14, 10))

        response = client.post(
            f"{BASE}/analyze-patterns",
            json={"ingredient_ids": [milk.id], "analysis_period_days": 14},
            headers=stok_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["period_analyzed"] == 14
        assert data["ingredients_analyzed"] == 1
        assert len(data["patterns"]["weekly_patterns"]) == 1

    def test_period_bounds(self, client, stok_headers):
        response = client.post(f"{BASE}/analyze-patterns", json={"analysis_period_days": 6}, headers=stok_headers)
        assert response.status_code == 422


class TestSeasonalAdjustmentsEndpoint:
    """POST /seasonal-adjustments."""

    def test_store_adjustments(self, client, db_session, owner_headers, make_ingredient):
        milk = make_ingredient()
        start = utc_today()
        payload = {"adjustments": [
            {
                "ingredient_id": milk.id, "season": "ramadan", "multiplier": 0.5,
                "start_date": start.isoformat(), "end_date": (start + timedelta(days=29)).isoformat(),
            },
            {
                "ingredient_id": 777, "season": "wet", "multiplier": 1.1,
                "start_date": start.isoformat(), "end_date": start.isoformat(),
            },
        ]}
        response = client.post(f"{BASE}/seasonal-adjustments", json=payload, headers=owner_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["successful"] == 1
        assert data["failed"] == 1

        row = db_session.query(SeasonalAdjustment).one()
        assert row.season == "ramadan"
        assert row.created_by == "owner-dashboard"

        entry = db_session.query(AuditLogEntry).one()
        assert entry.action == "SEASONAL_ADJUSTMENT_APPLIED"
        assert entry.details["failed"] == 1

    def test_invalid_adjustments(self, client, owner_headers):
        bad_range = {"adjustments": [{
            "ingredient_id": 1, "season": "dry", "multiplier": 1.2,
            "start_date": "2025-09-30", "end_date": "2025-04-01",
        }]}
        bad_season = {"adjustments": [{
            "ingredient_id": 1, "season": "monsoon", "multiplier": 1.2,
            "start_date": "2025-04-01", "end_date": "2025-09-30",
        }]}
        bad_multiplier = {"adjustments": [{
            "ingredient_id": 1, "season": "dry", "multiplier": 0,
            "start_date": "2025-04-01", "end_date": "2025-09-30",
        }]}
        for payload in (bad_range, bad_season, bad_multiplier, {"adjustments": []}):
            response = client.post(f"{BASE}/seasonal-adjustments", json=payload, headers=owner_headers)
            assert response.status_code == 422
