"""Tests for shared pricing utilities (PPN, discounts, margins, IDR rounding)."""

import math

from cafe_ops.core import pricing


class TestTax:

    def test_ppn(self):
        assert pricing.calculate_ppn(100000) == 11000
        assert pricing.calculate_ppn(26000) == 2860
        assert pricing.calculate_ppn(-5) == 0
        assert pricing.calculate_ppn(math.nan) == 0

    def test_amount_with_and_without_tax(self):
        assert pricing.amount_with_tax(100000) == 111000
        assert pricing.base_amount_from_tax(111000) == 100000

    def test_half_up_rounding(self):
        # 50 * 0.11 = 5.5 -> 6
        assert pricing.calculate_ppn(50) == 6
        assert pricing.round_idr(2.5) == 3

    def test_negative_halves_round_toward_positive(self):
        assert pricing.round_idr(-1.5) == -1
        assert pricing.round_idr(-2.5) == -2
        assert pricing.round_idr(-2.6) == -3


class TestDiscounts:

    def test_percentage_discount_clamped(self):
        assert pricing.percentage_discount(50000, 10) == 5000
        assert pricing.percentage_discount(50000, 150) == 50000
        assert pricing.percentage_discount(50000, -10) == 0

    def test_fixed_discount(self):
        assert pricing.fixed_discount(50000, 10000) == 10000
        assert pricing.fixed_discount(5000, 10000) == 5000
        assert pricing.fixed_discount(50000, 10000, max_discount=7500) == 7500
        assert pricing.fixed_discount(50000, -1) == 0

    def test_final_amount(self):
        assert pricing.final_amount(100000, 10000) == 99900
        assert pricing.final_amount(10000, 20000) == 0


class TestOrderTotals:

    def test_sequential_discounts(self):
        totals = pricing.order_totals(
            items=[{"price": 25000, "quantity": 2}, {"price": 15000, "quantity": 1}],
            discounts=[
                {"type": "percentage", "value": 10},
                {"type": "fixed", "value": 10000, "max_amount": 5000},
                {"type": "voucher", "value": 1000},
            ],
        )
        assert totals["subtotal"] == 65000
        # 10% of 65000, then min(10000, 5000)
        assert totals["total_discount"] == 11500
        assert totals["taxable_amount"] == 53500
        assert totals["tax_amount"] == 5885
        assert totals["total"] == 59385
        assert [d["type"] for d in totals["discounts_applied"]] == ["percentage", "fixed"]

    def test_invalid_items_skipped(self):
        totals = pricing.order_totals(items=[{"price": -1, "quantity": 2}, {"price": 1000, "quantity": 1}])
        assert totals["subtotal"] == 1000


class TestMargins:

    def test_profit_margin(self):
        assert pricing.profit_margin(26000, 9174) == 64.72
        assert pricing.profit_margin(0, 100) == 0.0

    def test_selling_price_from_margin(self):
        assert pricing.selling_price_from_margin(3500, 65) == 10000
        # capped at 95%
        assert pricing.selling_price_from_margin(1000, 99) == 20000
        assert pricing.selling_price_from_margin(0, 65) == 0

    def test_recipe_cost(self):
        cost = pricing.recipe_cost([
            {"cost_per_unit": 200, "quantity": 18},
            {"cost_per_unit": 20, "quantity": 150},
            {"cost_per_unit": math.nan, "quantity": 1},
        ])
        assert cost == 6600

    def test_suggested_price(self):
        result = pricing.suggested_price(3500)
        assert result["base_price_from_margin"] == 10000
        assert result["suggested_price"] == 10000

        with_competitor = pricing.suggested_price(3500, competitor_price=20000)
        assert with_competitor["competitor_adjustment"] == 3000
        assert with_competitor["suggested_price"] == 13000

        assert pricing.suggested_price(0)["suggested_price"] == 0

    def test_negative_competitor_adjustment_tie(self):
        # (9995 - 10000) * 0.3 = -1.5
        result = pricing.suggested_price(10000, 0.0, competitor_price=9995)
        assert result["competitor_adjustment"] == -1


class TestPayroll:

    def test_below_ptkp(self):
        result = pricing.payroll(4_000_000)
        assert result["income_tax"] == 0
        assert result["net_pay"] == 4_000_000

    def test_progressive_tax(self):
        result = pricing.payroll(8_000_000, overtime_hours=10, overtime_rate=50_000)
        # gross 8.5M, taxable above PTKP 4M -> 5% = 200K
        assert result["gross_pay"] == 8_500_000
        assert result["income_tax"] == 200_000
        assert result["net_pay"] == 8_300_000

    def test_upper_bracket(self):
        result = pricing.payroll(15_500_000)
        # 11M above PTKP: 250K + 6M * 15%
        assert result["income_tax"] == 1_150_000


class TestPriceRounding:

    def test_increment_by_price_band(self):
        assert pricing.round_price_idr(750) == 800
        assert pricing.round_price_idr(7250) == 7500
        assert pricing.round_price_idr(23400) == 23000
        assert pricing.round_price_idr(123000) == 125000

    def test_direction(self):
        assert pricing.round_price_idr(23100, "up") == 24000
        assert pricing.round_price_idr(23900, "down") == 23000
        assert pricing.round_price_idr(-1) == 0
