"""Pricing calculation utilities.

Tax (PPN 11%), discounts, order totals, profit margins and IDR price
rounding shared across the backend.  Invalid amounts (NaN or negative)
yield 0 rather than raising.
"""

import math
from typing import Any, Dict, List, Optional, Sequence

PPN_RATE = 0.11  # Pajak Pertambahan Nilai (Indonesian VAT)
DEFAULT_PROFIT_MARGIN = 0.65
MAX_MARGIN_PERCENTAGE = 95
MONTHLY_PTKP = 4_500_000  # non-taxable income per month
PRICE_ROUNDING = 500


def round_idr(amount: float) -> int:
    """Round to a whole rupiah, halves toward +infinity (-1.5 becomes -1)."""
    return int(math.floor(amount + 0.5))


def _invalid(amount: Optional[float]) -> bool:
    return amount is None or math.isnan(amount) or amount < 0


def calculate_ppn(amount: float, rate: float = PPN_RATE) -> int:
    if _invalid(amount):
        return 0
    return round_idr(amount * rate)


def amount_with_tax(amount: float, rate: float = PPN_RATE) -> float:
    if _invalid(amount):
        return 0
    return amount + calculate_ppn(amount, rate)


def base_amount_from_tax(amount_with_ppn: float, rate: float = PPN_RATE) -> int:
    if _invalid(amount_with_ppn):
        return 0
    return round_idr(amount_with_ppn / (1 + rate))


def percentage_discount(original_amount: float, discount_percentage: float) -> int:
    """Discount for a 0-100 percentage (clamped)."""
    if _invalid(original_amount) or discount_percentage is None or math.isnan(discount_percentage):
        return 0
    percentage = max(0.0, min(100.0, discount_percentage))
    return round_idr(original_amount * percentage / 100)


def fixed_discount(
    original_amount: float,
    discount: float,
    max_discount: Optional[float] = None,
) -> float:
    """Fixed discount, never more than the amount or *max_discount*."""
    if _invalid(original_amount) or _invalid(discount):
        return 0
    result = min(discount, original_amount)
    if max_discount and not math.isnan(max_discount):
        result = min(result, max_discount)
    return result


def final_amount(base_amount: float, discount_amount: float = 0, tax_rate: float = PPN_RATE) -> float:
    """Amount after discount, then tax."""
    if _invalid(base_amount):
        return 0
    return amount_with_tax(max(0, base_amount - discount_amount), tax_rate)


def profit_margin(selling_price: float, cost_price: float) -> float:
    """Margin percent with 2 decimals; 0 for non-positive inputs."""
    if (
        selling_price is None or cost_price is None
        or math.isnan(selling_price) or math.isnan(cost_price)
        or selling_price <= 0 or cost_price <= 0
    ):
        return 0.0
    return round((selling_price - cost_price) / selling_price * 100, 2)


def selling_price_from_margin(
    cost_price: float,
    margin_percentage: float = DEFAULT_PROFIT_MARGIN * 100,
) -> float:
    """Price for a desired margin, margin capped at 95%."""
    if cost_price is None or math.isnan(cost_price) or cost_price <= 0 or math.isnan(margin_percentage):
        return cost_price
    margin = max(0.0, min(MAX_MARGIN_PERCENTAGE, margin_percentage)) / 100
    return round_idr(cost_price / (1 - margin))


def order_totals(
    items: Sequence[Dict[str, float]],
    discounts: Sequence[Dict[str, Any]] = (),
    tax_rate: float = PPN_RATE,
) -> Dict[str, Any]:
    """Subtotal, sequential discounts, then tax on the discounted amount.

    *items* are ``{"price", "quantity"}``; *discounts* are
    ``{"type": "percentage"|"fixed", "value", "max_amount"?}``.
    """
    subtotal = sum(
        item["price"] * item["quantity"]
        for item in items
        if not _invalid(item["price"]) and not _invalid(item["quantity"])
    )

    total_discount = 0.0
    applied: List[Dict[str, Any]] = []
    for discount in discounts:
        remaining = subtotal - total_discount
        if discount["type"] == "percentage":
            amount = percentage_discount(remaining, discount["value"])
        elif discount["type"] == "fixed":
            amount = fixed_discount(remaining, discount["value"], discount.get("max_amount"))
        else:
            amount = 0
        if amount > 0:
            total_discount += amount
            applied.append({"type": discount["type"], "amount": amount})

    taxable = max(0, subtotal - total_discount)
    tax = calculate_ppn(taxable, tax_rate)
    return {
        "subtotal": subtotal,
        "total_discount": total_discount,
        "taxable_amount": taxable,
        "tax_amount": tax,
        "total": taxable + tax,
        "discounts_applied": applied,
    }


def recipe_cost(ingredients: Sequence[Dict[str, float]]) -> float:
    """Sum of ``cost_per_unit * quantity``, skipping NaN entries."""
    total = 0.0
    for ing in ingredients:
        if math.isnan(ing["cost_per_unit"]) or math.isnan(ing["quantity"]):
            continue
        total += ing["cost_per_unit"] * ing["quantity"]
    return total


def suggested_price(
    cost_price: float,
    target_margin: float = DEFAULT_PROFIT_MARGIN,
    competitor_price: Optional[float] = None,
    demand_factor: float = 1.0,
) -> Dict[str, float]:
    """Margin price nudged toward competitors (30%) and demand (20%), min 10% markup."""
    if cost_price is None or math.isnan(cost_price) or cost_price <= 0:
        return {
            "suggested_price": 0,
            "base_price_from_margin": 0,
            "competitor_adjustment": 0,
            "demand_adjustment": 0,
            "final_price": 0,
        }

    base = selling_price_from_margin(cost_price, target_margin * 100)

    competitor_adjustment = 0
    if competitor_price and not math.isnan(competitor_price) and competitor_price > 0:
        competitor_adjustment = round_idr((competitor_price - base) * 0.3)

    factor = max(0.5, min(2.0, demand_factor))
    demand_adjustment = round_idr(base * (factor - 1) * 0.2)

    final = max(cost_price * 1.1, base + competitor_adjustment + demand_adjustment)
    return {
        "suggested_price": round_idr(final / PRICE_ROUNDING) * PRICE_ROUNDING,
        "base_price_from_margin": base,
        "competitor_adjustment": competitor_adjustment,
        "demand_adjustment": demand_adjustment,
        "final_price": final,
    }


def payroll(
    base_salary: float,
    overtime_hours: float = 0,
    overtime_rate: float = 0,
    allowances: float = 0,
    deductions: float = 0,
) -> Dict[str, float]:
    """Monthly pay with simplified PPh 21: 5% up to Rp 5M over PTKP, 15% above."""
    if _invalid(base_salary):
        base_salary = 0

    overtime_pay = max(0, overtime_hours * overtime_rate)
    allowances = max(0, allowances)
    deductions = max(0, deductions)

    gross = base_salary + overtime_pay + allowances
    taxable_income = max(0, gross - deductions)
    taxable_for_tax = max(0, taxable_income - MONTHLY_PTKP)

    if taxable_for_tax <= 0:
        income_tax = 0.0
    elif taxable_for_tax <= 5_000_000:
        income_tax = taxable_for_tax * 0.05
    else:
        income_tax = 250_000 + (taxable_for_tax - 5_000_000) * 0.15

    net = max(0, gross - deductions - income_tax)
    return {
        "base_salary": base_salary,
        "overtime_pay": round_idr(overtime_pay),
        "allowances": round_idr(allowances),
        "gross_pay": round_idr(gross),
        "deductions": round_idr(deductions),
        "taxable_income": round_idr(taxable_income),
        "income_tax": round_idr(income_tax),
        "net_pay": round_idr(net),
    }


def round_price_idr(price: float, method: str = "nearest") -> int:
    """Round to a price-dependent increment: 100, 500, 1000 or 5000."""
    if _invalid(price):
        return 0

    if price < 1_000:
        increment = 100
    elif price < 10_000:
        increment = 500
    elif price < 100_000:
        increment = 1_000
    else:
        increment = 5_000

    if method == "up":
        return math.ceil(price / increment) * increment
    if method == "down":
        return math.floor(price / increment) * increment
    return round_idr(price / increment) * increment
