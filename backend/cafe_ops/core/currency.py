"""Indonesian Rupiah formatting ("Rp 15.000", "Rp 1,2M")."""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

CURRENCY_SYMBOL = "Rp"
THOUSAND_SEPARATOR = "."
DECIMAL_SEPARATOR = ","


def _with_symbol(text: str, show_symbol: bool) -> str:
    return f"{CURRENCY_SYMBOL} {text}" if show_symbol else text


def format_currency(
    amount: float,
    show_symbol: bool = True,
    show_decimals: bool = False,
    minimum_fraction_digits: int = 0,
    maximum_fraction_digits: Optional[int] = None,
) -> str:
    """Format as Rupiah with ``.`` thousands and ``,`` decimals.

    Negative amounts get a leading ``-`` before the symbol.
    """
    if amount is None or math.isnan(amount) or math.isinf(amount):
        return _with_symbol("0", show_symbol)

    if maximum_fraction_digits is None:
        maximum_fraction_digits = 2 if show_decimals else 0
    minimum_fraction_digits = min(minimum_fraction_digits, maximum_fraction_digits)

    rounded = Decimal(str(abs(amount))).quantize(
        Decimal(1).scaleb(-maximum_fraction_digits), rounding=ROUND_HALF_UP
    )
    text = f"{rounded:,.{maximum_fraction_digits}f}"
    if "." in text:
        integer, decimals = text.split(".")
        decimals = decimals.rstrip("0").ljust(minimum_fraction_digits, "0")
    else:
        integer, decimals = text, ""

    formatted = integer.replace(",", THOUSAND_SEPARATOR)
    if decimals:
        formatted = f"{formatted}{DECIMAL_SEPARATOR}{decimals}"

    result = _with_symbol(formatted, show_symbol)
    return f"-{result}" if amount < 0 else result


def format_currency_compact(amount: float, show_symbol: bool = True) -> str:
    """Compact K/M/B notation, e.g. ``Rp 15K`` or ``Rp 1,2M``."""
    if amount is None or math.isnan(amount) or math.isinf(amount):
        return _with_symbol("0", show_symbol)

    value = abs(amount)
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if value >= threshold:
            text = f"{value / threshold:.1f}"
            if text.endswith(".0"):
                text = text[:-2]
            formatted = text + suffix
            break
    else:
        formatted = f"{value:g}" if value != int(value) else str(int(value))

    formatted = formatted.replace(".", DECIMAL_SEPARATOR, 1)
    result = _with_symbol(formatted, show_symbol)
    return f"-{result}" if amount < 0 else result


def format_currency_difference(amount: float, show_symbol: bool = True) -> str:
    """Signed difference, e.g. ``+Rp 5.000``."""
    if amount == 0:
        return _with_symbol("0", show_symbol)
    prefix = "+" if amount > 0 else "-"
    return prefix + format_currency(abs(amount), show_symbol=show_symbol)


def format_currency_range(min_amount: float, max_amount: float, show_symbol: bool = True) -> str:
    return (
        f"{format_currency(min_amount, show_symbol=show_symbol)} - "
        f"{format_currency(max_amount, show_symbol=show_symbol)}"
    )


_NUMBER = re.compile(r"^[+-]?\d+(\.\d*)?")


def parse_currency(value: Optional[str]) -> Optional[float]:
    """Parse "Rp 15.000" / "15.000,50" back to a number; None if invalid."""
    if not value or not isinstance(value, str):
        return None

    cleaned = value.replace(CURRENCY_SYMBOL, "").strip()
    if not cleaned:
        return None

    cleaned = cleaned.replace(THOUSAND_SEPARATOR, "").replace(DECIMAL_SEPARATOR, ".")
    cleaned = re.sub(r"^([+-])\s+", r"\1", cleaned)
    match = _NUMBER.match(cleaned)
    if match is None:
        return None
    return float(match.group(0))
