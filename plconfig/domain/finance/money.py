"""Money and margin helpers.

Amounts are stored as integer cents and computed as dollar floats. Percent
arguments are whole percents (25 means 25%); rates are decimals (0.25).

NO DATA ACCESS - pure functions only.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

_CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

# locale -> (thousands separator, decimal separator, symbol after amount)
# Locales missing here are formatted with the en_US conventions.
_LOCALE_FORMATS = {
    "en_US": (",", ".", False),
    "en_CA": (",", ".", False),
    "en_AU": (",", ".", False),
    "en_GB": (",", ".", False),
    "de_DE": (".", ",", True),
    "fr_FR": (" ", ",", True),
    "es_ES": (".", ",", True),
}


def format_currency(
    amount: float, currency: str | None = None, locale: str | None = None
) -> str:
    """Format a dollar amount with two decimal places.

    Args:
        amount: Amount in major units (dollars, euros, ...)
        currency: ISO currency code (settings ``currency_code`` when None)
        locale: Locale name such as ``en_US`` (settings ``currency_locale`` when None)

    Returns:
        Formatted string, e.g. ``$1,234.50`` or ``1.234,50 €``. Unknown
        currencies use the code as symbol; unknown locales format as en_US.

    """
    if currency is None or locale is None:
        from plconfig.core.config import get_settings

        settings = get_settings()
        currency = currency or settings.currency_code
        locale = locale or settings.currency_locale

    thousands, decimal_sep, symbol_after = _LOCALE_FORMATS.get(
        locale.replace("-", "_"), _LOCALE_FORMATS["en_US"]
    )
    symbol = _CURRENCY_SYMBOLS.get(currency.upper(), currency.upper())

    quantized = Decimal(str(abs(amount))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    whole, frac = f"{quantized:.2f}".split(".")
    grouped = f"{int(whole):,}".replace(",", thousands)
    number = f"{grouped}{decimal_sep}{frac}"

    sign = "-" if amount < 0 and quantized != 0 else ""
    if symbol_after:
        return f"{sign}{number} {symbol}"
    return f"{sign}{symbol}{number}"


def cents_to_dollars(cents: int) -> float:
    return cents / 100


def dollars_to_cents(dollars: float) -> int:
    """Convert dollars to integer cents, rounding half up.

    Goes through Decimal so that ``dollars_to_cents(cents_to_dollars(n)) == n``
    for every integer ``n``.
    """
    return int((Decimal(str(dollars)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_to_decimal(percent: float) -> float:
    return percent / 100


def decimal_to_percent(rate: float) -> float:
    return rate * 100


def calculate_margin(revenue: float, cost: float) -> float:
    """Margin percent of revenue; 0 when revenue is not positive."""
    if revenue <= 0:
        return 0.0
    return (revenue - cost) / revenue * 100


def calculate_price_for_margin(cost: float, target_margin_percent: float) -> float:
    """Price needed to reach a target margin.

    Returns:
        ``cost / (1 - target%)``, or ``inf`` when the target is 100% or more

    """
    if target_margin_percent >= 100:
        return math.inf
    return cost / (1 - target_margin_percent / 100)


def calculate_cogs_for_margin(price: float, target_margin_percent: float) -> float:
    """Maximum COGS that keeps a target margin at the given price."""
    return price * (1 - target_margin_percent / 100)


__all__ = [
    "format_currency",
    "cents_to_dollars",
    "dollars_to_cents",
    "percent_to_decimal",
    "decimal_to_percent",
    "calculate_margin",
    "calculate_price_for_margin",
    "calculate_cogs_for_margin",
]
