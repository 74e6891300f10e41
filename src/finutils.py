# -*- coding: utf-8 -*-
"""
-------------------------------------------------------------------------------
 Name:          finutils.py
 Purpose:       Numeric coercion helpers shared by the accounting modules and
                display formatting helpers for positions and totals.

 Copyright:     (c) Lotfolio Contributors 2025
 Licence:       MIT
-------------------------------------------------------------------------------
SPDX-License-Identifier: MIT
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Any, Dict, Iterable, Optional

import numpy as np
import pandas as pd

from config import (
    DEFAULT_NAME_TRUNCATE_LENGTH,
    HIDDEN_VALUE_PLACEHOLDER,
    MAX_QUANTITY_DECIMALS,
)

DECIMAL_NAN = Decimal("NaN")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Coerces a ledger or quote value to Decimal without losing precision.

    Floats go through their shortest repr so 0.00001234 stays 0.00001234.
    Strings may carry thousands separators or a leading currency symbol.
    Anything that cannot be parsed becomes Decimal("NaN") so arithmetic
    downstream propagates NaN instead of raising. Infinities and signaling
    NaNs become the quiet NaN too: the default context raises on
    `inf * 0`, `inf - inf` and any arithmetic with sNaN.

    Args:
        value: str, int, float, numpy scalar, Decimal or None.

    Returns:
        Decimal: The coerced finite value, or Decimal("NaN").
    """
    if isinstance(value, Decimal):
        return value if value.is_finite() else DECIMAL_NAN
    if value is None or value is pd.NA:
        return DECIMAL_NAN
    if isinstance(value, (bool, np.bool_)):
        return Decimal(int(value))
    if isinstance(value, (int, np.integer)):
        return Decimal(int(value))
    if isinstance(value, (float, np.floating)):
        if not np.isfinite(value):
            return DECIMAL_NAN
        return Decimal(repr(float(value)))
    text = str(value).strip().replace(",", "").lstrip("$")
    if not text:
        return DECIMAL_NAN
    try:
        number = Decimal(text)
    except InvalidOperation:
        logging.debug(f"to_decimal: could not parse {value!r}, using NaN.")
        return DECIMAL_NAN
    return number if number.is_finite() else DECIMAL_NAN


def is_positive(value: Any) -> bool:
    """NaN-safe `value > 0`. Decimal NaN ordering comparisons would raise."""
    number = to_decimal(value)
    return not number.is_nan() and number > 0


def decimal_sum(values: Iterable[Any]) -> Decimal:
    """Sums values as Decimal. A NaN anywhere makes the total NaN."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def safe_divide(numerator: Any, denominator: Any) -> Decimal:
    """Returns numerator / denominator, or 0 when the denominator is not positive."""
    if not is_positive(denominator):
        return ZERO
    return to_decimal(numerator) / to_decimal(denominator)


# --- Display Formatting ---


def format_number(value: Any, max_decimals: int = MAX_QUANTITY_DECIMALS) -> str:
    """
    Formats a number with up to `max_decimals` decimal places, dropping
    trailing zeros and adding thousands separators.

    Extra decimals are truncated, not rounded. Missing values render as "0".
    Example: format_number(1234.50000) -> "1,234.5"
    """
    number = to_decimal(value)
    if number.is_nan() or number == 0:
        return "0"

    with localcontext() as ctx:
        ctx.prec = 60
        truncated = number.quantize(
            Decimal(1).scaleb(-max_decimals), rounding=ROUND_DOWN
        )

    integer_part, _, decimal_part = f"{abs(truncated):f}".partition(".")
    decimal_part = decimal_part.rstrip("0")
    sign = "-" if truncated < 0 else ""
    formatted_integer = f"{int(integer_part):,}"
    if not decimal_part:
        return f"{sign}{formatted_integer}"
    return f"{sign}{formatted_integer}.{decimal_part}"


def format_quantity(value: Any) -> str:
    """Formats a stock or crypto quantity, keeping up to 10 decimals."""
    return format_number(value, MAX_QUANTITY_DECIMALS)


def format_currency_value(
    value: Any, hidden: bool = False, currency_symbol: str = "$"
) -> str:
    """Formats a value as currency with exactly two decimals, e.g. "$1,000.00"."""
    if hidden:
        return HIDDEN_VALUE_PLACEHOLDER
    number = to_decimal(value)
    if number.is_nan():
        return f"{currency_symbol}0.00"
    rounded = f"{abs(number):,.2f}"
    sign = "-" if number < 0 and rounded.strip("0.,") else ""
    return f"{sign}{currency_symbol}{rounded}"


def format_percentage_value(value: Any, decimals: int = 2) -> str:
    """Formats a percentage (5 means 5%) with a leading "+" for gains."""
    number = to_decimal(value)
    if number.is_nan():
        return f"{0:.{decimals}f}%"
    formatted = f"{number:,.{decimals}f}%"
    return f"+{formatted}" if number > 0 else formatted


def truncate_name(name: Optional[str], max_length: int = DEFAULT_NAME_TRUNCATE_LENGTH):
    """Shortens a display name to `max_length` characters with an ellipsis."""
    if not name or not isinstance(name, str):
        return name
    if len(name) <= max_length:
        return name
    return name[: max_length - 3] + "..."


def format_date_time(date_string: Optional[str], time_string: Optional[str] = None) -> str:
    """
    Formats a ledger date for display.

    ("2024-01-15", "14:30") -> "2024-01-15, 14:30"
    "2024-01-15T14:30:00Z" -> "2024-01-15 14:30"
    """
    if not date_string:
        return ""
    if time_string:
        return f"{date_string}, {time_string}"
    if "T" in date_string:
        parsed = pd.to_datetime(date_string, errors="coerce")
        if pd.isna(parsed):
            return date_string.replace("T", " ").rstrip("Z")[:16]
        return parsed.strftime("%Y-%m-%d %H:%M")
    return date_string


def calculate_pnl_percentage(pnl: Any, cost_basis: Any) -> str:
    """Returns the P/L percentage as a two-decimal string, "0.00" when undefined."""
    pnl_value = to_decimal(pnl)
    if pnl_value.is_nan() or not is_positive(cost_basis):
        return "0.00"
    return f"{pnl_value / to_decimal(cost_basis) * 100:.2f}"


def format_24h_change(change_percent: Any) -> Dict[str, Any]:
    """Builds the arrow indicator for a 24h price change percentage."""
    change = to_decimal(change_percent)
    if change.is_nan():
        change = ZERO
    is_up = change >= 0
    arrow = "▲" if is_up else "▼"
    formatted = f"{abs(change):.2f}"
    return {
        "value": change,
        "formatted": formatted,
        "is_positive": is_up,
        "arrow": arrow,
        "display": f"{arrow} {formatted}%",
    }
