"""Formatting utilities for currency and text display."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CURRENCY_SYMBOL = "₫"
_NBSP = "\u00a0"


def format_vnd(amount: Union[float, int]) -> str:
    """Format a VND amount with dot grouping and no decimals.

    Args:
        amount: The amount to format; fractional values are rounded half away
            from zero.

    Returns:
        Formatted currency string with a non-breaking space before the symbol.

    Example:
        >>> format_vnd(1500000)
        '1.500.000\\xa0₫'
        >>> format_vnd(-2500.5)
        '-2.501\\xa0₫'
    """
    whole = int(Decimal(str(amount)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    grouped = f"{abs(whole):,}".replace(",", ".")
    sign = "-" if whole < 0 else ""
    return f"{sign}{grouped}{_NBSP}{CURRENCY_SYMBOL}"


def format_percent(ratio: float) -> str:
    """Format a ratio (``0.25``) as a whole percentage (``"25%"``)."""
    return f"{ratio * 100:.0f}%"
