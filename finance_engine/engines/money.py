"""Decimal and calendar-month helpers shared by the engines."""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from dateutil.relativedelta import relativedelta

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
MONTHS_PER_YEAR = 12


def to_decimal(value: Number) -> Decimal:
    """
    Coerce a number to Decimal.

    Floats go through their shortest repr so that 3.5 becomes
    Decimal("3.5") rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts")
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_currency(value: Decimal, places: int = 2) -> Decimal:
    """Round half away from zero to a fixed number of places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """3.5 (percent per year) -> 0.0029166... (fraction per month)."""
    return annual_rate_percent / MONTHS_PER_YEAR / 100


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the month's end."""
    return start + relativedelta(months=months)


def months_between(start: date, end: date) -> int:
    """
    Number of whole months k >= 0 with add_months(start, k) <= end.

    Returns -1 when end is before start.
    """
    if end < start:
        return -1
    months = (end.year - start.year) * MONTHS_PER_YEAR + (end.month - start.month)
    if add_months(start, months) > end:
        months -= 1
    return months
