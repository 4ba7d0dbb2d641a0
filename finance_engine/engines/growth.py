"""
Growth Projection Engine

Month-by-month compounding of a balance with a fixed monthly
contribution, from a start date through a target date inclusive.

Each month: add the contribution, accrue interest on the new balance,
add the interest. A negative rate models a declining balance.

A target date before the start date is a legitimate "nothing to
project" request, not an error.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from finance_engine.config import get_settings
from finance_engine.engines.money import (
    MONTHS_PER_YEAR,
    Number,
    add_months,
    monthly_rate,
    months_between,
    round_currency,
    to_decimal,
)
from finance_engine.exceptions import HorizonTooLarge
from finance_engine.models.results import ProjectionMonth, ProjectionResult


def projection_length(start_date: date, target_date: date) -> int:
    """Number of monthly records a projection over these dates emits."""
    return months_between(start_date, target_date) + 1


def calculate(
    current_balance: Number,
    monthly_contribution: Number,
    annual_return_rate_percent: Number,
    start_date: date,
    target_date: date,
    max_years: Optional[int] = None,
) -> ProjectionResult:
    """
    Project a balance forward one month at a time.

    Args:
        current_balance: Balance at the start date
        monthly_contribution: Added at the start of every month
        annual_return_rate_percent: Annual return as a percentage, any sign
        start_date: Date of the first record
        target_date: Last date a record may fall on
        max_years: Horizon cap (defaults to the configured
            max_projection_years)

    Returns:
        ProjectionResult whose final_balance equals the last record's
        balance, or the unmodified current balance when empty.

    Raises:
        HorizonTooLarge: the projection would exceed the horizon cap
    """
    settings = get_settings().engine
    places = settings.currency_places
    if max_years is None:
        max_months = settings.max_projection_months
    else:
        max_months = max_years * MONTHS_PER_YEAR

    balance = to_decimal(current_balance)
    contribution = to_decimal(monthly_contribution)
    rate = monthly_rate(to_decimal(annual_return_rate_percent))

    if target_date < start_date:
        return ProjectionResult(final_balance=balance, monthly_breakdown=[])

    months = projection_length(start_date, target_date)
    if months > max_months:
        raise HorizonTooLarge(months, max_months)

    breakdown: list[ProjectionMonth] = []
    for offset in range(months):
        balance += contribution
        interest = balance * rate
        balance += interest

        breakdown.append(
            ProjectionMonth(
                date=add_months(start_date, offset),
                balance=round_currency(balance, places),
                contribution=round_currency(contribution, places),
                interest=round_currency(interest, places),
            )
        )

    return ProjectionResult(
        final_balance=breakdown[-1].balance,
        monthly_breakdown=breakdown,
    )
