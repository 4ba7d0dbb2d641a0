"""
Amortization Engine

Pure functions for fixed-term debt: the level periodic payment, the
interest/principal split of a payment, and the full payoff schedule.

DESIGN DECISION: The engine never touches stored state. It takes values,
returns values, and is safe to call concurrently for the same account.

Precision policy:
- All arithmetic is Decimal at full context precision
- The running balance is carried unrounded from period to period
- Only the fields of emitted AmortizationPeriod records are rounded

Negative amortization (a payment smaller than the interest accruing on
the balance) is NOT clamped here. It passes through as a negative
principal portion and the caller decides how to report it.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from finance_engine.config import get_settings
from finance_engine.engines.money import (
    MONTHS_PER_YEAR,
    ZERO,
    Number,
    add_months,
    monthly_rate,
    round_currency,
    to_decimal,
)
from finance_engine.exceptions import InvalidLoanTerms
from finance_engine.models.results import (
    AmortizationPeriod,
    AmortizationResult,
    PaymentBreakdown,
)


def _validate_rate(annual_rate_percent: Decimal) -> None:
    if annual_rate_percent < 0:
        raise InvalidLoanTerms(
            f"Annual rate must be >= 0, got {annual_rate_percent}"
        )


def _validate_terms(principal: Decimal, annual_rate_percent: Decimal, term_years: int) -> None:
    """Reject terms the payment formula is undefined or meaningless for."""
    if principal <= 0:
        raise InvalidLoanTerms(f"Principal must be > 0, got {principal}")
    _validate_rate(annual_rate_percent)
    if isinstance(term_years, bool) or not isinstance(term_years, int):
        raise InvalidLoanTerms(f"Term must be a whole number of years, got {term_years!r}")
    if term_years <= 0:
        raise InvalidLoanTerms(f"Term must be > 0 years, got {term_years}")


def _validate_max_periods(max_periods: int) -> None:
    cap = get_settings().engine.max_amortization_periods
    if isinstance(max_periods, bool) or not isinstance(max_periods, int):
        raise InvalidLoanTerms(f"max_periods must be an integer, got {max_periods!r}")
    if not 1 <= max_periods <= cap:
        raise InvalidLoanTerms(
            f"max_periods must be between 1 and {cap}, got {max_periods}"
        )


def periodic_payment(
    principal: Number,
    annual_rate_percent: Number,
    term_years: int,
) -> Decimal:
    """
    Level monthly payment that retires `principal` over `term_years`.

    Uses the annuity formula P * r(1+r)^n / ((1+r)^n - 1). At a zero rate
    the loan amortizes linearly: P / n.

    Raises:
        InvalidLoanTerms: principal <= 0, rate < 0, or term_years <= 0
    """
    principal = to_decimal(principal)
    annual_rate_percent = to_decimal(annual_rate_percent)
    _validate_terms(principal, annual_rate_percent, term_years)

    n = term_years * MONTHS_PER_YEAR
    if annual_rate_percent == 0:
        return principal / n

    r = monthly_rate(annual_rate_percent)
    growth = (1 + r) ** n
    return principal * r * growth / (growth - 1)


def payment_breakdown(
    current_balance: Number,
    annual_rate_percent: Number,
    payment: Number,
) -> PaymentBreakdown:
    """
    Split the next payment between interest and principal.

    Interest accrues on `current_balance` for one month. The principal
    portion is whatever the payment leaves over, and may be negative.
    """
    current_balance = to_decimal(current_balance)
    annual_rate_percent = to_decimal(annual_rate_percent)
    payment = to_decimal(payment)
    _validate_rate(annual_rate_percent)

    interest = current_balance * monthly_rate(annual_rate_percent)
    return PaymentBreakdown(
        interest_portion=interest,
        principal_portion=payment - interest,
        total_payment=payment,
    )


def generate_schedule(
    starting_balance: Number,
    payment: Number,
    annual_rate_percent: Number,
    extra_payment: Number = ZERO,
    max_periods: Optional[int] = None,
) -> list[AmortizationPeriod]:
    """
    Walk the balance down one period at a time.

    Stops the first period the balance reaches zero, or after
    `max_periods` periods, whichever comes first. The cap is mandatory:
    a payment below the accruing interest never converges.

    A residual under half a currency unit of the last place (e.g. under
    half a cent) counts as paid off.

    Args:
        starting_balance: Balance owed before the first period
        payment: Scheduled payment per period
        annual_rate_percent: Annual rate as a percentage
        extra_payment: Additional principal paid every period
        max_periods: Hard cap on schedule length (defaults to the
            configured max_amortization_periods)

    Returns:
        Periods in order. Empty when nothing is owed.
    """
    settings = get_settings().engine
    places = settings.currency_places
    if max_periods is None:
        max_periods = settings.max_amortization_periods
    _validate_max_periods(max_periods)

    balance = to_decimal(starting_balance)
    payment = to_decimal(payment)
    annual_rate_percent = to_decimal(annual_rate_percent)
    extra_payment = to_decimal(extra_payment)
    _validate_rate(annual_rate_percent)
    if extra_payment < 0:
        raise InvalidLoanTerms(f"Extra payment must be >= 0, got {extra_payment}")

    r = monthly_rate(annual_rate_percent)
    schedule: list[AmortizationPeriod] = []
    if balance <= 0:
        return schedule

    for index in range(1, max_periods + 1):
        starting = balance
        interest = balance * r
        principal_portion = payment - interest

        balance = max(balance - (principal_portion + extra_payment), ZERO)
        if round_currency(balance, places) == 0:
            balance = ZERO

        schedule.append(
            AmortizationPeriod(
                index=index,
                starting_balance=round_currency(starting, places),
                interest_portion=round_currency(interest, places),
                principal_portion=round_currency(principal_portion, places),
                extra_portion=round_currency(extra_payment, places),
                total_payment=round_currency(payment + extra_payment, places),
                ending_balance=round_currency(balance, places),
            )
        )

        if balance == 0:
            break

    return schedule


def payoff_date(start_date: date, schedule_length: int) -> date:
    """Date of the last scheduled payment: start plus one month per period."""
    return add_months(start_date, schedule_length)


def amortize(
    principal: Number,
    annual_rate_percent: Number,
    term_years: int,
    start_date: date,
    starting_balance: Optional[Number] = None,
    extra_payment: Number = ZERO,
    max_periods: Optional[int] = None,
) -> AmortizationResult:
    """
    Compute payment, next-payment breakdown, schedule and payoff date.

    The payment is always derived from the original loan terms. The
    schedule runs from `starting_balance`, which defaults to the
    principal (a brand new loan).
    """
    if max_periods is None:
        max_periods = get_settings().engine.max_amortization_periods
    balance = to_decimal(principal if starting_balance is None else starting_balance)

    payment = periodic_payment(principal, annual_rate_percent, term_years)
    breakdown = payment_breakdown(balance, annual_rate_percent, payment)
    schedule = generate_schedule(
        starting_balance=balance,
        payment=payment,
        annual_rate_percent=annual_rate_percent,
        extra_payment=extra_payment,
        max_periods=max_periods,
    )

    return AmortizationResult(
        payment=payment,
        breakdown=breakdown,
        schedule=schedule,
        max_periods=max_periods,
        payoff_date=payoff_date(start_date, len(schedule)),
    )
