"""
Calculation Engines

Both engines are stateless sets of pure functions over Decimal values.
"""

from finance_engine.engines import amortization, growth
from finance_engine.engines.amortization import (
    amortize,
    generate_schedule,
    payment_breakdown,
    payoff_date,
    periodic_payment,
)
from finance_engine.engines.growth import calculate, projection_length
from finance_engine.engines.money import add_months, months_between, round_currency

__all__ = [
    "amortization",
    "growth",
    # Amortization
    "amortize",
    "generate_schedule",
    "payment_breakdown",
    "payoff_date",
    "periodic_payment",
    # Growth projection
    "calculate",
    "projection_length",
    # Helpers
    "add_months",
    "months_between",
    "round_currency",
]
