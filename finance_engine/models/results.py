"""
Derived Result Models

Nothing in this module is persisted. These are computed views produced
by the engines and handed back to the caller verbatim.

DESIGN DECISION: Every monetary field is rounded once, at emission.
Running balances are carried at full precision between periods so that
rounding error does not compound over long schedules.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from finance_engine.models.account import AccountKind


# =============================================================================
# AMORTIZATION
# =============================================================================

class PaymentBreakdown(BaseModel):
    """
    How one payment splits between interest and principal.

    Values are full precision. A negative principal portion means the
    payment does not cover the interest accruing on the balance.
    """
    model_config = ConfigDict(frozen=True)

    interest_portion: Decimal
    principal_portion: Decimal
    total_payment: Decimal

    @property
    def is_negative_amortization(self) -> bool:
        return self.principal_portion < 0


class AmortizationPeriod(BaseModel):
    """One row of an amortization schedule."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1, description="1-based period number")
    starting_balance: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    extra_portion: Decimal
    total_payment: Decimal
    ending_balance: Decimal


class AmortizationResult(BaseModel):
    """
    Full amortization view of a debt.

    The caller tells "paid off" from "cap reached" with `paid_off` and
    `cap_reached`, which compare the schedule to `max_periods`.
    """
    model_config = ConfigDict(frozen=True)

    payment: Decimal = Field(..., description="Scheduled payment, full precision")
    breakdown: PaymentBreakdown = Field(..., description="Split of the next payment")
    schedule: list[AmortizationPeriod] = Field(default_factory=list)
    max_periods: int = Field(..., ge=1)
    payoff_date: dt.date

    @property
    def total_interest(self) -> Decimal:
        return sum((period.interest_portion for period in self.schedule), Decimal("0"))

    @property
    def paid_off(self) -> bool:
        if not self.schedule:
            return True
        return self.schedule[-1].ending_balance == 0

    @property
    def cap_reached(self) -> bool:
        return len(self.schedule) == self.max_periods and not self.paid_off


# =============================================================================
# GROWTH PROJECTION
# =============================================================================

class ProjectionMonth(BaseModel):
    """One month of a growth projection."""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    balance: Decimal
    contribution: Decimal
    interest: Decimal


class ProjectionResult(BaseModel):
    """
    Month-by-month growth trajectory.

    `final_balance` is the last record's balance, or the unmodified
    starting balance when there are no records.
    """
    model_config = ConfigDict(frozen=True)

    final_balance: Decimal
    monthly_breakdown: list[ProjectionMonth] = Field(default_factory=list)


# =============================================================================
# ACCOUNT OVERVIEW
# =============================================================================

class AccountOverview(BaseModel):
    """What the calling layer shows for one account."""

    account_id: UUID
    kind: AccountKind
    balance: Decimal
    as_of: dt.date

    projection: Optional[ProjectionResult] = None
    amortization: Optional[AmortizationResult] = None
    available_credit: Optional[Decimal] = None

    # Non-blocking findings the caller should surface
    warnings: list[str] = Field(default_factory=list)
