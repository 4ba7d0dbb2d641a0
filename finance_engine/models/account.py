"""
Account and Ledger Models

These models define the strict schemas for everything the ledger stores.
They are designed to:
1. Enforce type safety at runtime
2. Keep money in Decimal end to end (never float)
3. Be serializable for storage and logging

DESIGN DECISION: Account variants are a tagged union discriminated by
`kind`. Each variant carries only the fields relevant to it, and callers
select behavior by looking up the tag, never by inspecting the class.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountKind(str, Enum):
    """
    Supported account variants.

    Mortgage and personal loan balances represent principal owed.
    A line of credit balance represents the amount drawn.
    """
    GENERIC = "generic"
    SAVINGS = "savings"
    MORTGAGE = "mortgage"
    PERSONAL_LOAN = "personal_loan"
    LINE_OF_CREDIT = "line_of_credit"


DEBT_KINDS = frozenset({AccountKind.MORTGAGE, AccountKind.PERSONAL_LOAN})


# =============================================================================
# ACCOUNT VARIANTS
# =============================================================================

class AccountBase(BaseModel):
    """
    Fields shared by every account variant.

    `balance` is the only field the ledger mutates after creation.
    `version` is owned by storage and increases on every balance write.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name of the account"
    )

    # Money
    initial_balance: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="Balance at creation, never changed afterwards"
    )
    balance: Optional[Decimal] = Field(
        default=None,
        max_digits=10,
        decimal_places=2,
        description="Current balance (initial balance plus all adjustments)"
    )

    # Timestamps
    opened_at: date = Field(
        default_factory=date.today,
        description="Date the account was opened"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the account record was created"
    )

    # Optimistic lock counter
    version: int = Field(
        default=0,
        ge=0,
        description="Incremented by storage on every balance write"
    )

    @model_validator(mode='after')
    def default_balance(self) -> 'AccountBase':
        """A new account starts at its initial balance."""
        if self.balance is None:
            self.balance = self.initial_balance
        return self


class GenericAccount(AccountBase):
    """An account with no projection behavior of its own."""
    kind: Literal["generic"] = "generic"


class SavingsAccount(AccountBase):
    """An account projected with compounding growth."""
    kind: Literal["savings"] = "savings"


class DebtAccount(AccountBase):
    """
    Shared terms for amortized debt.

    A debt account opens owing its full principal, so the initial
    balance defaults to the principal.
    """
    principal: Decimal = Field(
        ...,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="Original loan amount"
    )
    annual_rate_percent: Decimal = Field(
        ...,
        ge=0,
        max_digits=6,
        decimal_places=3,
        description="Annual interest rate as a percentage (3.5 means 3.5%)"
    )
    term_years: int = Field(
        ...,
        gt=0,
        strict=True,
        description="Loan term in whole years"
    )
    loan_start_date: date = Field(
        ...,
        description="Date the loan started"
    )

    @model_validator(mode='before')
    @classmethod
    def default_initial_balance(cls, data: Any) -> Any:
        """Open the account owing the principal unless told otherwise."""
        if isinstance(data, dict) and data.get("initial_balance") is None:
            if data.get("principal") is not None:
                data = {**data, "initial_balance": data["principal"]}
        return data


class MortgageAccount(DebtAccount):
    """A mortgage."""
    kind: Literal["mortgage"] = "mortgage"


class PersonalLoanAccount(DebtAccount):
    """A personal loan. Same terms as a mortgage."""
    kind: Literal["personal_loan"] = "personal_loan"


class LineOfCreditAccount(AccountBase):
    """
    A revolving line of credit.

    Not amortized - there is no fixed term to pay down against.
    """
    kind: Literal["line_of_credit"] = "line_of_credit"

    credit_limit: Decimal = Field(
        ...,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="Maximum borrowing capacity"
    )
    apr: Decimal = Field(
        ...,
        ge=0,
        max_digits=6,
        decimal_places=3,
        description="Annual percentage rate"
    )


Account = Annotated[
    Union[
        GenericAccount,
        SavingsAccount,
        MortgageAccount,
        PersonalLoanAccount,
        LineOfCreditAccount,
    ],
    Field(discriminator="kind"),
]

ACCOUNT_ADAPTER: TypeAdapter = TypeAdapter(Account)


def parse_account(data: dict) -> AccountBase:
    """Build the right account variant from a plain dict keyed by `kind`."""
    return ACCOUNT_ADAPTER.validate_python(data)


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class Adjustment(BaseModel):
    """
    A single balance-changing event.

    CRITICAL: Adjustments are immutable once created. They are only
    created through the ledger's atomic apply, and only destroyed
    together with their account.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique adjustment ID"
    )
    account_id: UUID = Field(
        ...,
        description="Account this adjustment belongs to"
    )
    amount: Decimal = Field(
        ...,
        max_digits=10,
        decimal_places=2,
        description="Signed amount added to the balance"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Why the balance changed"
    )
    adjusted_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Effective time, independent of creation order"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the adjustment was recorded"
    )
    sequence: Optional[int] = Field(
        default=None,
        ge=1,
        description="Insertion sequence, assigned by storage at commit"
    )

    @field_validator('amount')
    @classmethod
    def reject_zero_amount(cls, v: Decimal) -> Decimal:
        """No-op postings represent no financial event."""
        if v == 0:
            raise ValueError("Adjustment amount must be non-zero")
        return v


class ProjectionParameters(BaseModel):
    """
    Growth assumptions for an account. At most one per account.

    For debt accounts the monthly contribution is applied as an extra
    principal payment.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID = Field(
        ...,
        description="Account these parameters belong to"
    )
    monthly_contribution: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        max_digits=10,
        decimal_places=2,
        description="Amount added every month"
    )
    annual_return_rate_percent: Decimal = Field(
        ...,
        max_digits=5,
        decimal_places=2,
        description="Expected annual return as a percentage; negative models decline"
    )
    target_date: Optional[date] = Field(
        default=None,
        description="Date to project the balance to"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow
    )


class ReconciliationReport(BaseModel):
    """Result of checking an account against the ledger invariant."""

    account_id: UUID
    checked_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    initial_balance: Decimal
    stored_balance: Decimal
    adjustment_total: Decimal
    adjustment_count: int = Field(ge=0)

    @property
    def expected_balance(self) -> Decimal:
        """Initial balance plus every adjustment."""
        return self.initial_balance + self.adjustment_total

    @property
    def discrepancy(self) -> Decimal:
        """Stored balance minus expected balance. Zero when consistent."""
        return self.stored_balance - self.expected_balance

    @property
    def is_consistent(self) -> bool:
        return self.discrepancy == 0
