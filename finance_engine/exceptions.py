"""
Error Hierarchy for the Finance Engine

DESIGN DECISION: Engine errors are local and recoverable - the caller
reports them and moves on. Ledger errors guard the balance invariant,
and AtomicityFailure is the only one that must fail the surrounding
request outright.

FinanceEngineError (base)
├── EngineError
│   ├── InvalidLoanTerms
│   └── HorizonTooLarge
└── LedgerError
    ├── ZeroAdjustmentError
    ├── InvalidAmountError
    ├── AtomicityFailure
    ├── ConcurrencyConflictError
    └── AccountNotFoundError
"""

from typing import Optional
from uuid import UUID


class FinanceEngineError(Exception):
    """Base exception for all finance engine errors."""
    pass


class EngineError(FinanceEngineError):
    """Raised by the pure calculation engines."""
    pass


class InvalidLoanTerms(EngineError, ValueError):
    """
    Loan terms the amortization engine refuses to compute with.

    Raised for principal <= 0, a negative rate, a non-positive or
    non-integer term, or a non-positive schedule cap.
    """
    pass


class HorizonTooLarge(EngineError, ValueError):
    """A projection horizon exceeds the configured cap."""

    def __init__(self, months: int, max_months: int):
        super().__init__(
            f"Projection horizon of {months} months exceeds the cap of {max_months} months"
        )
        self.months = months
        self.max_months = max_months


class LedgerError(FinanceEngineError):
    """Raised by the balance ledger."""
    pass


class ZeroAdjustmentError(LedgerError, ValueError):
    """A zero-amount adjustment was requested. No-op postings are forbidden."""
    pass


class InvalidAmountError(LedgerError, ValueError):
    """An amount finer than whole cents, or too large for a balance column."""
    pass


class AtomicityFailure(LedgerError):
    """
    One half of an atomic adjustment could not complete.

    Storage has rolled back both halves when this is raised.
    """
    pass


class ConcurrencyConflictError(LedgerError):
    """
    The account changed between read and write.

    Raised by storage when the version it was given is stale, and
    re-raised by the ledger once its retries are exhausted.
    """

    def __init__(
        self,
        account_id: UUID,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        message = f"Concurrent update detected on account {account_id}"
        if expected_version is not None:
            message += f" (expected version {expected_version}, found {actual_version})"
        super().__init__(message)
        self.account_id = account_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class AccountNotFoundError(LedgerError):
    """The referenced account does not exist."""

    def __init__(self, account_id: UUID):
        super().__init__(f"Account not found: {account_id}")
        self.account_id = account_id
