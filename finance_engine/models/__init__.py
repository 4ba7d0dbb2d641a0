"""
Data Models Package

This package contains all Pydantic models used by the finance engine.
All data flowing through the system must conform to these schemas.
"""

from finance_engine.models.account import (
    ACCOUNT_ADAPTER,
    DEBT_KINDS,
    Account,
    AccountBase,
    AccountKind,
    Adjustment,
    DebtAccount,
    GenericAccount,
    LineOfCreditAccount,
    MortgageAccount,
    PersonalLoanAccount,
    ProjectionParameters,
    ReconciliationReport,
    SavingsAccount,
    parse_account,
)
from finance_engine.models.results import (
    AccountOverview,
    AmortizationPeriod,
    AmortizationResult,
    PaymentBreakdown,
    ProjectionMonth,
    ProjectionResult,
)
from finance_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Account models
    "ACCOUNT_ADAPTER",
    "DEBT_KINDS",
    "Account",
    "AccountBase",
    "AccountKind",
    "Adjustment",
    "DebtAccount",
    "GenericAccount",
    "LineOfCreditAccount",
    "MortgageAccount",
    "PersonalLoanAccount",
    "ProjectionParameters",
    "ReconciliationReport",
    "SavingsAccount",
    "parse_account",
    # Derived results
    "AccountOverview",
    "AmortizationPeriod",
    "AmortizationResult",
    "PaymentBreakdown",
    "ProjectionMonth",
    "ProjectionResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
