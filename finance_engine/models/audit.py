"""
Audit Models for the Finance Engine

Every balance-changing write, every rejected write and every computed
view is logged for audit purposes. This provides:
1. Complete traceability of how a balance got to where it is
2. Debugging information when a write conflicts or fails
3. A record of warnings surfaced to the user (e.g. negative amortization)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Account lifecycle
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    PROJECTION_SAVED = "projection_saved"

    # Ledger writes
    ADJUSTMENT_APPLIED = "adjustment_applied"
    ADJUSTMENT_REJECTED = "adjustment_rejected"
    BALANCE_SET = "balance_set"
    LEDGER_CONFLICT_RETRIED = "ledger_conflict_retried"
    ATOMICITY_FAILURE = "atomicity_failure"

    # Computed views
    SCHEDULE_COMPUTED = "schedule_computed"
    NEGATIVE_AMORTIZATION_DETECTED = "negative_amortization_detected"
    PROJECTION_COMPUTED = "projection_computed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'adjustment')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.adjustment_applied(account_id, adjustment_id, "25.00", "125.00")
        event = AuditEventBuilder.account_deleted(account_id, correlation_id=correlation_id)

    Money is passed as strings so that details stay JSON-serializable.
    """

    @staticmethod
    def account_created(
        account_id: UUID,
        kind: str,
        initial_balance: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account created ({kind}) with balance {initial_balance}",
            details={
                "kind": kind,
                "initial_balance": initial_balance,
            },
        )

    @staticmethod
    def account_updated(
        account_id: UUID,
        changes: dict[str, str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account updated: {', '.join(sorted(changes))}",
            details=changes,
        )

    @staticmethod
    def account_deleted(
        account_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Account deleted with its adjustments and projection",
        )

    @staticmethod
    def projection_saved(
        account_id: UUID,
        monthly_contribution: str,
        annual_return_rate_percent: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECTION_SAVED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Projection parameters saved",
            details={
                "monthly_contribution": monthly_contribution,
                "annual_return_rate_percent": annual_return_rate_percent,
            },
        )

    @staticmethod
    def adjustment_applied(
        account_id: UUID,
        adjustment_id: UUID,
        amount: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADJUSTMENT_APPLIED,
            entity_type="adjustment",
            entity_id=adjustment_id,
            correlation_id=correlation_id,
            description=f"Adjustment of {amount} applied, balance now {new_balance}",
            details={
                "account_id": str(account_id),
                "amount": amount,
                "new_balance": new_balance,
            },
        )

    @staticmethod
    def balance_set(
        account_id: UUID,
        adjustment_id: UUID,
        amount: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_SET,
            entity_type="adjustment",
            entity_id=adjustment_id,
            correlation_id=correlation_id,
            description=f"Balance set to {new_balance} (adjustment of {amount})",
            details={
                "account_id": str(account_id),
                "amount": amount,
                "new_balance": new_balance,
            },
        )

    @staticmethod
    def adjustment_rejected(
        account_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADJUSTMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Adjustment rejected: {reason}",
            details={
                "reason": reason,
            },
        )

    @staticmethod
    def ledger_conflict_retried(
        account_id: UUID,
        attempt: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_CONFLICT_RETRIED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Concurrent update on attempt {attempt}, retrying",
            details={
                "attempt": attempt,
            },
        )

    @staticmethod
    def atomicity_failure(
        account_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATOMICITY_FAILURE,
            severity=AuditSeverity.CRITICAL,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Adjustment rolled back: atomic apply failed",
            error_message=error_message,
        )

    @staticmethod
    def schedule_computed(
        account_id: UUID,
        periods: int,
        paid_off: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_COMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Amortization schedule computed: {periods} periods",
            details={
                "periods": periods,
                "paid_off": paid_off,
            },
        )

    @staticmethod
    def negative_amortization_detected(
        account_id: UUID,
        payment: str,
        interest: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NEGATIVE_AMORTIZATION_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Payment is smaller than the interest accruing on the balance",
            details={
                "payment": payment,
                "interest": interest,
            },
        )

    @staticmethod
    def projection_computed(
        account_id: UUID,
        months: int,
        final_balance: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECTION_COMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Growth projection computed over {months} months",
            details={
                "months": months,
                "final_balance": final_balance,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
