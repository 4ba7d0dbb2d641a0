"""
Audit Logger

DESIGN DECISION: Every balance-changing write is logged, and so is every
write the ledger refuses. This provides:
1. Complete traceability of every balance
2. Debugging capability for conflicts and rollbacks
3. A history the user can review

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_engine.models.audit import AuditEvent, AuditEventBuilder
from finance_engine.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_engine.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        severity = event.severity.value
        if severity in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif severity == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif severity == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_created(
        self,
        account_id: UUID,
        kind: str,
        initial_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log account creation."""
        await self.log(AuditEventBuilder.account_created(
            account_id=account_id,
            kind=kind,
            initial_balance=initial_balance,
            correlation_id=correlation_id,
        ))

    async def log_account_updated(
        self,
        account_id: UUID,
        changes: dict[str, str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a change to an account's name or opening date."""
        await self.log(AuditEventBuilder.account_updated(
            account_id=account_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_account_deleted(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log account deletion."""
        await self.log(AuditEventBuilder.account_deleted(
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_projection_saved(
        self,
        account_id: UUID,
        monthly_contribution: str,
        annual_return_rate_percent: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log projection parameter changes."""
        await self.log(AuditEventBuilder.projection_saved(
            account_id=account_id,
            monthly_contribution=monthly_contribution,
            annual_return_rate_percent=annual_return_rate_percent,
            correlation_id=correlation_id,
        ))

    async def log_adjustment_applied(
        self,
        account_id: UUID,
        adjustment_id: UUID,
        amount: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed adjustment."""
        await self.log(AuditEventBuilder.adjustment_applied(
            account_id=account_id,
            adjustment_id=adjustment_id,
            amount=amount,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_balance_set(
        self,
        account_id: UUID,
        adjustment_id: UUID,
        amount: str,
        new_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed set-balance request."""
        await self.log(AuditEventBuilder.balance_set(
            account_id=account_id,
            adjustment_id=adjustment_id,
            amount=amount,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_adjustment_rejected(
        self,
        account_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an adjustment the ledger refused."""
        await self.log(AuditEventBuilder.adjustment_rejected(
            account_id=account_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_ledger_conflict(
        self,
        account_id: UUID,
        attempt: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an optimistic-lock conflict."""
        await self.log(AuditEventBuilder.ledger_conflict_retried(
            account_id=account_id,
            attempt=attempt,
            correlation_id=correlation_id,
        ))

    async def log_atomicity_failure(
        self,
        account_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rolled-back adjustment."""
        await self.log(AuditEventBuilder.atomicity_failure(
            account_id=account_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_schedule_computed(
        self,
        account_id: UUID,
        periods: int,
        paid_off: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an amortization view."""
        await self.log(AuditEventBuilder.schedule_computed(
            account_id=account_id,
            periods=periods,
            paid_off=paid_off,
            correlation_id=correlation_id,
        ))

    async def log_negative_amortization(
        self,
        account_id: UUID,
        payment: str,
        interest: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a payment that does not cover accruing interest."""
        await self.log(AuditEventBuilder.negative_amortization_detected(
            account_id=account_id,
            payment=payment,
            interest=interest,
            correlation_id=correlation_id,
        ))

    async def log_projection_computed(
        self,
        account_id: UUID,
        months: int,
        final_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a growth projection view."""
        await self.log(AuditEventBuilder.projection_computed(
            account_id=account_id,
            months=months,
            final_balance=final_balance,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new request (e.g., one set-balance form
    submission). Pass it through all subsequent operations.
    """
    return uuid4()
