"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the in-memory backend for a real database
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The one operation with real teeth is `commit_adjustment`: it is the only
way a balance changes, and every implementation must make it atomic and
conditional on the account version the caller read.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from finance_engine.models.account import (
    AccountBase,
    Adjustment,
    ProjectionParameters,
)
from finance_engine.models.audit import AuditEvent


def adjustment_order_key(adjustment: Adjustment) -> tuple:
    """
    Sort key for adjustment history, used with reverse=True.

    Newest effective time first; equal effective times fall back to
    insertion sequence, newest first.
    """
    return (adjustment.adjusted_at, adjustment.sequence or 0)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for account and ledger storage.

    Any storage implementation (in-memory, SQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def create_account(self, account: AccountBase) -> AccountBase:
        """
        Persist a new account.

        Raises:
            DuplicateError: If an account with this ID exists
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[AccountBase]:
        """
        Read the current state of an account.

        Returns a fresh copy on every call; mutating it changes nothing.
        """
        pass

    @abstractmethod
    async def list_accounts(self) -> list[AccountBase]:
        """List all accounts, newest first."""
        pass

    @abstractmethod
    async def update_account(
        self,
        account_id: UUID,
        name: Optional[str] = None,
        opened_at: Optional[date] = None,
    ) -> AccountBase:
        """
        Change an account's descriptive fields.

        Only the fields passed are written. Balance, initial balance and
        version are left alone.

        Raises:
            NotFoundError: If the account does not exist
        """
        pass

    @abstractmethod
    async def delete_account(self, account_id: UUID) -> bool:
        """
        Delete an account together with its adjustments and projection.

        All three go in one atomic operation.

        Returns:
            True if the account existed
        """
        pass

    @abstractmethod
    async def commit_adjustment(
        self,
        adjustment: Adjustment,
        expected_version: int,
    ) -> tuple[AccountBase, Adjustment]:
        """
        Insert an adjustment and add its amount to the account balance.

        Both happen or neither does. The write only goes through if the
        account is still at `expected_version`.

        Args:
            adjustment: The adjustment to record
            expected_version: Account version the caller computed against

        Returns:
            (updated account, stored adjustment with its sequence)

        Raises:
            NotFoundError: If the account does not exist
            ConcurrencyConflictError: If the account version moved on
            AtomicityFailure: If either half failed; nothing was kept
        """
        pass

    @abstractmethod
    async def list_adjustments(
        self,
        account_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Adjustment]:
        """
        List an account's adjustments.

        Ordered by adjusted_at descending, ties by insertion sequence
        descending (see adjustment_order_key).

        Args:
            account_id: Account to list
            date_from: Only adjustments effective at or after this time
            date_to: Only adjustments effective at or before this time
            limit: Maximum number of results (None for all)
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    async def sum_adjustments(self, account_id: UUID) -> tuple[Decimal, int]:
        """
        Total and count of an account's adjustments.

        Returns:
            (sum of amounts, number of adjustments)
        """
        pass

    @abstractmethod
    async def get_projection(self, account_id: UUID) -> Optional[ProjectionParameters]:
        """Get an account's projection parameters, if any."""
        pass

    @abstractmethod
    async def save_projection(self, projection: ProjectionParameters) -> ProjectionParameters:
        """
        Create or replace an account's projection parameters.

        Raises:
            NotFoundError: If the account does not exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass
