"""
In-Memory Storage Implementation

Used for tests and for running the engine without a database.

Atomicity comes from a per-account asyncio.Lock held across the whole
commit: the version check, the adjustment insert and the balance write.
If the balance write fails, the inserted adjustment is removed before
the lock is released, so no reader ever sees half of a commit.
"""

import asyncio
import itertools
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from finance_engine.exceptions import AtomicityFailure, ConcurrencyConflictError
from finance_engine.models.account import (
    AccountBase,
    Adjustment,
    ProjectionParameters,
)
from finance_engine.models.audit import AuditEvent
from finance_engine.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    adjustment_order_key,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger storage with per-account locking."""

    def __init__(self):
        self._accounts: dict[UUID, AccountBase] = {}
        self._adjustments: dict[UUID, list[Adjustment]] = defaultdict(list)
        self._projections: dict[UUID, ProjectionParameters] = {}
        self._locks: dict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._sequence = itertools.count(1)

    async def create_account(self, account: AccountBase) -> AccountBase:
        async with self._locks[account.id]:
            if account.id in self._accounts:
                raise DuplicateError(f"Account already exists: {account.id}")
            self._accounts[account.id] = account.model_copy(deep=True)
            return account.model_copy(deep=True)

    async def get_account(self, account_id: UUID) -> Optional[AccountBase]:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def list_accounts(self) -> list[AccountBase]:
        accounts = [a.model_copy(deep=True) for a in self._accounts.values()]
        accounts.sort(key=lambda a: a.created_at, reverse=True)
        return accounts

    async def update_account(
        self,
        account_id: UUID,
        name: Optional[str] = None,
        opened_at: Optional[date] = None,
    ) -> AccountBase:
        changes = {}
        if name is not None:
            changes["name"] = name
        if opened_at is not None:
            changes["opened_at"] = opened_at

        async with self._locks[account_id]:
            account = self._accounts.get(account_id)
            if account is None:
                raise NotFoundError(f"Account not found: {account_id}")
            updated = account.model_copy(update=changes)
            self._accounts[account_id] = updated
            return updated.model_copy(deep=True)

    async def delete_account(self, account_id: UUID) -> bool:
        async with self._locks[account_id]:
            if account_id not in self._accounts:
                return False
            del self._accounts[account_id]
            self._adjustments.pop(account_id, None)
            self._projections.pop(account_id, None)
        self._locks.pop(account_id, None)
        return True

    async def commit_adjustment(
        self,
        adjustment: Adjustment,
        expected_version: int,
    ) -> tuple[AccountBase, Adjustment]:
        account_id = adjustment.account_id
        async with self._locks[account_id]:
            account = self._accounts.get(account_id)
            if account is None:
                raise NotFoundError(f"Account not found: {account_id}")
            if account.version != expected_version:
                raise ConcurrencyConflictError(
                    account_id,
                    expected_version=expected_version,
                    actual_version=account.version,
                )

            stored = adjustment.model_copy(update={"sequence": next(self._sequence)})
            rows = self._adjustments[account_id]
            rows.append(stored)
            try:
                updated = self._write_balance(account, account.balance + stored.amount)
            except Exception as e:
                rows.remove(stored)
                raise AtomicityFailure(
                    f"Balance write failed for account {account_id}; adjustment rolled back: {e}"
                ) from e

            return updated.model_copy(deep=True), stored

    def _write_balance(self, account: AccountBase, new_balance: Decimal) -> AccountBase:
        """Second half of a commit. Bumps the version with the balance."""
        updated = account.model_copy(
            update={"balance": new_balance, "version": account.version + 1}
        )
        self._accounts[account.id] = updated
        return updated

    async def list_adjustments(
        self,
        account_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Adjustment]:
        adjustments = []
        for adjustment in self._adjustments.get(account_id, []):
            if date_from and adjustment.adjusted_at < date_from:
                continue
            if date_to and adjustment.adjusted_at > date_to:
                continue
            adjustments.append(adjustment)

        adjustments.sort(key=adjustment_order_key, reverse=True)
        if limit is None:
            return adjustments[offset:]
        return adjustments[offset:offset + limit]

    async def sum_adjustments(self, account_id: UUID) -> tuple[Decimal, int]:
        rows = self._adjustments.get(account_id, [])
        return sum((a.amount for a in rows), Decimal("0")), len(rows)

    async def get_projection(self, account_id: UUID) -> Optional[ProjectionParameters]:
        projection = self._projections.get(account_id)
        return projection.model_copy() if projection else None

    async def save_projection(self, projection: ProjectionParameters) -> ProjectionParameters:
        async with self._locks[projection.account_id]:
            if projection.account_id not in self._accounts:
                raise NotFoundError(f"Account not found: {projection.account_id}")
            stored = projection.model_copy(update={"updated_at": datetime.utcnow()})
            self._projections[projection.account_id] = stored
            return stored.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
