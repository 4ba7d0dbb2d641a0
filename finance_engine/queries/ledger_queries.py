"""
Ledger Queries

DESIGN DECISION: Read-side access to the ledger is DETERMINISTIC and
ordered explicitly at this boundary. Callers never rely on whatever order
the storage backend happens to return rows in.

Order: adjusted_at descending, ties broken by insertion sequence
descending (the later of two simultaneous adjustments is listed first).

The reconciliation report recomputes the ledger invariant from stored
rows and compares it with the stored balance. It only reads; it never
repairs a balance.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from finance_engine.exceptions import AccountNotFoundError
from finance_engine.models.account import Adjustment, ReconciliationReport
from finance_engine.services.storage import LedgerStorageInterface
from finance_engine.services.storage.interface import adjustment_order_key


class LedgerQueries:
    """
    Read-only queries over accounts and their adjustments.

    GUARANTEES:
    - Only returns real data from storage
    - Adjustment order is fixed here, independent of the backend
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def list_adjustments(
        self,
        account_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> list[Adjustment]:
        """
        List an account's adjustments, newest first.

        Args:
            account_id: Account to list
            date_from: Only adjustments effective at or after this time
            date_to: Only adjustments effective at or before this time
            limit: Maximum number of results (None for all)
            offset: Number of results to skip

        Raises:
            AccountNotFoundError: no such account
            ValueError: negative limit or offset
        """
        if offset < 0 or (limit is not None and limit < 0):
            raise ValueError("limit and offset must be non-negative")
        if date_from and date_to and date_from > date_to:
            return []

        await self._require_account(account_id)

        adjustments = await self._storage.list_adjustments(
            account_id,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )
        # Storage pages newest first; the page is re-sorted with the same key
        adjustments.sort(key=adjustment_order_key, reverse=True)
        return adjustments

    async def reconcile(self, account_id: UUID) -> ReconciliationReport:
        """
        Check an account against the ledger invariant.

        Returns:
            Report comparing the stored balance with
            initial_balance + sum of adjustments

        Raises:
            AccountNotFoundError: no such account
        """
        account = await self._require_account(account_id)
        total, count = await self._storage.sum_adjustments(account_id)

        report = ReconciliationReport(
            account_id=account_id,
            initial_balance=account.initial_balance,
            stored_balance=account.balance,
            adjustment_total=total,
            adjustment_count=count,
        )

        if not report.is_consistent:
            self._logger.error(
                "ledger_invariant_violated",
                account_id=str(account_id),
                stored_balance=str(report.stored_balance),
                expected_balance=str(report.expected_balance),
                discrepancy=str(report.discrepancy),
            )

        return report

    async def _require_account(self, account_id: UUID):
        account = await self._storage.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account
