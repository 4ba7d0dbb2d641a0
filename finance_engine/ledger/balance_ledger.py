"""
Balance Ledger

The only component allowed to change an account balance.

LEDGER INVARIANT:
    account.balance == account.initial_balance + sum(adjustment.amount)

Every balance change is an Adjustment committed together with the new
balance in one atomic storage operation. Nothing else writes `balance`.

DESIGN DECISION: Optimistic locking with retry instead of holding a lock
across the whole request.
1. Read the account fresh (balance + version)
2. Compute the adjustment amount against that balance
3. Commit conditional on the version read in step 1
4. On a version conflict, start again from step 1

Two writers racing on one account therefore both land, one after the
other, and neither update is lost. Different accounts never contend.

Both request shapes resolve to the same primitive:
- apply_adjustment: explicit signed amount
- set_balance: target balance; the amount is computed inside each
  attempt against the freshly read balance, never a stale snapshot
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from finance_engine.audit import AuditLogger
from finance_engine.config import get_settings
from finance_engine.engines.money import Number, round_currency, to_decimal
from finance_engine.exceptions import (
    AccountNotFoundError,
    AtomicityFailure,
    ConcurrencyConflictError,
    InvalidAmountError,
    ZeroAdjustmentError,
)
from finance_engine.models.account import AccountBase, Adjustment
from finance_engine.services.storage import LedgerStorageInterface, NotFoundError

# Largest magnitude a Numeric(10, 2) balance or amount column holds
MAX_AMOUNT = Decimal("99999999.99")


def amount_problem(amount: Decimal) -> Optional[str]:
    """Why an amount cannot be posted, or None if it can."""
    if not amount.is_finite():
        return "amount is not a finite number"
    if abs(amount) > MAX_AMOUNT:
        return "amount exceeds the largest storable value"
    if amount != round_currency(amount):
        return "amount has more than two decimal places"
    return None


class BalanceLedger:
    """
    Applies adjustments to accounts under the ledger invariant.

    GUARANTEES:
    - An adjustment row exists if and only if its amount is in the balance
    - Concurrent writers to one account never lose an update
    - Zero-amount postings are refused and nothing is written
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        max_attempts: Optional[int] = None,
        wait: Optional[wait_base] = None,
    ):
        """
        Args:
            storage: Ledger storage backend
            audit_logger: Audit logger; if None, nothing is audited
            max_attempts: Attempts per write before a conflict is surfaced
                (defaults to the configured ledger max_attempts)
            wait: Backoff between attempts (defaults to random exponential
                backoff from the ledger settings)
        """
        settings = get_settings().ledger
        self._storage = storage
        self._audit_logger = audit_logger
        self._max_attempts = max_attempts or settings.max_attempts
        self._wait = wait if wait is not None else wait_random_exponential(
            multiplier=settings.retry_wait_multiplier,
            max=settings.retry_wait_max_seconds,
        )
        self._logger = structlog.get_logger(__name__)

    async def apply_adjustment(
        self,
        account_id: UUID,
        amount: Number,
        description: Optional[str] = None,
        effective_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Adjustment:
        """
        Add a signed amount to an account's balance.

        Args:
            account_id: Account to adjust
            amount: Signed amount, two decimal places, non-zero
            description: Why the balance changed
            effective_at: When the change took effect (defaults to now)
            correlation_id: Ties audit events of one request together

        Returns:
            The stored adjustment

        Raises:
            ZeroAdjustmentError: amount is zero
            InvalidAmountError: amount has more than two decimal places
                or does not fit a balance
            AccountNotFoundError: no such account
            ConcurrencyConflictError: retries exhausted
            AtomicityFailure: storage rolled the write back
        """
        amount = await self._check_amount(account_id, to_decimal(amount), correlation_id)
        if amount == 0:
            await self._reject(account_id, "amount is zero", correlation_id)
            raise ZeroAdjustmentError("Adjustment amount must be non-zero")

        account, adjustment = await self._post(
            account_id,
            lambda current: amount,
            description,
            effective_at,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_adjustment_applied(
                account_id=account_id,
                adjustment_id=adjustment.id,
                amount=str(adjustment.amount),
                new_balance=str(account.balance),
                correlation_id=correlation_id,
            )
        return adjustment

    async def set_balance(
        self,
        account_id: UUID,
        new_balance: Number,
        description: Optional[str] = None,
        effective_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Adjustment:
        """
        Bring an account to a target balance with one adjustment.

        The adjustment amount is new_balance minus the balance read
        inside the same attempt that commits it.

        Raises:
            ZeroAdjustmentError: the account is already at new_balance
            InvalidAmountError: new_balance has more than two decimal places,
                or the resulting adjustment does not fit
            AccountNotFoundError: no such account
            ConcurrencyConflictError: retries exhausted
            AtomicityFailure: storage rolled the write back
        """
        new_balance = await self._check_amount(account_id, to_decimal(new_balance), correlation_id)

        account, adjustment = await self._post(
            account_id,
            lambda current: new_balance - current.balance,
            description,
            effective_at,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_balance_set(
                account_id=account_id,
                adjustment_id=adjustment.id,
                amount=str(adjustment.amount),
                new_balance=str(account.balance),
                correlation_id=correlation_id,
            )
        return adjustment

    async def delete_account(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Destroy an account with all its adjustments and its projection.

        Returns:
            True if the account existed
        """
        deleted = await self._storage.delete_account(account_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_account_deleted(
                account_id=account_id,
                correlation_id=correlation_id,
            )
        return deleted

    async def _post(
        self,
        account_id: UUID,
        resolve_amount: Callable[[AccountBase], Decimal],
        description: Optional[str],
        effective_at: Optional[datetime],
        correlation_id: Optional[UUID],
    ) -> tuple[AccountBase, Adjustment]:
        """Read, compute, conditionally commit; retry on version conflicts."""
        effective_at = effective_at or datetime.utcnow()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(ConcurrencyConflictError),
            reraise=True,
        ):
            with attempt:
                account = await self._storage.get_account(account_id)
                if account is None:
                    raise AccountNotFoundError(account_id)

                amount = resolve_amount(account)
                amount = await self._check_amount(account_id, amount, correlation_id)
                if amount == 0:
                    await self._reject(account_id, "balance already at target", correlation_id)
                    raise ZeroAdjustmentError("Adjustment amount must be non-zero")

                adjustment = Adjustment(
                    account_id=account_id,
                    amount=amount,
                    description=description,
                    adjusted_at=effective_at,
                )

                try:
                    return await self._storage.commit_adjustment(
                        adjustment,
                        expected_version=account.version,
                    )
                except ConcurrencyConflictError:
                    attempt_number = attempt.retry_state.attempt_number
                    self._logger.info(
                        "ledger_conflict",
                        account_id=str(account_id),
                        attempt=attempt_number,
                        max_attempts=self._max_attempts,
                    )
                    if self._audit_logger:
                        await self._audit_logger.log_ledger_conflict(
                            account_id=account_id,
                            attempt=attempt_number,
                            correlation_id=correlation_id,
                        )
                    raise
                except NotFoundError as e:
                    raise AccountNotFoundError(account_id) from e
                except AtomicityFailure as e:
                    if self._audit_logger:
                        await self._audit_logger.log_atomicity_failure(
                            account_id=account_id,
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )
                    raise

    async def _check_amount(
        self,
        account_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID],
    ) -> Decimal:
        """Refuse amounts a balance cannot hold; return the rest at two places."""
        problem = amount_problem(amount)
        if problem:
            await self._reject(account_id, problem, correlation_id)
            raise InvalidAmountError(f"Cannot post {amount}: {problem}")
        return round_currency(amount)

    async def _reject(
        self,
        account_id: UUID,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_adjustment_rejected(
                account_id=account_id,
                reason=reason,
                correlation_id=correlation_id,
            )
