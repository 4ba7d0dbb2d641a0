"""
Tests for the balance ledger.

Async code is driven with asyncio.run so that no async test plugin is
needed. Concurrency is forced by a storage whose reads yield to the
event loop, so every writer reads the same version before any commits.
"""

import asyncio
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from tenacity import wait_none

from finance_engine.audit import AuditLogger
from finance_engine.exceptions import (
    AccountNotFoundError,
    AtomicityFailure,
    ConcurrencyConflictError,
    InvalidAmountError,
    LedgerError,
    ZeroAdjustmentError,
)
from finance_engine.ledger import BalanceLedger
from finance_engine.models.account import ProjectionParameters, SavingsAccount
from finance_engine.models.audit import AuditEventType
from finance_engine.queries import LedgerQueries
from finance_engine.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


class SlowReadStorage(InMemoryLedgerStorage):
    """Yields after every account read to force interleaving."""

    async def get_account(self, account_id):
        account = await super().get_account(account_id)
        await asyncio.sleep(0)
        return account


class FailingBalanceStorage(InMemoryLedgerStorage):
    """Fails the balance half of every commit."""

    def _write_balance(self, account, new_balance):
        raise RuntimeError("balance column unavailable")


def build(storage=None, **ledger_kwargs):
    storage = storage or InMemoryLedgerStorage()
    audit_storage = InMemoryAuditStorage()
    ledger = BalanceLedger(
        storage,
        audit_logger=AuditLogger(audit_storage),
        wait=wait_none(),
        **ledger_kwargs,
    )
    return storage, audit_storage, ledger


async def open_account(storage, initial_balance="100.00"):
    return await storage.create_account(
        SavingsAccount(name="Savings", initial_balance=Decimal(initial_balance))
    )


def event_types(audit_storage):
    return [e.event_type for e in audit_storage._events]


class TestApplyAdjustment:
    """Tests for posting signed amounts."""

    def test_apply_updates_balance_and_version(self):
        """Test that balance after apply equals prior balance plus amount."""
        async def scenario():
            storage, audit_storage, ledger = build()
            account = await open_account(storage)

            adjustment = await ledger.apply_adjustment(account.id, Decimal("25.50"), "Deposit")

            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("125.50")
            assert stored.version == 1
            assert adjustment.sequence is not None
            assert adjustment.description == "Deposit"
            assert AuditEventType.ADJUSTMENT_APPLIED in event_types(audit_storage)

        asyncio.run(scenario())

    def test_invariant_holds_after_many_adjustments(self):
        """Test balance == initial_balance + sum of adjustments."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            for amount in ("10.00", "-3.25", "0.01", "-106.76", "42.00"):
                await ledger.apply_adjustment(account.id, Decimal(amount))

            report = await LedgerQueries(storage).reconcile(account.id)
            assert report.is_consistent
            assert report.adjustment_count == 5
            assert report.stored_balance == Decimal("42.00")

        asyncio.run(scenario())

    def test_zero_adjustment_rejected(self):
        """Test that a zero amount writes nothing and is audited."""
        async def scenario():
            storage, audit_storage, ledger = build()
            account = await open_account(storage)

            with pytest.raises(ZeroAdjustmentError):
                await ledger.apply_adjustment(account.id, Decimal("0.00"))

            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("100.00")
            assert stored.version == 0
            assert await storage.list_adjustments(account.id) == []
            assert event_types(audit_storage) == [AuditEventType.ADJUSTMENT_REJECTED]

        asyncio.run(scenario())

    def test_missing_account(self):
        """Test that adjusting an unknown account fails cleanly."""
        async def scenario():
            _, _, ledger = build()
            with pytest.raises(AccountNotFoundError):
                await ledger.apply_adjustment(uuid4(), Decimal("1.00"))

        asyncio.run(scenario())

    def test_effective_time_independent_of_creation(self):
        """Test that a backdated adjustment keeps its effective time."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            backdated = datetime(2020, 5, 1, 12, 0)

            adjustment = await ledger.apply_adjustment(
                account.id, Decimal("5.00"), effective_at=backdated
            )
            assert adjustment.adjusted_at == backdated
            assert adjustment.created_at > backdated

        asyncio.run(scenario())


class TestAmountPrecision:
    """Tests for amounts that do not fit a two-decimal balance."""

    def test_sub_cent_target_rejected(self):
        """Test that a target balance finer than a cent writes nothing."""
        async def scenario():
            storage, audit_storage, ledger = build()
            account = await open_account(storage)

            with pytest.raises(InvalidAmountError):
                await ledger.set_balance(account.id, Decimal("10.005"))

            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("100.00")
            assert stored.version == 0
            assert await storage.list_adjustments(account.id) == []
            assert event_types(audit_storage) == [AuditEventType.ADJUSTMENT_REJECTED]

        asyncio.run(scenario())

    def test_sub_cent_amount_rejected(self):
        """Test that an adjustment finer than a cent writes nothing."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)

            with pytest.raises(InvalidAmountError):
                await ledger.apply_adjustment(account.id, Decimal("1.001"))
            with pytest.raises(InvalidAmountError):
                await ledger.apply_adjustment(account.id, "0.001")

            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("100.00")
            assert await storage.list_adjustments(account.id) == []

        asyncio.run(scenario())

    def test_trailing_zeros_accepted(self):
        """Test that extra zero places are still whole cents."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            adjustment = await ledger.apply_adjustment(account.id, Decimal("1.5000"))
            assert adjustment.amount == Decimal("1.50")

        asyncio.run(scenario())

    def test_oversized_and_non_finite_rejected(self):
        """Test amounts a balance column cannot hold."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage, initial_balance="-99999999.00")

            with pytest.raises(InvalidAmountError):
                await ledger.apply_adjustment(account.id, Decimal("100000000.00"))
            with pytest.raises(InvalidAmountError):
                await ledger.apply_adjustment(account.id, Decimal("NaN"))
            with pytest.raises(InvalidAmountError):
                await ledger.set_balance(account.id, Decimal("Infinity"))
            # Target fits, but the adjustment to reach it does not
            with pytest.raises(InvalidAmountError):
                await ledger.set_balance(account.id, Decimal("99999999.00"))

            assert await storage.list_adjustments(account.id) == []

        asyncio.run(scenario())

    def test_invalid_amount_is_a_value_error(self):
        """Test that callers catching ValueError still see the refusal."""
        assert issubclass(InvalidAmountError, ValueError)
        assert issubclass(InvalidAmountError, LedgerError)


class TestSetBalance:
    """Tests for target-balance requests."""

    def test_set_balance_records_difference(self):
        """Test that set_balance posts new_balance minus current balance."""
        async def scenario():
            storage, audit_storage, ledger = build()
            account = await open_account(storage)

            adjustment = await ledger.set_balance(account.id, Decimal("850.00"))

            assert adjustment.amount == Decimal("750.00")
            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("850.00")
            assert AuditEventType.BALANCE_SET in event_types(audit_storage)

        asyncio.run(scenario())

    def test_set_balance_downwards(self):
        """Test a negative difference."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            adjustment = await ledger.set_balance(account.id, Decimal("-20.00"))
            assert adjustment.amount == Decimal("-120.00")

        asyncio.run(scenario())

    def test_set_balance_to_current_value_rejected(self):
        """Test that setting the balance it already has is a zero adjustment."""
        async def scenario():
            storage, audit_storage, ledger = build()
            account = await open_account(storage)

            with pytest.raises(ZeroAdjustmentError):
                await ledger.set_balance(account.id, Decimal("100.00"))

            assert await storage.list_adjustments(account.id) == []
            assert AuditEventType.ADJUSTMENT_REJECTED in event_types(audit_storage)

        asyncio.run(scenario())

    def test_concurrent_set_balance_uses_fresh_balance(self):
        """Test that a racing set_balance recomputes against the committed balance."""
        async def scenario():
            storage, _, ledger = build(SlowReadStorage(), max_attempts=5)
            account = await open_account(storage)

            await asyncio.gather(
                ledger.apply_adjustment(account.id, Decimal("50.00")),
                ledger.set_balance(account.id, Decimal("500.00")),
            )

            report = await LedgerQueries(storage).reconcile(account.id)
            assert report.is_consistent
            assert report.adjustment_count == 2

        asyncio.run(scenario())


class TestConcurrency:
    """Tests for optimistic locking under concurrent writers."""

    def test_concurrent_applies_never_lose_updates(self):
        """Test that N concurrent +1 applies add exactly N."""
        async def scenario():
            n = 10
            storage, audit_storage, ledger = build(SlowReadStorage(), max_attempts=n + 5)
            account = await open_account(storage)

            await asyncio.gather(*[
                ledger.apply_adjustment(account.id, Decimal("1.00"))
                for _ in range(n)
            ])

            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("100.00") + n
            assert stored.version == n
            assert len(await storage.list_adjustments(account.id)) == n
            assert AuditEventType.LEDGER_CONFLICT_RETRIED in event_types(audit_storage)

        asyncio.run(scenario())

    def test_exhausted_retries_surface_conflict(self):
        """Test that a writer that never wins sees ConcurrencyConflictError."""
        async def scenario():
            storage, _, ledger = build(SlowReadStorage(), max_attempts=1)
            account = await open_account(storage)

            results = await asyncio.gather(
                *[ledger.apply_adjustment(account.id, Decimal("1.00")) for _ in range(3)],
                return_exceptions=True,
            )

            conflicts = [r for r in results if isinstance(r, ConcurrencyConflictError)]
            landed = [r for r in results if not isinstance(r, Exception)]
            assert len(landed) == 1
            assert len(conflicts) == 2

            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("101.00")
            assert len(await storage.list_adjustments(account.id)) == 1

        asyncio.run(scenario())

    def test_different_accounts_do_not_conflict(self):
        """Test that writers on separate accounts never retry."""
        async def scenario():
            storage, audit_storage, ledger = build(SlowReadStorage(), max_attempts=1)
            first = await open_account(storage)
            second = await open_account(storage)

            await asyncio.gather(
                ledger.apply_adjustment(first.id, Decimal("1.00")),
                ledger.apply_adjustment(second.id, Decimal("2.00")),
            )
            assert AuditEventType.LEDGER_CONFLICT_RETRIED not in event_types(audit_storage)

        asyncio.run(scenario())


class TestAtomicity:
    """Tests for all-or-nothing commits."""

    def test_failed_balance_write_rolls_back_adjustment(self):
        """Test that no adjustment survives a failed balance update."""
        async def scenario():
            storage, audit_storage, ledger = build(FailingBalanceStorage())
            account = await open_account(storage)

            with pytest.raises(AtomicityFailure):
                await ledger.apply_adjustment(account.id, Decimal("10.00"))

            stored = await storage.get_account(account.id)
            assert stored.balance == Decimal("100.00")
            assert stored.version == 0
            assert await storage.list_adjustments(account.id) == []
            assert AuditEventType.ATOMICITY_FAILURE in event_types(audit_storage)

        asyncio.run(scenario())


class TestDeleteAccount:
    """Tests for cascade deletion."""

    def test_delete_cascades(self):
        """Test that adjustments and projection go with the account."""
        async def scenario():
            storage, audit_storage, ledger = build()
            account = await open_account(storage)
            await ledger.apply_adjustment(account.id, Decimal("5.00"))
            await storage.save_projection(
                ProjectionParameters(account_id=account.id, annual_return_rate_percent=Decimal("5"))
            )

            assert await ledger.delete_account(account.id) is True

            assert await storage.get_account(account.id) is None
            assert await storage.list_adjustments(account.id) == []
            assert await storage.get_projection(account.id) is None
            assert AuditEventType.ACCOUNT_DELETED in event_types(audit_storage)

        asyncio.run(scenario())

    def test_delete_missing_account(self):
        """Test that deleting twice reports the second as missing."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            assert await ledger.delete_account(account.id) is True
            assert await ledger.delete_account(account.id) is False

        asyncio.run(scenario())


class TestLedgerQueries:
    """Tests for ordered adjustment retrieval."""

    def test_newest_effective_first(self):
        """Test ordering by effective time, not insertion time."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            now = datetime(2024, 6, 1, 9, 0)

            late = await ledger.apply_adjustment(account.id, Decimal("1.00"), effective_at=now)
            early = await ledger.apply_adjustment(
                account.id, Decimal("2.00"), effective_at=now - timedelta(days=3)
            )

            listed = await LedgerQueries(storage).list_adjustments(account.id)
            assert [a.id for a in listed] == [late.id, early.id]

        asyncio.run(scenario())

    def test_ties_broken_by_insertion_order(self):
        """Test that the later of two simultaneous adjustments is listed first."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            when = datetime(2024, 6, 1, 9, 0)

            first = await ledger.apply_adjustment(account.id, Decimal("1.00"), effective_at=when)
            second = await ledger.apply_adjustment(account.id, Decimal("2.00"), effective_at=when)

            listed = await LedgerQueries(storage).list_adjustments(account.id)
            assert [a.id for a in listed] == [second.id, first.id]

        asyncio.run(scenario())

    def test_date_range_and_paging(self):
        """Test filtering by effective time and limit/offset."""
        async def scenario():
            storage, _, ledger = build()
            account = await open_account(storage)
            base = datetime(2024, 1, 1)
            for day in range(5):
                await ledger.apply_adjustment(
                    account.id, Decimal("1.00"), effective_at=base + timedelta(days=day)
                )

            queries = LedgerQueries(storage)
            ranged = await queries.list_adjustments(
                account.id,
                date_from=base + timedelta(days=1),
                date_to=base + timedelta(days=3),
            )
            assert [a.adjusted_at.day for a in ranged] == [4, 3, 2]

            page = await queries.list_adjustments(account.id, limit=2, offset=1)
            assert [a.adjusted_at.day for a in page] == [4, 3]

            assert await queries.list_adjustments(
                account.id, date_from=base + timedelta(days=3), date_to=base
            ) == []

        asyncio.run(scenario())

    def test_paging_happens_in_storage(self):
        """Test that limit and offset reach storage instead of slicing a full load."""
        async def scenario():
            class PagingStorage(InMemoryLedgerStorage):
                def __init__(self):
                    super().__init__()
                    self.pages = []

                async def list_adjustments(self, account_id, date_from=None, date_to=None,
                                           limit=None, offset=0):
                    self.pages.append((limit, offset))
                    return await super().list_adjustments(
                        account_id, date_from, date_to, limit, offset
                    )

            storage, _, ledger = build(PagingStorage())
            account = await open_account(storage)
            when = datetime(2024, 1, 1)
            ids = [
                (await ledger.apply_adjustment(account.id, Decimal("1.00"), effective_at=when)).id
                for _ in range(4)
            ]

            page = await LedgerQueries(storage).list_adjustments(account.id, limit=2, offset=1)

            assert storage.pages == [(2, 1)]
            assert [a.id for a in page] == [ids[2], ids[1]]

        asyncio.run(scenario())

    def test_unknown_account(self):
        """Test that queries on a missing account raise."""
        async def scenario():
            queries = LedgerQueries(InMemoryLedgerStorage())
            with pytest.raises(AccountNotFoundError):
                await queries.list_adjustments(uuid4())
            with pytest.raises(AccountNotFoundError):
                await queries.reconcile(uuid4())

        asyncio.run(scenario())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
