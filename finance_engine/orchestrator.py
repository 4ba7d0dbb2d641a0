"""
Main Orchestrator for the Finance Engine

This module ties together all the components and defines the
end-to-end flows for:
1. Account lifecycle (create → adjust → delete)
2. Projection parameters (save / replace)
3. Account overview (load → dispatch on kind → compute view)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No balance changes except through the BalanceLedger
- No engine writes state; engines only compute
- Engine selection is a table lookup on the account kind

This is the "glue" that callers (web handlers, scripts) talk to. They
persist or render its output verbatim and never recompute financials.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from finance_engine.audit import AuditLogger, configure_logging, create_correlation_id
from finance_engine.config import get_settings
from finance_engine.engines import amortization, growth
from finance_engine.engines.money import Number, to_decimal
from finance_engine.exceptions import AccountNotFoundError, EngineError
from finance_engine.ledger import BalanceLedger
from finance_engine.models.account import (
    AccountBase,
    AccountKind,
    Adjustment,
    DebtAccount,
    LineOfCreditAccount,
    ProjectionParameters,
    ReconciliationReport,
    parse_account,
)
from finance_engine.models.results import AccountOverview
from finance_engine.queries import LedgerQueries
from finance_engine.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    SqlAlchemyAuditStorage,
    SqlAlchemyLedgerStorage,
    create_database_engine,
)


OverviewBuilder = Callable[
    [AccountBase, Optional[ProjectionParameters], date, UUID],
    Awaitable[AccountOverview],
]


class AccountFlow:
    """
    Orchestrates everything a caller does with an account.

    Flow for a balance change:
    1. Caller asks for an adjustment or a target balance
    2. BalanceLedger commits it atomically (with retries)
    3. Audit records the result

    Flow for an overview:
    1. Load account snapshot and projection parameters
    2. Pick the view builder registered for the account kind
    3. Run the engine and return the computed view
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        ledger: Optional[BalanceLedger] = None,
        queries: Optional[LedgerQueries] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._ledger = ledger or BalanceLedger(storage, audit_logger=audit_logger)
        self._queries = queries or LedgerQueries(storage)

        self._views: dict[AccountKind, OverviewBuilder] = {
            AccountKind.GENERIC: self._growth_view,
            AccountKind.SAVINGS: self._growth_view,
            AccountKind.MORTGAGE: self._amortization_view,
            AccountKind.PERSONAL_LOAN: self._amortization_view,
            AccountKind.LINE_OF_CREDIT: self._credit_view,
        }

    # -------------------------------------------------------------------------
    # Account lifecycle
    # -------------------------------------------------------------------------

    async def create_account(
        self,
        kind: AccountKind,
        name: str,
        correlation_id: Optional[UUID] = None,
        **fields: Any,
    ) -> AccountBase:
        """
        Create an account of the given kind.

        The balance always starts at the initial balance (the principal
        for mortgages and personal loans) and the version at zero,
        whatever the caller passed for them.

        Args:
            kind: Account variant
            name: Display name
            correlation_id: For tracking related events
            **fields: Variant fields (principal, term_years, credit_limit, ...)

        Raises:
            pydantic.ValidationError: invalid fields for the variant
        """
        correlation_id = correlation_id or create_correlation_id()

        fields.pop("balance", None)
        fields.pop("version", None)
        account = parse_account({"kind": AccountKind(kind).value, "name": name, **fields})

        account = await self._storage.create_account(account)

        if self._audit_logger:
            await self._audit_logger.log_account_created(
                account_id=account.id,
                kind=account.kind,
                initial_balance=str(account.initial_balance),
                correlation_id=correlation_id,
            )

        return account

    async def get_account(self, account_id: UUID) -> AccountBase:
        """
        Raises:
            AccountNotFoundError: no such account
        """
        account = await self._storage.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def list_accounts(self) -> list[AccountBase]:
        return await self._storage.list_accounts()

    async def update_account(
        self,
        account_id: UUID,
        name: Optional[str] = None,
        opened_at: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AccountBase:
        """
        Rename an account or correct its opening date.

        Fields left as None keep their value. Balances only move through
        the ledger, so balance, initial balance and version are never
        written here.

        Raises:
            AccountNotFoundError: no such account
            pydantic.ValidationError: invalid name
        """
        correlation_id = correlation_id or create_correlation_id()

        account = await self.get_account(account_id)
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if opened_at is not None:
            changes["opened_at"] = opened_at
        if not changes:
            return account

        checked = type(account).model_validate({**account.model_dump(), **changes})
        changes = {field: getattr(checked, field) for field in changes}

        try:
            account = await self._storage.update_account(account_id, **changes)
        except NotFoundError:
            raise AccountNotFoundError(account_id)

        if self._audit_logger:
            await self._audit_logger.log_account_updated(
                account_id=account_id,
                changes={field: str(value) for field, value in changes.items()},
                correlation_id=correlation_id,
            )

        return account

    async def delete_account(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an account with its adjustments and projection.

        Raises:
            AccountNotFoundError: no such account
        """
        correlation_id = correlation_id or create_correlation_id()
        deleted = await self._ledger.delete_account(account_id, correlation_id=correlation_id)
        if not deleted:
            raise AccountNotFoundError(account_id)

    # -------------------------------------------------------------------------
    # Projection parameters
    # -------------------------------------------------------------------------

    async def save_projection(
        self,
        account_id: UUID,
        monthly_contribution: Number,
        annual_return_rate_percent: Number,
        target_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ProjectionParameters:
        """
        Create or replace the account's projection parameters.

        Raises:
            AccountNotFoundError: no such account
        """
        correlation_id = correlation_id or create_correlation_id()
        await self.get_account(account_id)

        projection = await self._storage.save_projection(
            ProjectionParameters(
                account_id=account_id,
                monthly_contribution=to_decimal(monthly_contribution),
                annual_return_rate_percent=to_decimal(annual_return_rate_percent),
                target_date=target_date,
            )
        )

        if self._audit_logger:
            await self._audit_logger.log_projection_saved(
                account_id=account_id,
                monthly_contribution=str(projection.monthly_contribution),
                annual_return_rate_percent=str(projection.annual_return_rate_percent),
                correlation_id=correlation_id,
            )

        return projection

    async def get_projection(self, account_id: UUID) -> Optional[ProjectionParameters]:
        return await self._storage.get_projection(account_id)

    # -------------------------------------------------------------------------
    # Balance changes (ledger only)
    # -------------------------------------------------------------------------

    async def apply_adjustment(
        self,
        account_id: UUID,
        amount: Number,
        description: Optional[str] = None,
        effective_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Adjustment:
        """Post a signed amount against the account."""
        return await self._ledger.apply_adjustment(
            account_id,
            amount,
            description=description,
            effective_at=effective_at,
            correlation_id=correlation_id or create_correlation_id(),
        )

    async def set_balance(
        self,
        account_id: UUID,
        new_balance: Number,
        description: Optional[str] = None,
        effective_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Adjustment:
        """Bring the account to a target balance."""
        return await self._ledger.set_balance(
            account_id,
            new_balance,
            description=description,
            effective_at=effective_at,
            correlation_id=correlation_id or create_correlation_id(),
        )

    async def list_adjustments(self, account_id: UUID, **filters: Any) -> list[Adjustment]:
        return await self._queries.list_adjustments(account_id, **filters)

    async def reconcile(self, account_id: UUID) -> ReconciliationReport:
        return await self._queries.reconcile(account_id)

    # -------------------------------------------------------------------------
    # Overview
    # -------------------------------------------------------------------------

    async def overview(
        self,
        account_id: UUID,
        as_of: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AccountOverview:
        """
        Compute the view for an account as of a date.

        The engine is chosen by the account kind:
        - generic, savings: growth projection to the target date
        - mortgage, personal loan: amortization of the current balance
        - line of credit: available credit only

        Raises:
            AccountNotFoundError: no such account
            EngineError: the stored terms cannot be computed
        """
        correlation_id = correlation_id or create_correlation_id()
        as_of = as_of or date.today()

        account = await self.get_account(account_id)
        projection = await self._storage.get_projection(account_id)

        build = self._views[AccountKind(account.kind)]
        try:
            return await build(account, projection, as_of, correlation_id)
        except EngineError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"account_id": str(account_id)},
                    correlation_id=correlation_id,
                )
            raise

    def _base_overview(self, account: AccountBase, as_of: date) -> AccountOverview:
        return AccountOverview(
            account_id=account.id,
            kind=AccountKind(account.kind),
            balance=account.balance,
            as_of=as_of,
        )

    async def _growth_view(
        self,
        account: AccountBase,
        projection: Optional[ProjectionParameters],
        as_of: date,
        correlation_id: UUID,
    ) -> AccountOverview:
        view = self._base_overview(account, as_of)
        if projection is None or projection.target_date is None:
            return view

        view.projection = growth.calculate(
            current_balance=account.balance,
            monthly_contribution=projection.monthly_contribution,
            annual_return_rate_percent=projection.annual_return_rate_percent,
            start_date=as_of,
            target_date=projection.target_date,
        )

        if self._audit_logger:
            await self._audit_logger.log_projection_computed(
                account_id=account.id,
                months=len(view.projection.monthly_breakdown),
                final_balance=str(view.projection.final_balance),
                correlation_id=correlation_id,
            )
        return view

    async def _amortization_view(
        self,
        account: DebtAccount,
        projection: Optional[ProjectionParameters],
        as_of: date,
        correlation_id: UUID,
    ) -> AccountOverview:
        view = self._base_overview(account, as_of)
        extra = projection.monthly_contribution if projection else Decimal("0")
        max_periods = min(
            account.term_years * 12,
            get_settings().engine.max_amortization_periods,
        )

        result = amortization.amortize(
            principal=account.principal,
            annual_rate_percent=account.annual_rate_percent,
            term_years=account.term_years,
            start_date=as_of,
            starting_balance=account.balance,
            extra_payment=extra,
            max_periods=max_periods,
        )
        view.amortization = result

        if result.breakdown.is_negative_amortization:
            view.warnings.append(
                f"Payment {result.breakdown.total_payment:.2f} does not cover "
                f"interest {result.breakdown.interest_portion:.2f}; the balance grows"
            )
            if self._audit_logger:
                await self._audit_logger.log_negative_amortization(
                    account_id=account.id,
                    payment=str(result.breakdown.total_payment),
                    interest=str(result.breakdown.interest_portion),
                    correlation_id=correlation_id,
                )
        elif result.cap_reached:
            view.warnings.append(
                f"Balance not paid off within {result.max_periods} payments"
            )

        if self._audit_logger:
            await self._audit_logger.log_schedule_computed(
                account_id=account.id,
                periods=len(result.schedule),
                paid_off=result.paid_off,
                correlation_id=correlation_id,
            )
        return view

    async def _credit_view(
        self,
        account: LineOfCreditAccount,
        projection: Optional[ProjectionParameters],
        as_of: date,
        correlation_id: UUID,
    ) -> AccountOverview:
        view = self._base_overview(account, as_of)
        view.available_credit = account.credit_limit - account.balance
        if view.available_credit < 0:
            view.warnings.append("Balance exceeds the credit limit")
        return view


def create_app_components(
    backend: Optional[str] = None,
    database_url: Optional[str] = None,
) -> tuple[AccountFlow, LedgerStorageInterface, AuditStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "sql" (defaults to the configured backend)
        database_url: Overrides the configured URL for the sql backend

    Returns:
        (account_flow, ledger_storage, audit_storage)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)
    backend = backend or settings.storage.backend

    if backend == "sql":
        engine = create_database_engine(database_url)
        ledger_storage = SqlAlchemyLedgerStorage(engine)
        audit_storage = SqlAlchemyAuditStorage(engine)
    elif backend == "memory":
        ledger_storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    audit_logger = AuditLogger(audit_storage)
    ledger = BalanceLedger(ledger_storage, audit_logger=audit_logger)

    account_flow = AccountFlow(
        storage=ledger_storage,
        ledger=ledger,
        queries=LedgerQueries(ledger_storage),
        audit_logger=audit_logger,
    )

    return account_flow, ledger_storage, audit_storage
