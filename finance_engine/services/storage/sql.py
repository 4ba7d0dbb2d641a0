"""
SQLAlchemy Storage Implementation

DESIGN DECISION: Accounts live in one table with a `kind` column and
nullable variant columns (single-table inheritance). Adjustments and
projections reference the account and go with it.

A commit is one database transaction:
1. Read the account row and check its version
2. Insert the adjustment row
3. UPDATE the balance WHERE version = expected, bumping the version

If step 3 matches no row, another writer got there first; the
transaction rolls back and ConcurrencyConflictError tells the ledger
to retry. Any other database failure rolls back and surfaces as
AtomicityFailure.

The session calls are synchronous inside async methods. Each method
runs to completion without yielding, so coroutines sharing one storage
never interleave inside a transaction.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from finance_engine.config import get_settings
from finance_engine.exceptions import AtomicityFailure, ConcurrencyConflictError
from finance_engine.models.account import (
    AccountBase,
    Adjustment,
    ProjectionParameters,
    parse_account,
)
from finance_engine.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_engine.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


class Base(DeclarativeBase):
    pass


class AccountRow(Base):
    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    initial_balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    opened_at: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Debt variants
    principal: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    annual_rate_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 3))
    term_years: Mapped[Optional[int]] = mapped_column(Integer)
    loan_start_date: Mapped[Optional[date]] = mapped_column(Date)

    # Line of credit
    credit_limit: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    apr: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 3))


class AdjustmentRow(Base):
    __tablename__ = "adjustments"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_adjustments_non_zero_amount"),
        Index("ix_adjustments_account_id_adjusted_at", "account_id", "adjusted_at"),
    )

    # Autoincrement key doubles as the insertion sequence
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[UUID] = mapped_column(Uuid, unique=True, nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    adjusted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class ProjectionRow(Base):
    __tablename__ = "projections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    monthly_contribution: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    annual_return_rate_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50))
    entity_id: Mapped[Optional[UUID]] = mapped_column(Uuid)
    correlation_id: Mapped[Optional[UUID]] = mapped_column(Uuid, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error_code: Mapped[Optional[str]] = mapped_column(String(100))
    error_message: Mapped[Optional[str]] = mapped_column(Text)


VARIANT_COLUMNS = (
    "principal",
    "annual_rate_percent",
    "term_years",
    "loan_start_date",
    "credit_limit",
    "apr",
)


def create_database_engine(database_url: Optional[str] = None) -> Engine:
    """Create an engine from the configured database URL."""
    settings = get_settings().storage
    return create_engine(database_url or settings.database_url, echo=settings.echo_sql)


class SqlAlchemyLedgerStorage(LedgerStorageInterface):
    """
    Relational implementation of ledger storage.

    Tables are created on construction if they do not exist.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine or create_database_engine()
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _account_to_row(self, account: AccountBase) -> AccountRow:
        row = AccountRow(
            id=account.id,
            kind=account.kind,
            name=account.name,
            balance=account.balance,
            initial_balance=account.initial_balance,
            opened_at=account.opened_at,
            created_at=account.created_at,
            version=account.version,
        )
        for column in VARIANT_COLUMNS:
            setattr(row, column, getattr(account, column, None))
        return row

    def _row_to_account(self, row: AccountRow) -> AccountBase:
        data = {
            "id": row.id,
            "kind": row.kind,
            "name": row.name,
            "balance": row.balance,
            "initial_balance": row.initial_balance,
            "opened_at": row.opened_at,
            "created_at": row.created_at,
            "version": row.version,
        }
        for column in VARIANT_COLUMNS:
            value = getattr(row, column)
            if value is not None:
                data[column] = value
        return parse_account(data)

    def _row_to_adjustment(self, row: AdjustmentRow) -> Adjustment:
        return Adjustment(
            id=row.id,
            account_id=row.account_id,
            amount=row.amount,
            description=row.description,
            adjusted_at=row.adjusted_at,
            created_at=row.created_at,
            sequence=row.sequence,
        )

    def _row_to_projection(self, row: ProjectionRow) -> ProjectionParameters:
        return ProjectionParameters(
            account_id=row.account_id,
            monthly_contribution=row.monthly_contribution,
            annual_return_rate_percent=row.annual_return_rate_percent,
            target_date=row.target_date,
            updated_at=row.updated_at,
        )

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def create_account(self, account: AccountBase) -> AccountBase:
        try:
            with self._session_factory.begin() as session:
                if session.get(AccountRow, account.id) is not None:
                    raise DuplicateError(f"Account already exists: {account.id}")
                session.add(self._account_to_row(account))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create account: {e}") from e
        return account.model_copy(deep=True)

    async def get_account(self, account_id: UUID) -> Optional[AccountBase]:
        try:
            with self._session_factory() as session:
                row = session.get(AccountRow, account_id)
                return self._row_to_account(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get account: {e}") from e

    async def list_accounts(self) -> list[AccountBase]:
        try:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(AccountRow).order_by(AccountRow.created_at.desc())
                ).all()
                return [self._row_to_account(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list accounts: {e}") from e

    async def update_account(
        self,
        account_id: UUID,
        name: Optional[str] = None,
        opened_at: Optional[date] = None,
    ) -> AccountBase:
        try:
            with self._session_factory.begin() as session:
                row = session.get(AccountRow, account_id)
                if row is None:
                    raise NotFoundError(f"Account not found: {account_id}")
                if name is not None:
                    row.name = name
                if opened_at is not None:
                    row.opened_at = opened_at
                session.flush()
                return self._row_to_account(row)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update account: {e}") from e

    async def delete_account(self, account_id: UUID) -> bool:
        try:
            with self._session_factory.begin() as session:
                if session.get(AccountRow, account_id) is None:
                    return False
                session.execute(
                    delete(AdjustmentRow).where(AdjustmentRow.account_id == account_id)
                )
                session.execute(
                    delete(ProjectionRow).where(ProjectionRow.account_id == account_id)
                )
                session.execute(delete(AccountRow).where(AccountRow.id == account_id))
                return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete account: {e}") from e

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def commit_adjustment(
        self,
        adjustment: Adjustment,
        expected_version: int,
    ) -> tuple[AccountBase, Adjustment]:
        account_id = adjustment.account_id
        try:
            with self._session_factory.begin() as session:
                account_row = session.get(AccountRow, account_id)
                if account_row is None:
                    raise NotFoundError(f"Account not found: {account_id}")
                if account_row.version != expected_version:
                    raise ConcurrencyConflictError(
                        account_id,
                        expected_version=expected_version,
                        actual_version=account_row.version,
                    )
                new_balance = account_row.balance + adjustment.amount

                adjustment_row = AdjustmentRow(
                    id=adjustment.id,
                    account_id=account_id,
                    amount=adjustment.amount,
                    description=adjustment.description,
                    adjusted_at=adjustment.adjusted_at,
                    created_at=adjustment.created_at,
                )
                session.add(adjustment_row)
                session.flush()

                result = session.execute(
                    update(AccountRow)
                    .where(
                        AccountRow.id == account_id,
                        AccountRow.version == expected_version,
                    )
                    .values(balance=new_balance, version=expected_version + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConcurrencyConflictError(account_id, expected_version=expected_version)

                stored = adjustment.model_copy(update={"sequence": adjustment_row.sequence})
                updated = self._row_to_account(account_row).model_copy(
                    update={"balance": new_balance, "version": expected_version + 1}
                )

            return updated, stored
        except SQLAlchemyError as e:
            raise AtomicityFailure(
                f"Adjustment for account {account_id} rolled back: {e}"
            ) from e

    async def list_adjustments(
        self,
        account_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Adjustment]:
        statement = select(AdjustmentRow).where(AdjustmentRow.account_id == account_id)
        if date_from:
            statement = statement.where(AdjustmentRow.adjusted_at >= date_from)
        if date_to:
            statement = statement.where(AdjustmentRow.adjusted_at <= date_to)
        statement = statement.order_by(
            AdjustmentRow.adjusted_at.desc(),
            AdjustmentRow.sequence.desc(),
        ).offset(offset)
        if limit is not None:
            statement = statement.limit(limit)

        try:
            with self._session_factory() as session:
                return [self._row_to_adjustment(row) for row in session.scalars(statement)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list adjustments: {e}") from e

    async def sum_adjustments(self, account_id: UUID) -> tuple[Decimal, int]:
        try:
            with self._session_factory() as session:
                amounts = session.scalars(
                    select(AdjustmentRow.amount).where(AdjustmentRow.account_id == account_id)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to sum adjustments: {e}") from e
        # Summed in Python: SQLite has no exact decimal arithmetic
        return sum(amounts, Decimal("0")), len(amounts)

    # -------------------------------------------------------------------------
    # Projections
    # -------------------------------------------------------------------------

    async def get_projection(self, account_id: UUID) -> Optional[ProjectionParameters]:
        try:
            with self._session_factory() as session:
                row = session.scalars(
                    select(ProjectionRow).where(ProjectionRow.account_id == account_id)
                ).first()
                return self._row_to_projection(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get projection: {e}") from e

    async def save_projection(self, projection: ProjectionParameters) -> ProjectionParameters:
        try:
            with self._session_factory.begin() as session:
                if session.get(AccountRow, projection.account_id) is None:
                    raise NotFoundError(f"Account not found: {projection.account_id}")
                row = session.scalars(
                    select(ProjectionRow).where(ProjectionRow.account_id == projection.account_id)
                ).first()
                if row is None:
                    row = ProjectionRow(account_id=projection.account_id)
                    session.add(row)
                row.monthly_contribution = projection.monthly_contribution
                row.annual_return_rate_percent = projection.annual_return_rate_percent
                row.target_date = projection.target_date
                row.updated_at = datetime.utcnow()
                session.flush()
                return self._row_to_projection(row)
        except IntegrityError as e:
            raise DuplicateError(f"Projection already exists for {projection.account_id}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save projection: {e}") from e


class SqlAlchemyAuditStorage(AuditStorageInterface):
    """Audit events as rows in the `audit_events` table."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine or create_database_engine()
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)

    def _row_to_event(self, row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=row.event_id,
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=row.correlation_id,
            description=row.description,
            details=row.details or {},
            error_code=row.error_code,
            error_message=row.error_message,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._session_factory.begin() as session:
                session.add(
                    AuditEventRow(
                        event_id=event.event_id,
                        timestamp=event.timestamp,
                        event_type=event.event_type.value,
                        severity=event.severity.value,
                        entity_type=event.entity_type,
                        entity_id=event.entity_id,
                        correlation_id=event.correlation_id,
                        description=event.description,
                        details=event.details,
                        error_code=event.error_code,
                        error_message=event.error_message,
                    )
                )
            return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to append audit event: {e}") from e

    async def _query(self, statement) -> list[AuditEvent]:
        try:
            with self._session_factory() as session:
                return [self._row_to_event(row) for row in session.scalars(statement)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read audit events: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return await self._query(
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == correlation_id)
            .order_by(AuditEventRow.timestamp)
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return await self._query(
            select(AuditEventRow)
            .where(
                AuditEventRow.entity_type == entity_type,
                AuditEventRow.entity_id == entity_id,
            )
            .order_by(AuditEventRow.timestamp)
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return await self._query(
            select(AuditEventRow).order_by(AuditEventRow.timestamp.desc()).limit(limit)
        )
