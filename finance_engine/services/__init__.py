"""Services package."""

from finance_engine.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    SqlAlchemyAuditStorage,
    SqlAlchemyLedgerStorage,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "SqlAlchemyAuditStorage",
    "SqlAlchemyLedgerStorage",
    "StorageError",
]
