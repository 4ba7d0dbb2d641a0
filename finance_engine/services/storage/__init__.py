"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Two backends ship: in-memory (tests, scratch use) and SQLAlchemy.
"""

from finance_engine.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    adjustment_order_key,
)
from finance_engine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from finance_engine.services.storage.sql import (
    SqlAlchemyAuditStorage,
    SqlAlchemyLedgerStorage,
    create_database_engine,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "adjustment_order_key",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQLAlchemy implementation
    "SqlAlchemyAuditStorage",
    "SqlAlchemyLedgerStorage",
    "create_database_engine",
]
