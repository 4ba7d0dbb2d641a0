"""Ledger query package."""

from finance_engine.queries.ledger_queries import LedgerQueries

__all__ = ["LedgerQueries"]
