"""Balance ledger package."""

from finance_engine.ledger.balance_ledger import BalanceLedger

__all__ = ["BalanceLedger"]
