"""
Finance Engine - Source Package

Tracks personal financial accounts and projects their future value:
amortized debt payoff for loans and mortgages, compounding growth with
monthly contributions for savings.

DESIGN PRINCIPLES:
1. Money is Decimal end to end; rounding happens once, at emission
2. A balance only changes through the ledger, one adjustment at a time
3. Concurrent writers never lose an update
4. Every balance change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Engine Team"
