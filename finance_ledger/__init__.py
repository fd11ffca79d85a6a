"""
Finance Ledger - Source Package

A personal finance tracker that keeps every bank account balance
consistent with its transaction and transfer ledger.

DESIGN PRINCIPLES:
1. Balance = opening balance + signed sum of the ledger, always
2. Fail early, fail visibly
3. No partial effects: a failed mutation is compensated
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Ledger Team"
