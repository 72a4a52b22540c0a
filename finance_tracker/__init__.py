"""
Finance Tracker - Source Package

A personal finance ledger: accounts, movements, budgets, subscriptions,
debts, savings goals and balance reconciliation over one persisted state blob.

DESIGN PRINCIPLES:
1. Account balances always equal the replay of their movements
2. Cash is derived, never stored
3. Validate before mutating, save after mutating
4. Fail early, fail visibly
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
