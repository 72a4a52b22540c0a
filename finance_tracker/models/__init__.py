"""
Data Models Package

This package contains all Pydantic models used by Finance Tracker.
Everything stored in or computed from the ledger conforms to these schemas.
"""

from finance_tracker.models.ledger import (
    BUDGETABLE_CATEGORIES,
    CASH,
    Account,
    Category,
    Debt,
    Direction,
    LedgerState,
    Money,
    Movement,
    SavingsGoal,
    Subscription,
    Theme,
    ValidationIssue,
    new_id,
)
from finance_tracker.models.reports import (
    BudgetStatus,
    BudgetTier,
    DebtProgress,
    DebtsOverview,
    DueTier,
    FundsOverview,
    MonthlySummary,
    PeriodReport,
    ReconciliationResult,
    SavingsProgress,
    SubscriptionDue,
)
from finance_tracker.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
)

__all__ = [
    # Ledger models
    "BUDGETABLE_CATEGORIES",
    "CASH",
    "Account",
    "Category",
    "Debt",
    "Direction",
    "LedgerState",
    "Money",
    "Movement",
    "SavingsGoal",
    "Subscription",
    "Theme",
    "ValidationIssue",
    "new_id",
    # Report models
    "BudgetStatus",
    "BudgetTier",
    "DebtProgress",
    "DebtsOverview",
    "DueTier",
    "FundsOverview",
    "MonthlySummary",
    "PeriodReport",
    "ReconciliationResult",
    "SavingsProgress",
    "SubscriptionDue",
    # Activity models
    "ActivityEvent",
    "ActivityEventBuilder",
    "ActivityEventType",
    "ActivitySeverity",
]
