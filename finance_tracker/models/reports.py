"""
Result Models for derived metrics and reconciliation.

These are read-only snapshots computed from the ledger.
Nothing here is persisted.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from finance_tracker.models.ledger import Category, Direction, Money


class BudgetTier(str, Enum):
    """How close a category is to its monthly limit."""
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"
    EXCEEDED = "exceeded"


class DueTier(str, Enum):
    """How close a subscription is to its next charge."""
    OK = "ok"
    WARNING = "warning"
    DANGER = "danger"


class MonthlySummary(BaseModel):
    """Income and expense totals for one calendar month."""

    year: int
    month: int = Field(ge=1, le=12)
    payment_method: Optional[str] = Field(
        default=None,
        description="Set when the summary is restricted to one account or cash"
    )
    income: Money = Decimal("0")
    expense: Money = Decimal("0")
    expenses_by_category: dict[Category, Money] = Field(default_factory=dict)
    movement_count: int = Field(default=0, ge=0)

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class PeriodReport(BaseModel):
    """Totals for an arbitrary date range, optionally one direction only."""

    start: Optional[date] = None
    end: Optional[date] = None
    direction: Optional[Direction] = None
    income: Money = Decimal("0")
    expense: Money = Decimal("0")
    expenses_by_category: dict[Category, Money] = Field(default_factory=dict)
    movement_count: int = Field(default=0, ge=0)

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class DebtProgress(BaseModel):
    """Payoff progress of a single debt."""

    debt_id: str
    description: str
    total_amount: Money
    amount_paid: Money
    pending_amount: Money = Field(description="total - paid")
    percent_paid: float = Field(ge=0.0, le=100.0)


class DebtsOverview(BaseModel):
    """Payoff progress across all debts."""

    total_amount: Money = Decimal("0")
    amount_paid: Money = Decimal("0")
    pending_amount: Money = Decimal("0")
    percent_paid: float = Field(default=0.0, ge=0.0, le=100.0)
    debts: list[DebtProgress] = Field(default_factory=list)


class SavingsProgress(BaseModel):
    """Progress of a savings goal towards its target."""

    goal_id: str
    name: str
    target_amount: Money
    current_amount: Money
    remaining_amount: Money = Field(ge=0)
    percent_complete: float = Field(ge=0.0, le=100.0)


class BudgetStatus(BaseModel):
    """Spending against a category's monthly limit."""

    category: Category
    limit: Money
    spent: Money
    remaining: Money = Field(description="limit - spent, negative when exceeded")
    percent_used: float = Field(ge=0.0, le=100.0)
    tier: BudgetTier


class SubscriptionDue(BaseModel):
    """Next charge of a subscription relative to today."""

    subscription_id: str
    name: str
    amount: Money
    next_date: date
    days_remaining: int = Field(ge=0)
    tier: DueTier


class FundsOverview(BaseModel):
    """Money available across accounts and cash."""

    accounts_total: Money = Decimal("0")
    cash_balance: Money = Decimal("0")
    balances: dict[str, Money] = Field(
        default_factory=dict,
        description="Balance per account id"
    )

    @property
    def grand_total(self) -> Decimal:
        return self.accounts_total + self.cash_balance


class ReconciliationResult(BaseModel):
    """
    Outcome of comparing a tracked balance with a declared real balance.

    adjustment_id is set only when an adjustment movement was created.
    """

    payment_method: str
    tracked_balance: Money
    real_balance: Money
    difference: Money = Field(description="real - tracked")
    balanced: bool
    adjustment_id: Optional[str] = None
