"""
Derived-Metrics Calculator

DESIGN DECISION: Metrics are PURE reads over the store.
Nothing here mutates the ledger, so any presentation layer can call these
functions at any time, as often as it likes.

"Today" comes from an injectable clock so due dates and monthly figures are
reproducible in tests.

Month filters use the local calendar month of each movement's timestamp,
not a rolling 30-day window.
"""

import calendar
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from finance_tracker.config import LedgerSettings, get_settings
from finance_tracker.models.ledger import (
    CASH,
    Category,
    Debt,
    Direction,
    Movement,
    SavingsGoal,
    Subscription,
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
    SavingsProgress,
    SubscriptionDue,
)
from finance_tracker.store import LedgerStore

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _percent(part: Decimal, whole: Decimal) -> float:
    """part/whole as a percentage clipped to [0, 100]."""
    if whole <= 0:
        return 0.0
    value = float(part / whole * HUNDRED)
    return max(0.0, min(value, 100.0))


def _totals(
    movements: Iterable[Movement],
) -> tuple[Decimal, Decimal, dict[Category, Decimal], int]:
    income = ZERO
    expense = ZERO
    by_category: dict[Category, Decimal] = {}
    count = 0
    for mov in movements:
        count += 1
        if mov.direction == Direction.INCOME:
            income += mov.amount
        else:
            expense += mov.amount
            by_category[mov.category] = by_category.get(mov.category, ZERO) + mov.amount
    return income, expense, by_category, count


def next_billing_date(billing_day: int, today: date) -> date:
    """
    Next occurrence of a day-of-month, today included.

    Rolls to the following month when today is past the billing day
    (December rolls into January of the next year). A billing day beyond
    the length of the target month falls on that month's last day.
    """
    year, month = today.year, today.month
    if today.day > billing_day:
        month += 1
        if month > 12:
            month = 1
            year += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(billing_day, last_day))


class MetricsCalculator:
    """
    Computes balances, monthly aggregates, progress and status tiers.

    GUARANTEES:
    - Never mutates the store
    - Cash balance is always derived from cash movements
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._clock = clock or datetime.now

    def today(self) -> date:
        return self._clock().date()

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    def cash_balance(self) -> Decimal:
        """Income minus expense over every cash movement."""
        return sum(
            (m.signed_amount for m in self._store.movements_for(CASH)),
            ZERO,
        )

    def balance_of(self, payment_method: str) -> Optional[Decimal]:
        """
        Current balance of cash or an account.

        Returns None for an unknown account id.
        """
        if payment_method == CASH:
            return self.cash_balance()
        account = self._store.get_account(payment_method)
        return account.balance if account else None

    def replayed_balance(self, account_id: str) -> Decimal:
        """Balance rebuilt from the account's movements alone."""
        return sum(
            (m.signed_amount for m in self._store.movements_for(account_id)),
            ZERO,
        )

    def funds_overview(self) -> FundsOverview:
        accounts = self._store.state.accounts
        return FundsOverview(
            accounts_total=sum((a.balance for a in accounts), ZERO),
            cash_balance=self.cash_balance(),
            balances={a.id: a.balance for a in accounts},
        )

    # -------------------------------------------------------------------------
    # Monthly and period aggregates
    # -------------------------------------------------------------------------

    def movements_in_month(
        self,
        year: int,
        month: int,
        payment_method: Optional[str] = None,
    ) -> list[Movement]:
        return [
            m for m in self._store.state.movements
            if m.timestamp.year == year
            and m.timestamp.month == month
            and (payment_method is None or m.payment_method == payment_method)
        ]

    def monthly_summary(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        payment_method: Optional[str] = None,
    ) -> MonthlySummary:
        """Totals for a calendar month (defaults to the current one)."""
        today = self.today()
        year = year or today.year
        month = month or today.month

        income, expense, by_category, count = _totals(
            self.movements_in_month(year, month, payment_method)
        )
        return MonthlySummary(
            year=year,
            month=month,
            payment_method=payment_method,
            income=income,
            expense=expense,
            expenses_by_category=by_category,
            movement_count=count,
        )

    def expenses_by_category(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> dict[Category, Decimal]:
        return self.monthly_summary(year, month).expenses_by_category

    def filter_movements(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        direction: Optional[Direction] = None,
    ) -> list[Movement]:
        """Movements between two dates (both inclusive), newest first."""
        result = []
        for mov in self._store.state.movements:
            day = mov.timestamp.date()
            if start and day < start:
                continue
            if end and day > end:
                continue
            if direction and mov.direction != direction:
                continue
            result.append(mov)
        return sorted(result, key=lambda m: m.timestamp, reverse=True)

    def period_report(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        direction: Optional[Direction] = None,
    ) -> PeriodReport:
        income, expense, by_category, count = _totals(
            self.filter_movements(start, end, direction)
        )
        return PeriodReport(
            start=start,
            end=end,
            direction=direction,
            income=income,
            expense=expense,
            expenses_by_category=by_category,
            movement_count=count,
        )

    def recent_activity(self, limit: Optional[int] = None) -> list[Movement]:
        limit = limit or self._settings.recent_activity_limit
        return self.filter_movements()[:limit]

    # -------------------------------------------------------------------------
    # Debts and savings
    # -------------------------------------------------------------------------

    def debt_progress(self, debt: Debt) -> DebtProgress:
        return DebtProgress(
            debt_id=debt.id,
            description=debt.description,
            total_amount=debt.total_amount,
            amount_paid=debt.amount_paid,
            pending_amount=debt.total_amount - debt.amount_paid,
            percent_paid=_percent(debt.amount_paid, debt.total_amount),
        )

    def debts_overview(self) -> DebtsOverview:
        debts = self._store.state.debts
        total = sum((d.total_amount for d in debts), ZERO)
        paid = sum((d.amount_paid for d in debts), ZERO)
        return DebtsOverview(
            total_amount=total,
            amount_paid=paid,
            pending_amount=total - paid,
            percent_paid=_percent(paid, total),
            debts=[self.debt_progress(d) for d in debts],
        )

    def savings_progress(self, goal: SavingsGoal) -> SavingsProgress:
        return SavingsProgress(
            goal_id=goal.id,
            name=goal.name,
            target_amount=goal.target_amount,
            current_amount=goal.current_amount,
            remaining_amount=max(ZERO, goal.target_amount - goal.current_amount),
            percent_complete=_percent(goal.current_amount, goal.target_amount),
        )

    def all_savings_progress(self) -> list[SavingsProgress]:
        return [self.savings_progress(g) for g in self._store.state.savings_goals]

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def budget_tier(self, spent: Decimal, limit: Decimal) -> BudgetTier:
        """
        normal below the warning threshold, warning up to the danger
        threshold, danger above it, exceeded once spending passes the limit.
        """
        if spent > limit:
            return BudgetTier.EXCEEDED
        percent = _percent(spent, limit)
        if percent > self._settings.budget_danger_percent:
            return BudgetTier.DANGER
        if percent >= self._settings.budget_warning_percent:
            return BudgetTier.WARNING
        return BudgetTier.NORMAL

    def budget_status(
        self,
        category: Category,
        limit: Decimal,
        spent: Decimal,
    ) -> BudgetStatus:
        return BudgetStatus(
            category=category,
            limit=limit,
            spent=spent,
            remaining=limit - spent,
            percent_used=_percent(spent, limit),
            tier=self.budget_tier(spent, limit),
        )

    def budget_statuses(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> list[BudgetStatus]:
        """Status of every category with a limit greater than zero."""
        spent_by_category = self.expenses_by_category(year, month)
        return [
            self.budget_status(category, limit, spent_by_category.get(category, ZERO))
            for category, limit in self._store.state.budgets.items()
            if limit > 0
        ]

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def due_tier(self, days_remaining: int) -> DueTier:
        if days_remaining <= self._settings.subscription_danger_days:
            return DueTier.DANGER
        if days_remaining <= self._settings.subscription_warning_days:
            return DueTier.WARNING
        return DueTier.OK

    def subscription_due(self, subscription: Subscription) -> SubscriptionDue:
        today = self.today()
        next_date = next_billing_date(subscription.billing_day, today)
        days_remaining = (next_date - today).days
        return SubscriptionDue(
            subscription_id=subscription.id,
            name=subscription.name,
            amount=subscription.amount,
            next_date=next_date,
            days_remaining=days_remaining,
            tier=self.due_tier(days_remaining),
        )

    def upcoming_payments(self, limit: Optional[int] = None) -> list[SubscriptionDue]:
        """Next subscription charges, soonest first."""
        limit = limit or self._settings.upcoming_payments_limit
        dues = [self.subscription_due(s) for s in self._store.state.subscriptions]
        dues.sort(key=lambda d: d.next_date)
        return dues[:limit]
