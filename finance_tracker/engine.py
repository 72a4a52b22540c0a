"""
Balance Reconciliation Engine

This module owns every mutation of the ledger and the composition root
that wires store, engine and metrics together.

DESIGN DECISION: Account balances are cached values that must always equal
the replay of the movements pointing at them. The engine enforces this with
one apply/revert protocol shared by every feature:
- Creating a movement applies its effect once
- Editing reverts the old effect BEFORE applying the new one
- Deleting reverts the effect once
- Debt payments, savings contributions and reconciliation adjustments are
  ordinary movements and go through the same protocol

Every command runs as one unit under a re-entrant lock:
validate -> mutate -> save. If anything raises, the state is restored from
a snapshot, so no partial change is ever observable.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterator, Mapping, Optional

from pydantic import BaseModel, ValidationError

from finance_tracker.activity import ActivityLogger, configure_logging
from finance_tracker.config import LedgerSettings, Settings, get_settings
from finance_tracker.errors import (
    LedgerError,
    LedgerValidationError,
    RecordNotFoundError,
    ReferentialIntegrityError,
)
from finance_tracker.metrics import MetricsCalculator
from finance_tracker.models.activity import ActivityEventType
from finance_tracker.models.ledger import (
    CASH,
    Account,
    Category,
    Debt,
    Direction,
    LedgerState,
    Movement,
    SavingsGoal,
    Subscription,
    Theme,
    ValidationIssue,
)
from finance_tracker.models.reports import ReconciliationResult
from finance_tracker.services.storage import JsonFileStorage, LedgerStorageInterface
from finance_tracker.store import LedgerStore
from finance_tracker.validation import LedgerValidator, coerce_amount, raise_if_errors


def _build(model_cls: type[BaseModel], **fields: Any) -> Any:
    """Construct a model, turning pydantic errors into ledger validation errors."""
    try:
        return model_cls(**fields)
    except ValidationError as e:
        issues = [
            ValidationIssue(
                field=".".join(str(p) for p in err["loc"]) or model_cls.__name__,
                issue_type=err["type"],
                message=err["msg"],
            )
            for err in e.errors()
        ]
        raise LedgerValidationError(issues)


class ReconciliationEngine:
    """
    Command interface over a LedgerStore.

    Any presentation layer (CLI, web, tests) calls these methods; none of
    them reaches into the store's collections directly.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[LedgerSettings] = None,
        activity_logger: Optional[ActivityLogger] = None,
        metrics: Optional[MetricsCalculator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._activity = activity_logger or ActivityLogger()
        self._clock = clock or datetime.now
        self._metrics = metrics or MetricsCalculator(store, self._settings, self._clock)
        self._validator = LedgerValidator(store)
        self._lock = threading.RLock()

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def metrics(self) -> MetricsCalculator:
        return self._metrics

    @contextmanager
    def _mutation(self, operation: str) -> Iterator[LedgerState]:
        """
        Run one command atomically.

        The state is saved when the block completes. On any exception the
        pre-command snapshot is restored and the exception propagates.
        """
        with self._lock:
            snapshot = self._store.snapshot()
            try:
                yield self._store.state
                self._store.save()
            except LedgerError as e:
                self._store.restore(snapshot)
                self._activity.log_rejected(operation, str(e))
                raise
            except Exception:
                self._store.restore(snapshot)
                raise

    # -------------------------------------------------------------------------
    # Apply / revert protocol
    # -------------------------------------------------------------------------

    def apply_movement_effect(self, movement: Movement) -> None:
        """
        Add an income to, or subtract an expense from, the movement's account.

        Cash movements and movements whose account no longer exists are
        no-ops. Does not save: call from inside a command.
        """
        self._shift_balance(movement, movement.signed_amount, "apply")

    def revert_movement_effect(self, movement: Movement) -> None:
        """Exact inverse of apply_movement_effect."""
        self._shift_balance(movement, -movement.signed_amount, "revert")

    def _shift_balance(self, movement: Movement, delta: Decimal, action: str) -> None:
        if movement.is_cash:
            return
        account = self._store.get_account(movement.payment_method)
        if account is None:
            if self._settings.warn_on_orphaned_reference:
                self._activity.log_orphaned_reference(movement, action)
            return
        account.balance = account.balance + delta

    def _append_movement(self, state: LedgerState, movement: Movement) -> None:
        state.movements.append(movement)
        self.apply_movement_effect(movement)

    def _require_amount(self, field: str, value: Any) -> Decimal:
        raise_if_errors(self._validator.check_amount(field, value))
        return coerce_amount(value)

    def _require_payment_method(self, value: Any) -> str:
        raise_if_errors(self._validator.check_payment_method("payment_method", value))
        return value

    # -------------------------------------------------------------------------
    # Movements
    # -------------------------------------------------------------------------

    def create_movement(
        self,
        description: str,
        amount: Any,
        direction: Any,
        payment_method: str = CASH,
        category: Any = Category.OTHER,
    ) -> Movement:
        """Record an income or expense and apply it to its account."""
        with self._mutation("create_movement") as state:
            raise_if_errors(self._validator.validate_movement(
                description, amount, direction, payment_method, category,
            ))
            movement = _build(
                Movement,
                description=description,
                amount=coerce_amount(amount),
                direction=Direction(direction),
                payment_method=payment_method,
                category=Category(category),
                timestamp=self._clock(),
            )
            self._append_movement(state, movement)

        self._activity.log_movement(ActivityEventType.MOVEMENT_CREATED, movement)
        return movement

    def edit_movement(
        self,
        movement_id: str,
        description: Optional[str] = None,
        amount: Any = None,
        direction: Any = None,
        payment_method: Optional[str] = None,
        category: Any = None,
    ) -> Movement:
        """
        Change a movement's fields. Arguments left as None keep their value.

        The old effect is reverted before the new one is applied; id,
        timestamp and link are preserved.
        """
        with self._mutation("edit_movement") as state:
            old = self._store.get_movement(movement_id)
            if old is None:
                raise RecordNotFoundError("movement", movement_id)

            merged = {
                "description": old.description if description is None else description,
                "amount": old.amount if amount is None else amount,
                "direction": old.direction if direction is None else direction,
                "payment_method": old.payment_method if payment_method is None else payment_method,
                "category": old.category if category is None else category,
            }
            raise_if_errors(self._validator.validate_movement(
                **merged,
                check_reference=payment_method is not None,
            ))
            new = _build(
                Movement,
                id=old.id,
                timestamp=old.timestamp,
                linked_id=old.linked_id,
                description=merged["description"],
                amount=coerce_amount(merged["amount"]),
                direction=Direction(merged["direction"]),
                payment_method=merged["payment_method"],
                category=Category(merged["category"]),
            )

            self.revert_movement_effect(old)
            index = next(i for i, m in enumerate(state.movements) if m is old)
            state.movements[index] = new
            self.apply_movement_effect(new)

        self._activity.log_movement(ActivityEventType.MOVEMENT_UPDATED, new)
        return new

    def delete_movement(self, movement_id: str) -> Movement:
        """Revert a movement's effect and remove it from the ledger."""
        with self._mutation("delete_movement") as state:
            movement = self._store.get_movement(movement_id)
            if movement is None:
                raise RecordNotFoundError("movement", movement_id)

            self.revert_movement_effect(movement)
            state.movements = [m for m in state.movements if m is not movement]

        self._activity.log_movement(ActivityEventType.MOVEMENT_DELETED, movement)
        return movement

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_account(
        self,
        name: str,
        alias: str,
        color: Optional[str] = None,
        opening_balance: Any = 0,
    ) -> Account:
        """
        Add an account.

        A non-zero opening balance is recorded as an adjustment movement so
        the balance stays equal to the replay of the account's movements.
        """
        with self._mutation("create_account") as state:
            issues = self._validator.validate_account(name, alias)
            opening = coerce_amount(opening_balance)
            if opening is None:
                issues.append(ValidationIssue(
                    field="opening_balance",
                    issue_type="invalid_value",
                    message=f"Opening balance must be a number, got {opening_balance!r}",
                ))
            raise_if_errors(issues)

            fields = {"name": name, "alias": alias}
            if color is not None:
                fields["color"] = color
            account = _build(Account, **fields)
            state.accounts.append(account)

            if opening != 0:
                self._append_movement(state, _build(
                    Movement,
                    description=f"Opening balance - {account.alias}",
                    amount=abs(opening),
                    direction=Direction.INCOME if opening > 0 else Direction.EXPENSE,
                    payment_method=account.id,
                    category=Category.ADJUSTMENT,
                    timestamp=self._clock(),
                ))

        self._activity.log_record(
            ActivityEventType.ACCOUNT_CREATED,
            "account",
            account.id,
            f"Account created: {account.alias}",
            details={"opening_balance": str(opening)},
        )
        return account

    def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        alias: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Account:
        """Rename or recolor an account. The balance is never touched here."""
        with self._mutation("update_account") as state:
            account = self._store.get_account(account_id)
            if account is None:
                raise RecordNotFoundError("account", account_id)

            raise_if_errors(self._validator.validate_account(
                account.name if name is None else name,
                account.alias if alias is None else alias,
            ))
            updated = _build(
                Account,
                id=account.id,
                balance=account.balance,
                name=account.name if name is None else name,
                alias=account.alias if alias is None else alias,
                color=account.color if color is None else color,
            )
            index = next(i for i, a in enumerate(state.accounts) if a is account)
            state.accounts[index] = updated

        self._activity.log_record(
            ActivityEventType.ACCOUNT_UPDATED,
            "account",
            updated.id,
            f"Account updated: {updated.alias}",
        )
        return updated

    def delete_account(self, account_id: str) -> Account:
        """
        Remove an account.

        Raises:
            ReferentialIntegrityError: If any movement still references it
        """
        with self._mutation("delete_account") as state:
            account = self._store.get_account(account_id)
            if account is None:
                raise RecordNotFoundError("account", account_id)

            referencing = self._store.movements_for(account_id)
            if referencing:
                raise ReferentialIntegrityError(
                    f"Account {account.alias!r} has {len(referencing)} movement(s) "
                    "and cannot be deleted"
                )
            state.accounts = [a for a in state.accounts if a is not account]

        self._activity.log_record(
            ActivityEventType.ACCOUNT_DELETED,
            "account",
            account.id,
            f"Account deleted: {account.alias}",
        )
        return account

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    def create_debt(
        self,
        description: str,
        total_amount: Any,
        term_months: Optional[int] = None,
        minimum_payment: Any = None,
    ) -> Debt:
        with self._mutation("create_debt") as state:
            raise_if_errors(self._validator.validate_debt(
                description, total_amount, term_months, minimum_payment,
            ))
            debt = _build(
                Debt,
                description=description,
                total_amount=coerce_amount(total_amount),
                term_months=term_months,
                minimum_payment=coerce_amount(minimum_payment),
            )
            state.debts.append(debt)

        self._activity.log_record(
            ActivityEventType.DEBT_CREATED,
            "debt",
            debt.id,
            f"Debt created: {debt.description}",
            details={"total_amount": str(debt.total_amount)},
        )
        return debt

    def update_debt(
        self,
        debt_id: str,
        description: Optional[str] = None,
        total_amount: Any = None,
        term_months: Optional[int] = None,
        minimum_payment: Any = None,
    ) -> Debt:
        """Edit a debt's terms. The amount paid so far is preserved."""
        with self._mutation("update_debt") as state:
            debt = self._store.get_debt(debt_id)
            if debt is None:
                raise RecordNotFoundError("debt", debt_id)

            merged = {
                "description": debt.description if description is None else description,
                "total_amount": debt.total_amount if total_amount is None else total_amount,
                "term_months": debt.term_months if term_months is None else term_months,
                "minimum_payment": (
                    debt.minimum_payment if minimum_payment is None else minimum_payment
                ),
            }
            raise_if_errors(self._validator.validate_debt(**merged))
            updated = _build(
                Debt,
                id=debt.id,
                amount_paid=debt.amount_paid,
                description=merged["description"],
                total_amount=coerce_amount(merged["total_amount"]),
                term_months=merged["term_months"],
                minimum_payment=coerce_amount(merged["minimum_payment"]),
            )
            index = next(i for i, d in enumerate(state.debts) if d is debt)
            state.debts[index] = updated

        self._activity.log_record(
            ActivityEventType.DEBT_UPDATED,
            "debt",
            updated.id,
            f"Debt updated: {updated.description}",
        )
        return updated

    def register_debt_payment(
        self,
        debt_id: str,
        amount: Any,
        payment_method: str = CASH,
    ) -> Movement:
        """
        Pay towards a debt.

        Creates an expense movement tagged debt-payment, raises the debt's
        amount paid and charges the payment method.
        """
        with self._mutation("register_debt_payment") as state:
            paid = self._require_amount("amount", amount)
            debt = self._store.get_debt(debt_id)
            if debt is None:
                raise RecordNotFoundError("debt", debt_id)
            self._require_payment_method(payment_method)

            movement = _build(
                Movement,
                description=f"Debt payment: {debt.description}",
                amount=paid,
                direction=Direction.EXPENSE,
                payment_method=payment_method,
                category=Category.DEBT_PAYMENT,
                timestamp=self._clock(),
                linked_id=debt.id,
            )
            debt.amount_paid = debt.amount_paid + paid
            self._append_movement(state, movement)

        self._activity.log_record(
            ActivityEventType.DEBT_PAYMENT_REGISTERED,
            "debt",
            debt.id,
            f"Payment of {paid} registered for {debt.description}",
            details={
                "movement_id": movement.id,
                "amount_paid": str(debt.amount_paid),
            },
        )
        return movement

    def delete_debt(self, debt_id: str) -> Debt:
        """
        Remove a debt.

        Raises:
            ReferentialIntegrityError: If payments were already registered
        """
        with self._mutation("delete_debt") as state:
            debt = self._store.get_debt(debt_id)
            if debt is None:
                raise RecordNotFoundError("debt", debt_id)
            if debt.amount_paid > 0:
                raise ReferentialIntegrityError(
                    f"Debt {debt.description!r} has registered payments and cannot be deleted"
                )
            state.debts = [d for d in state.debts if d is not debt]

        self._activity.log_record(
            ActivityEventType.DEBT_DELETED,
            "debt",
            debt.id,
            f"Debt deleted: {debt.description}",
        )
        return debt

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    def create_savings_goal(
        self,
        name: str,
        target_amount: Any,
        current_amount: Any = 0,
    ) -> SavingsGoal:
        with self._mutation("create_savings_goal") as state:
            raise_if_errors(self._validator.validate_savings_goal(
                name, target_amount, current_amount,
            ))
            goal = _build(
                SavingsGoal,
                name=name,
                target_amount=coerce_amount(target_amount),
                current_amount=coerce_amount(current_amount),
            )
            state.savings_goals.append(goal)

        self._activity.log_record(
            ActivityEventType.SAVINGS_GOAL_CREATED,
            "savings_goal",
            goal.id,
            f"Savings goal created: {goal.name}",
            details={"target_amount": str(goal.target_amount)},
        )
        return goal

    def update_savings_goal(
        self,
        goal_id: str,
        name: Optional[str] = None,
        target_amount: Any = None,
        current_amount: Any = None,
    ) -> SavingsGoal:
        """
        Edit a savings goal.

        The current amount may only be set directly while no contribution
        has been registered for the goal.
        """
        with self._mutation("update_savings_goal") as state:
            goal = self._store.get_savings_goal(goal_id)
            if goal is None:
                raise RecordNotFoundError("savings goal", goal_id)

            if current_amount is not None and self._store.linked_movements(goal.id):
                raise LedgerValidationError.single(
                    "current_amount",
                    "locked",
                    "Current amount cannot be edited once contributions exist",
                )

            merged = {
                "name": goal.name if name is None else name,
                "target_amount": goal.target_amount if target_amount is None else target_amount,
                "current_amount": (
                    goal.current_amount if current_amount is None else current_amount
                ),
            }
            raise_if_errors(self._validator.validate_savings_goal(**merged))
            updated = _build(
                SavingsGoal,
                id=goal.id,
                name=merged["name"],
                target_amount=coerce_amount(merged["target_amount"]),
                current_amount=coerce_amount(merged["current_amount"]),
            )
            index = next(i for i, g in enumerate(state.savings_goals) if g is goal)
            state.savings_goals[index] = updated

        self._activity.log_record(
            ActivityEventType.SAVINGS_GOAL_UPDATED,
            "savings_goal",
            updated.id,
            f"Savings goal updated: {updated.name}",
        )
        return updated

    def register_savings_contribution(
        self,
        goal_id: str,
        amount: Any,
        payment_method: str = CASH,
    ) -> Movement:
        """
        Put money towards a savings goal.

        Creates an expense movement tagged savings, raises the goal's current
        amount and charges the payment method.
        """
        with self._mutation("register_savings_contribution") as state:
            contributed = self._require_amount("amount", amount)
            goal = self._store.get_savings_goal(goal_id)
            if goal is None:
                raise RecordNotFoundError("savings goal", goal_id)
            self._require_payment_method(payment_method)

            movement = _build(
                Movement,
                description=f"Savings contribution: {goal.name}",
                amount=contributed,
                direction=Direction.EXPENSE,
                payment_method=payment_method,
                category=Category.SAVINGS,
                timestamp=self._clock(),
                linked_id=goal.id,
            )
            goal.current_amount = goal.current_amount + contributed
            self._append_movement(state, movement)

        self._activity.log_record(
            ActivityEventType.SAVINGS_CONTRIBUTION_REGISTERED,
            "savings_goal",
            goal.id,
            f"Contribution of {contributed} registered for {goal.name}",
            details={
                "movement_id": movement.id,
                "current_amount": str(goal.current_amount),
            },
        )
        return movement

    def delete_savings_goal(self, goal_id: str) -> SavingsGoal:
        """
        Remove a savings goal. Always allowed.

        Contribution movements stay in the ledger with a dangling link.
        """
        with self._mutation("delete_savings_goal") as state:
            goal = self._store.get_savings_goal(goal_id)
            if goal is None:
                raise RecordNotFoundError("savings goal", goal_id)
            state.savings_goals = [g for g in state.savings_goals if g is not goal]

        self._activity.log_record(
            ActivityEventType.SAVINGS_GOAL_DELETED,
            "savings_goal",
            goal.id,
            f"Savings goal deleted: {goal.name}",
        )
        return goal

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def create_subscription(
        self,
        name: str,
        amount: Any,
        billing_day: int,
        payment_method: str = CASH,
    ) -> Subscription:
        with self._mutation("create_subscription") as state:
            raise_if_errors(self._validator.validate_subscription(
                name, amount, billing_day, payment_method,
            ))
            subscription = _build(
                Subscription,
                name=name,
                amount=coerce_amount(amount),
                billing_day=billing_day,
                payment_method=payment_method,
            )
            state.subscriptions.append(subscription)

        self._activity.log_record(
            ActivityEventType.SUBSCRIPTION_CREATED,
            "subscription",
            subscription.id,
            f"Subscription created: {subscription.name}",
            details={"billing_day": subscription.billing_day},
        )
        return subscription

    def update_subscription(
        self,
        subscription_id: str,
        name: Optional[str] = None,
        amount: Any = None,
        billing_day: Optional[int] = None,
        payment_method: Optional[str] = None,
    ) -> Subscription:
        with self._mutation("update_subscription") as state:
            subscription = self._store.get_subscription(subscription_id)
            if subscription is None:
                raise RecordNotFoundError("subscription", subscription_id)

            merged = {
                "name": subscription.name if name is None else name,
                "amount": subscription.amount if amount is None else amount,
                "billing_day": subscription.billing_day if billing_day is None else billing_day,
                "payment_method": (
                    subscription.payment_method if payment_method is None else payment_method
                ),
            }
            issues = self._validator.validate_subscription(**merged)
            if payment_method is None:
                issues = [i for i in issues if i.field != "payment_method"]
            raise_if_errors(issues)

            updated = _build(
                Subscription,
                id=subscription.id,
                name=merged["name"],
                amount=coerce_amount(merged["amount"]),
                billing_day=merged["billing_day"],
                payment_method=merged["payment_method"],
            )
            index = next(i for i, s in enumerate(state.subscriptions) if s is subscription)
            state.subscriptions[index] = updated

        self._activity.log_record(
            ActivityEventType.SUBSCRIPTION_UPDATED,
            "subscription",
            updated.id,
            f"Subscription updated: {updated.name}",
        )
        return updated

    def delete_subscription(self, subscription_id: str) -> Subscription:
        with self._mutation("delete_subscription") as state:
            subscription = self._store.get_subscription(subscription_id)
            if subscription is None:
                raise RecordNotFoundError("subscription", subscription_id)
            state.subscriptions = [s for s in state.subscriptions if s is not subscription]

        self._activity.log_record(
            ActivityEventType.SUBSCRIPTION_DELETED,
            "subscription",
            subscription.id,
            f"Subscription deleted: {subscription.name}",
        )
        return subscription

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def set_budget(self, category: Any, limit: Any) -> None:
        """Set a category's monthly limit. A limit of zero removes it."""
        self.set_budgets({category: limit})

    def set_budgets(self, limits: Mapping[Any, Any]) -> dict[Category, Decimal]:
        """
        Set several monthly limits at once.

        All limits are validated before any is applied.
        """
        with self._mutation("set_budgets") as state:
            issues = []
            for category, limit in limits.items():
                issues.extend(self._validator.validate_budget(category, limit))
            raise_if_errors(issues)

            budgets = dict(state.budgets)
            for category, limit in limits.items():
                amount = coerce_amount(limit)
                if amount == 0:
                    budgets.pop(Category(category), None)
                else:
                    budgets[Category(category)] = amount
            state.budgets = budgets

        self._activity.log_record(
            ActivityEventType.BUDGET_UPDATED,
            "budget",
            ",".join(Category(c).value for c in limits),
            "Budget limits updated",
            details={Category(c).value: str(v) for c, v in limits.items()},
        )
        return dict(self._store.state.budgets)

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def compare_balance(self, payment_method: str, real_balance: Any) -> ReconciliationResult:
        """
        Compare a tracked balance with a declared real one. Read-only.

        Raises:
            LedgerValidationError: If real_balance is not a number
            RecordNotFoundError: If the account does not exist
        """
        real = coerce_amount(real_balance)
        if real is None:
            raise LedgerValidationError.single(
                "real_balance",
                "invalid_value",
                f"Real balance must be a number, got {real_balance!r}",
            )
        tracked = self._metrics.balance_of(payment_method)
        if tracked is None:
            raise RecordNotFoundError("account", payment_method)

        difference = real - tracked
        tolerance = Decimal(str(self._settings.reconciliation_tolerance))
        return ReconciliationResult(
            payment_method=payment_method,
            tracked_balance=tracked,
            real_balance=real,
            difference=difference,
            balanced=abs(difference) < tolerance,
        )

    def reconcile_account(self, payment_method: str, real_balance: Any) -> ReconciliationResult:
        """
        Make a tracked balance match a declared real balance.

        Within tolerance nothing changes. Otherwise an adjustment movement
        for the difference is created and applied like any other movement.
        """
        with self._lock:
            try:
                result = self.compare_balance(payment_method, real_balance)
            except LedgerError as e:
                self._activity.log_rejected("reconcile_account", str(e))
                raise

            if result.balanced:
                self._activity.log_reconciliation(payment_method, str(result.difference), None)
                return result

            with self._mutation("reconcile_account") as state:
                if payment_method == CASH:
                    label = "Cash"
                else:
                    label = self._store.get_account(payment_method).alias
                difference = result.difference
                movement = _build(
                    Movement,
                    description=f"Reconciliation adjustment - {label}",
                    amount=abs(difference),
                    direction=Direction.INCOME if difference > 0 else Direction.EXPENSE,
                    payment_method=payment_method,
                    category=Category.ADJUSTMENT,
                    timestamp=self._clock(),
                )
                self._append_movement(state, movement)

        self._activity.log_reconciliation(payment_method, str(difference), movement.id)
        return result.model_copy(update={"adjustment_id": movement.id})

    # -------------------------------------------------------------------------
    # Whole-state and settings commands
    # -------------------------------------------------------------------------

    def set_pin(self, new_pin: str, confirm_pin: str) -> None:
        """Set or change the 4-digit PIN."""
        with self._mutation("set_pin") as state:
            raise_if_errors(self._validator.validate_pin(new_pin, confirm_pin))
            state.pin = new_pin

        self._activity.log_state(ActivityEventType.PIN_CHANGED, "PIN updated")

    def has_pin(self) -> bool:
        return self._store.state.pin is not None

    def verify_pin(self, pin: str) -> bool:
        stored = self._store.state.pin
        return stored is not None and pin == stored

    def set_theme(self, theme: Any) -> Theme:
        with self._mutation("set_theme") as state:
            raise_if_errors(self._validator.check_enum("theme", theme, Theme))
            state.theme = Theme(theme)

        self._activity.log_state(
            ActivityEventType.THEME_CHANGED,
            f"Theme set to {Theme(theme).value}",
        )
        return Theme(theme)

    def reset(self) -> None:
        """Erase everything: empty state, persisted blob removed."""
        with self._lock:
            self._store.reset()

    def import_state(self, text: str) -> LedgerState:
        """Replace the whole ledger with a backup document."""
        with self._lock:
            return self._store.import_json(text)


def create_tracker(
    settings: Optional[Settings] = None,
    storage: Optional[LedgerStorageInterface] = None,
    clock: Optional[Callable[[], datetime]] = None,
    setup_logging: bool = True,
) -> tuple[LedgerStore, ReconciliationEngine, MetricsCalculator]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings())
        storage: Storage backend (defaults to the configured JSON file)
        clock: Source of "now" (defaults to datetime.now)
        setup_logging: Configure structlog from the logging settings

    Returns:
        (store, engine, metrics) with the persisted state already loaded
    """
    settings = settings or get_settings()
    if setup_logging:
        configure_logging(settings.logging)

    ledger_settings = settings.ledger
    activity_logger = ActivityLogger()
    storage = storage or JsonFileStorage(
        path=settings.storage.data_file,
        write_attempts=settings.storage.write_attempts,
    )

    store = LedgerStore(storage, activity_logger=activity_logger, clock=clock)
    store.load()

    metrics = MetricsCalculator(store, ledger_settings, clock)
    engine = ReconciliationEngine(
        store,
        settings=ledger_settings,
        activity_logger=activity_logger,
        metrics=metrics,
        clock=clock,
    )
    return store, engine, metrics
