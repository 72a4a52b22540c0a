"""
Tests for the Balance Reconciliation Engine

Test strategy:
1. Every command is checked against the replay of the movement ledger
2. Rejected commands must leave state and storage untouched
3. A failed save must roll the in-memory state back
"""

import threading
from datetime import datetime
from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from finance_tracker.activity import ActivityLogger
from finance_tracker.config import LedgerSettings, Settings
from finance_tracker.engine import ReconciliationEngine, create_tracker
from finance_tracker.errors import (
    LedgerValidationError,
    RecordNotFoundError,
    ReferentialIntegrityError,
)
from finance_tracker.metrics import MetricsCalculator
from finance_tracker.models import CASH, Category, Direction, Theme
from finance_tracker.services.storage import InMemoryStorage, StorageError
from finance_tracker.store import LedgerStore

from conftest import FailingStorage


def balance(store, account_id):
    return store.get_account(account_id).balance


class TestMovementCommands:
    """Create, edit and delete keep the account balance equal to the replay."""

    def test_create_income_and_expense(self, engine, store, account):
        """Test that income adds to and expense subtracts from the account."""
        engine.create_movement("Salary", 1000, "income", account.id, "salary")
        engine.create_movement("Groceries", "250.50", "expense", account.id, "food")

        assert balance(store, account.id) == Decimal("749.50")
        assert len(store.state.movements) == 2

    def test_create_assigns_id_and_clock_time(self, engine, clock):
        """Test that new movements get an id and the current time."""
        movement = engine.create_movement("Coffee", 3, Direction.EXPENSE)
        assert movement.id.startswith("mov-")
        assert movement.timestamp == clock.now
        assert movement.payment_method == CASH
        assert movement.category == Category.OTHER

    def test_cash_movement_changes_no_account(self, engine, store, metrics, account):
        """Test that cash movements only affect the derived cash balance."""
        engine.create_movement("Tip", 20, "expense", CASH)
        assert balance(store, account.id) == 0
        assert metrics.cash_balance() == Decimal("-20")

    def test_replay_property_over_command_sequence(self, engine, store, metrics, account):
        """Test that balance equals the replay after creates, edits and deletes."""
        other = engine.create_account("Banco Dos", "B2")
        first = engine.create_movement("Rent", 800, "expense", account.id, "housing")
        second = engine.create_movement("Salary", 2000, "income", account.id, "salary")
        third = engine.create_movement("Bus", 15, "expense", other.id, "transport")

        engine.edit_movement(first.id, amount=750)
        engine.edit_movement(third.id, payment_method=account.id)
        engine.edit_movement(second.id, direction="expense")
        engine.delete_movement(first.id)
        engine.create_movement("Refund", "12.34", "income", other.id)

        for acc_id in (account.id, other.id):
            assert balance(store, acc_id) == metrics.replayed_balance(acc_id)
        assert balance(store, account.id) == Decimal("-2015")
        assert balance(store, other.id) == Decimal("12.34")

    def test_edit_round_trip_restores_balance(self, engine, store, account):
        """Test that editing and reverting a movement restores the balance exactly."""
        engine.create_movement("Salary", 1000, "income", account.id)
        movement = engine.create_movement("Dinner", "40.10", "expense", account.id)
        before = balance(store, account.id)

        engine.edit_movement(movement.id, amount="99.99", direction="income")
        assert balance(store, account.id) != before

        engine.edit_movement(movement.id, amount="40.10", direction="expense")
        assert balance(store, account.id) == before

    def test_delete_then_recreate_is_idempotent(self, engine, store, account):
        """Test that delete plus identical re-create gives the same balance."""
        movement = engine.create_movement("Gym", 30, "expense", account.id)
        before = balance(store, account.id)

        engine.delete_movement(movement.id)
        assert balance(store, account.id) == 0

        engine.create_movement("Gym", 30, "expense", account.id)
        assert balance(store, account.id) == before

    def test_edit_moves_effect_between_accounts(self, engine, store, account):
        """Test that changing the payment method moves the effect."""
        other = engine.create_account("Banco Dos", "B2")
        movement = engine.create_movement("Transfer in", 100, "income", account.id)

        engine.edit_movement(movement.id, payment_method=other.id)

        assert balance(store, account.id) == 0
        assert balance(store, other.id) == 100

    def test_edit_preserves_id_timestamp_and_link(self, engine, store, clock):
        """Test that edits keep identity and original time."""
        debt = engine.create_debt("Card", 500)
        movement = engine.register_debt_payment(debt.id, 50)
        original_time = movement.timestamp

        clock.now = datetime(2025, 4, 2, 9, 30)
        edited = engine.edit_movement(movement.id, description="Card payment")

        assert edited.id == movement.id
        assert edited.timestamp == original_time
        assert edited.linked_id == debt.id
        assert store.get_movement(movement.id).description == "Card payment"

    def test_edit_unknown_movement_raises(self, engine):
        """Test that editing a missing movement raises not-found."""
        with pytest.raises(RecordNotFoundError):
            engine.edit_movement("mov-missing", amount=10)

    def test_delete_unknown_movement_raises(self, engine):
        """Test that deleting a missing movement raises not-found."""
        with pytest.raises(RecordNotFoundError):
            engine.delete_movement("mov-missing")

    @pytest.mark.parametrize("field,kwargs", [
        ("description", {"description": "   "}),
        ("amount", {"amount": 0}),
        ("amount", {"amount": -5}),
        ("amount", {"amount": "abc"}),
        ("amount", {"amount": True}),
        ("amount", {"amount": "1,50"}),
        ("direction", {"direction": "sideways"}),
        ("category", {"category": "gambling"}),
        ("payment_method", {"payment_method": "acc-unknown"}),
    ])
    def test_create_rejects_invalid_input(self, engine, store, storage, field, kwargs):
        """Test that invalid input is reported and nothing is saved."""
        args = {
            "description": "Lunch",
            "amount": 10,
            "direction": "expense",
            "payment_method": CASH,
            "category": "food",
        }
        args.update(kwargs)
        saves_before = storage.save_count

        with pytest.raises(LedgerValidationError) as exc_info:
            engine.create_movement(**args)

        assert field in [issue.field for issue in exc_info.value.issues]
        assert store.state.movements == []
        assert storage.save_count == saves_before

    def test_decimal_comma_amount_rejected(self, engine, store, account):
        """Test that "1,50" is not read as 150."""
        with pytest.raises(LedgerValidationError):
            engine.create_movement("Cafe", "1,50", "expense", account.id, "food")

        assert store.state.movements == []
        assert balance(store, account.id) == 0

    def test_edit_rejects_invalid_amount_without_changes(self, engine, store, account):
        """Test that a rejected edit leaves the balance and movement as they were."""
        movement = engine.create_movement("Rent", 800, "expense", account.id)

        with pytest.raises(LedgerValidationError):
            engine.edit_movement(movement.id, amount=0)

        assert balance(store, account.id) == Decimal("-800")
        assert store.get_movement(movement.id).amount == 800

    def test_every_command_saves(self, engine, storage, account):
        """Test that successful commands persist synchronously."""
        saves_before = storage.save_count
        movement = engine.create_movement("Bus", 2, "expense", account.id)
        engine.edit_movement(movement.id, amount=3)
        engine.delete_movement(movement.id)
        assert storage.save_count == saves_before + 3


class TestRollback:
    """Failed saves must not leave partial state."""

    @pytest.fixture
    def failing(self, clock, ledger_settings):
        storage = FailingStorage()
        store = LedgerStore(storage, clock=clock)
        store.load()
        engine = ReconciliationEngine(store, settings=ledger_settings, clock=clock)
        return storage, store, engine

    def test_failed_save_restores_balance_and_movements(self, failing):
        """Test that a storage failure rolls back the whole command."""
        storage, store, engine = failing
        account = engine.create_account("Banco", "B")
        engine.create_movement("Salary", 100, "income", account.id)

        storage.fail = True
        with pytest.raises(StorageError):
            engine.create_movement("Laptop", 60, "expense", account.id)

        assert len(store.state.movements) == 1
        assert store.get_account(account.id).balance == 100

    def test_failed_debt_payment_restores_amount_paid(self, failing):
        """Test that a failed payment leaves the debt and ledger unchanged."""
        storage, store, engine = failing
        debt = engine.create_debt("Loan", 100)

        storage.fail = True
        with pytest.raises(StorageError):
            engine.register_debt_payment(debt.id, 30)

        assert store.get_debt(debt.id).amount_paid == 0
        assert store.state.movements == []

    def test_rejected_command_is_logged(self, engine):
        """Test that validation failures produce a warning event."""
        with capture_logs() as logs:
            with pytest.raises(LedgerValidationError):
                engine.create_movement("", 10, "expense")

        rejected = [e for e in logs if e.get("event_type") == "operation_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["log_level"] == "warning"


class TestOrphanedReferences:
    """Movements pointing at accounts that no longer exist."""

    BLOB = {
        "pin": "1234",
        "cuentas": [],
        "movimientos": [{
            "id": "mov-orphan",
            "descripcion": "Old purchase",
            "monto": 25,
            "tipo": "egreso",
            "metodoPago": "acc-gone",
            "categoria": "otros",
            "fecha": "2025-01-10T12:00:00",
        }],
    }

    def _engine(self, clock, settings):
        store = LedgerStore(InMemoryStorage(self.BLOB), clock=clock)
        store.load()
        return store, ReconciliationEngine(store, settings=settings, clock=clock)

    def test_delete_orphan_is_noop_with_warning(self, clock):
        """Test that reverting against a missing account logs a warning."""
        store, engine = self._engine(clock, LedgerSettings())

        with capture_logs() as logs:
            engine.delete_movement("mov-orphan")

        assert store.state.movements == []
        orphans = [e for e in logs if e.get("event_type") == "orphaned_reference"]
        assert len(orphans) == 1
        assert orphans[0]["log_level"] == "warning"
        assert orphans[0]["details"]["payment_method"] == "acc-gone"

    def test_orphan_warning_can_be_disabled(self, clock):
        """Test that the orphan warning follows the setting."""
        store, engine = self._engine(
            clock, LedgerSettings(warn_on_orphaned_reference=False)
        )

        with capture_logs() as logs:
            engine.edit_movement("mov-orphan", amount=30)

        assert store.get_movement("mov-orphan").amount == 30
        assert not [e for e in logs if e.get("event_type") == "orphaned_reference"]


class TestReconciliation:
    """Comparing and reconciling tracked balances."""

    def test_balanced_reconciliation_is_noop(self, engine, store, storage, account):
        """Test that a matching real balance creates no movement."""
        engine.create_movement("Salary", 500, "income", account.id)
        movements_before = len(store.state.movements)
        saves_before = storage.save_count

        result = engine.reconcile_account(account.id, 500)

        assert result.balanced is True
        assert result.adjustment_id is None
        assert len(store.state.movements) == movements_before
        assert balance(store, account.id) == 500
        assert storage.save_count == saves_before

    def test_difference_below_tolerance_is_balanced(self, engine, account):
        """Test that sub-cent differences count as balanced."""
        result = engine.compare_balance(account.id, "0.005")
        assert result.balanced is True

    def test_positive_difference_creates_income_adjustment(self, engine, store, account):
        """Test that real = tracked + 50 creates one income adjustment of 50."""
        engine.create_movement("Salary", 200, "income", account.id)
        movements_before = len(store.state.movements)

        result = engine.reconcile_account(account.id, 250)

        assert result.balanced is False
        assert result.difference == 50
        assert len(store.state.movements) == movements_before + 1
        adjustment = store.get_movement(result.adjustment_id)
        assert adjustment.direction == Direction.INCOME
        assert adjustment.amount == 50
        assert adjustment.category == Category.ADJUSTMENT
        assert adjustment.description == "Reconciliation adjustment - B1"
        assert balance(store, account.id) == 250

    def test_negative_difference_creates_expense_adjustment(self, engine, store, metrics, account):
        """Test that a lower real balance creates an expense adjustment."""
        engine.create_movement("Salary", 200, "income", account.id)

        result = engine.reconcile_account(account.id, "180.25")

        adjustment = store.get_movement(result.adjustment_id)
        assert adjustment.direction == Direction.EXPENSE
        assert adjustment.amount == Decimal("19.75")
        assert balance(store, account.id) == Decimal("180.25")
        assert metrics.replayed_balance(account.id) == Decimal("180.25")

    def test_reconcile_cash(self, engine, store, metrics):
        """Test that cash reconciliation adjusts the derived cash balance."""
        engine.create_movement("Pocket money", 40, "income", CASH)

        result = engine.reconcile_account(CASH, 25)

        assert store.get_movement(result.adjustment_id).description == (
            "Reconciliation adjustment - Cash"
        )
        assert metrics.cash_balance() == 25

    def test_compare_is_read_only(self, engine, store, storage, account):
        """Test that compare_balance never mutates."""
        saves_before = storage.save_count
        result = engine.compare_balance(account.id, 75)
        assert result.difference == 75
        assert result.tracked_balance == 0
        assert store.state.movements == []
        assert storage.save_count == saves_before

    def test_unknown_account_raises(self, engine):
        """Test that reconciling a missing account raises not-found."""
        with pytest.raises(RecordNotFoundError):
            engine.reconcile_account("acc-missing", 10)

    def test_non_numeric_real_balance_rejected(self, engine, account):
        """Test that the real balance must be numeric."""
        with pytest.raises(LedgerValidationError):
            engine.reconcile_account(account.id, "lots")


class TestAccountCommands:
    """Account lifecycle and the referential-integrity guard."""

    def test_opening_balance_is_an_adjustment_movement(self, engine, store, metrics):
        """Test that an opening balance stays consistent with the replay."""
        account = engine.create_account("Savings Bank", "SB", opening_balance="1500.75")

        assert balance(store, account.id) == Decimal("1500.75")
        assert metrics.replayed_balance(account.id) == Decimal("1500.75")
        (movement,) = store.movements_for(account.id)
        assert movement.category == Category.ADJUSTMENT
        assert movement.direction == Direction.INCOME

    def test_negative_opening_balance(self, engine, store):
        """Test that a negative opening balance becomes an expense."""
        account = engine.create_account("Credit Card", "CC", opening_balance=-300)
        assert balance(store, account.id) == -300
        assert store.movements_for(account.id)[0].direction == Direction.EXPENSE

    def test_invalid_opening_balance_rejected(self, engine, store):
        """Test that a non-numeric opening balance adds nothing."""
        with pytest.raises(LedgerValidationError):
            engine.create_account("Bank", "B", opening_balance="plenty")
        assert store.state.accounts == []

    def test_delete_unused_account(self, engine, store, account):
        """Test that an account with no movements can be deleted."""
        engine.delete_account(account.id)
        assert store.get_account(account.id) is None

    def test_delete_referenced_account_fails(self, engine, store, account):
        """Test that an account with movements cannot be deleted."""
        engine.create_movement("Salary", 100, "income", account.id)

        with pytest.raises(ReferentialIntegrityError):
            engine.delete_account(account.id)

        assert store.get_account(account.id) is not None
        assert balance(store, account.id) == 100
        assert len(store.state.movements) == 1

    def test_update_account_preserves_balance(self, engine, store, account):
        """Test that renaming never touches the balance."""
        engine.create_movement("Salary", 100, "income", account.id)

        updated = engine.update_account(account.id, alias="Main", color="#112233")

        assert updated.alias == "Main"
        assert updated.name == "Banco Uno"
        assert updated.color == "#112233"
        assert balance(store, account.id) == 100

    def test_update_account_bad_color_rejected(self, engine, store, account):
        """Test that model constraints surface as validation errors."""
        with pytest.raises(LedgerValidationError):
            engine.update_account(account.id, color="blue")
        assert store.get_account(account.id).color == "#4a90e2"

    def test_missing_account_name_rejected(self, engine):
        """Test that name and alias are required."""
        with pytest.raises(LedgerValidationError) as exc_info:
            engine.create_account("", " ")
        fields = {issue.field for issue in exc_info.value.issues}
        assert fields == {"name", "alias"}


class TestDebtCommands:
    """Debt payments and debt lifecycle."""

    def test_payment_of_30_against_100(self, engine, store, metrics):
        """Test the payment effect on debt, ledger and progress."""
        debt = engine.create_debt("Loan", 100)

        movement = engine.register_debt_payment(debt.id, 30)

        stored = store.get_debt(debt.id)
        assert stored.amount_paid == 30
        progress = metrics.debt_progress(stored)
        assert progress.pending_amount == 70
        assert progress.percent_paid == 30.0
        assert len(store.state.movements) == 1
        assert movement.direction == Direction.EXPENSE
        assert movement.amount == 30
        assert movement.category == Category.DEBT_PAYMENT
        assert movement.linked_id == debt.id
        assert movement.description == "Debt payment: Loan"

    def test_payment_from_account_charges_it(self, engine, store, account):
        """Test that paying from an account lowers its balance."""
        debt = engine.create_debt("Card", 1000)
        engine.register_debt_payment(debt.id, "125.50", account.id)
        assert balance(store, account.id) == Decimal("-125.50")

    @pytest.mark.parametrize("amount", [0, -10, "ten", None])
    def test_invalid_payment_rejected(self, engine, store, amount):
        """Test that non-positive or non-numeric payments are rejected."""
        debt = engine.create_debt("Loan", 100)
        with pytest.raises(LedgerValidationError):
            engine.register_debt_payment(debt.id, amount)
        assert store.get_debt(debt.id).amount_paid == 0
        assert store.state.movements == []

    def test_payment_to_unknown_debt_raises(self, engine):
        """Test that paying a missing debt raises not-found."""
        with pytest.raises(RecordNotFoundError):
            engine.register_debt_payment("debt-missing", 10)

    def test_delete_debt_with_payments_fails(self, engine, store):
        """Test that a debt with payments cannot be deleted."""
        debt = engine.create_debt("Loan", 100)
        engine.register_debt_payment(debt.id, 1)

        with pytest.raises(ReferentialIntegrityError):
            engine.delete_debt(debt.id)
        assert store.get_debt(debt.id) is not None

    def test_delete_unpaid_debt(self, engine, store):
        """Test that an unpaid debt can be deleted."""
        debt = engine.create_debt("Loan", 100)
        engine.delete_debt(debt.id)
        assert store.state.debts == []

    def test_update_debt_preserves_amount_paid(self, engine, store):
        """Test that editing terms keeps payments made."""
        debt = engine.create_debt("Loan", 100, term_months=12)
        engine.register_debt_payment(debt.id, 40)

        updated = engine.update_debt(debt.id, total_amount=120, minimum_payment=10)

        assert updated.amount_paid == 40
        assert updated.total_amount == 120
        assert updated.term_months == 12
        assert updated.minimum_payment == 10

    def test_invalid_term_rejected(self, engine):
        """Test that the term must be a positive whole number."""
        with pytest.raises(LedgerValidationError):
            engine.create_debt("Loan", 100, term_months=0)


class TestSavingsCommands:
    """Savings contributions and goal lifecycle."""

    def test_contribution_updates_goal_and_ledger(self, engine, store, account):
        """Test that a contribution raises current amount and charges the account."""
        goal = engine.create_savings_goal("Trip", 1000, current_amount=100)

        movement = engine.register_savings_contribution(goal.id, 250, account.id)

        assert store.get_savings_goal(goal.id).current_amount == 350
        assert movement.category == Category.SAVINGS
        assert movement.direction == Direction.EXPENSE
        assert movement.linked_id == goal.id
        assert balance(store, account.id) == -250

    def test_current_amount_editable_before_contributions(self, engine):
        """Test that the initial amount can be corrected before contributing."""
        goal = engine.create_savings_goal("Trip", 1000)
        updated = engine.update_savings_goal(goal.id, current_amount=80)
        assert updated.current_amount == 80

    def test_current_amount_locked_after_contribution(self, engine, store):
        """Test that current amount cannot be set once contributions exist."""
        goal = engine.create_savings_goal("Trip", 1000)
        engine.register_savings_contribution(goal.id, 50)

        with pytest.raises(LedgerValidationError):
            engine.update_savings_goal(goal.id, current_amount=0)
        assert store.get_savings_goal(goal.id).current_amount == 50

        renamed = engine.update_savings_goal(goal.id, name="Japan", target_amount=2000)
        assert renamed.current_amount == 50
        assert renamed.name == "Japan"

    def test_legacy_contribution_locks_current_amount(self, clock, ledger_settings):
        """Test that contributions from older backups are linked by goal name."""
        blob = {
            "pin": "1234",
            "cuentas": [],
            "movimientos": [{
                "id": "mov-aporte",
                "descripcion": "Aporte a meta: Viaje",
                "monto": 500,
                "tipo": "egreso",
                "metodoPago": "efectivo",
                "categoria": "ahorro",
                "fecha": "2025-01-10T12:00:00",
            }],
            "ahorros": [
                {"id": "ahorro-1", "nombre": "Viaje", "montoMeta": 5000, "montoActual": 500},
            ],
        }
        store = LedgerStore(InMemoryStorage(blob), clock=clock)
        store.load()
        engine = ReconciliationEngine(store, settings=ledger_settings, clock=clock)

        assert store.get_movement("mov-aporte").linked_id == "ahorro-1"
        with pytest.raises(LedgerValidationError):
            engine.update_savings_goal("ahorro-1", current_amount=0)
        assert store.get_savings_goal("ahorro-1").current_amount == 500

    def test_ambiguous_legacy_contribution_stays_unlinked(self, clock):
        """Test that a goal name shared by two goals links nothing."""
        blob = {
            "movimientos": [{
                "id": "mov-aporte",
                "descripcion": "Aporte a meta: Viaje",
                "monto": 500,
                "tipo": "egreso",
                "categoria": "ahorro",
            }],
            "ahorros": [
                {"id": "ahorro-1", "nombre": "Viaje", "montoMeta": 5000},
                {"id": "ahorro-2", "nombre": "Viaje", "montoMeta": 800},
            ],
        }
        store = LedgerStore(InMemoryStorage(blob), clock=clock)
        store.load()
        assert store.get_movement("mov-aporte").linked_id is None

    def test_delete_goal_always_allowed(self, engine, store):
        """Test that goals with contributions can be deleted."""
        goal = engine.create_savings_goal("Trip", 1000)
        engine.register_savings_contribution(goal.id, 50)

        engine.delete_savings_goal(goal.id)

        assert store.state.savings_goals == []
        assert len(store.state.movements) == 1

    def test_contribution_to_unknown_goal_raises(self, engine):
        """Test that contributing to a missing goal raises not-found."""
        with pytest.raises(RecordNotFoundError):
            engine.register_savings_contribution("goal-missing", 10)


class TestSubscriptionCommands:
    """Subscription lifecycle and validation."""

    def test_create_update_delete(self, engine, store, account):
        """Test the full subscription lifecycle."""
        sub = engine.create_subscription("Streaming", "9.99", 31, account.id)
        assert sub.billing_day == 31

        updated = engine.update_subscription(sub.id, amount=12, billing_day=5)
        assert updated.amount == 12
        assert updated.billing_day == 5
        assert updated.payment_method == account.id

        engine.delete_subscription(sub.id)
        assert store.state.subscriptions == []

    @pytest.mark.parametrize("day", [0, 32, "5", 1.5])
    def test_billing_day_out_of_range(self, engine, day):
        """Test that the billing day must be a whole number from 1 to 31."""
        with pytest.raises(LedgerValidationError):
            engine.create_subscription("Gym", 30, day)

    def test_unknown_payment_method_rejected(self, engine):
        """Test that a subscription must be charged to cash or a known account."""
        with pytest.raises(LedgerValidationError):
            engine.create_subscription("Gym", 30, 10, "acc-nope")

    def test_subscriptions_do_not_block_account_deletion(self, engine, store, account):
        """Test that only movements guard account deletion."""
        engine.create_subscription("Gym", 30, 10, account.id)
        engine.delete_account(account.id)
        assert store.get_account(account.id) is None


class TestBudgetCommands:
    """Monthly category limits."""

    def test_set_and_clear_budget(self, engine, store):
        """Test that a zero limit removes the budget."""
        engine.set_budget("food", 300)
        assert store.state.budgets == {Category.FOOD: Decimal("300")}

        engine.set_budget(Category.FOOD, 0)
        assert store.state.budgets == {}

    def test_legacy_category_name_accepted(self, engine, store):
        """Test that legacy Spanish category names still work."""
        engine.set_budget("transporte", 80)
        assert Category.TRANSPORT in store.state.budgets

    @pytest.mark.parametrize("category,limit", [
        ("food", -1),
        ("food", "much"),
        ("salary", 100),
        ("adjustment", 100),
        ("pets", 100),
    ])
    def test_invalid_budget_rejected(self, engine, store, category, limit):
        """Test that negative, non-numeric and non-budgetable limits are rejected."""
        with pytest.raises(LedgerValidationError):
            engine.set_budget(category, limit)
        assert store.state.budgets == {}

    def test_set_budgets_is_all_or_nothing(self, engine, store):
        """Test that one bad limit prevents all of them."""
        with pytest.raises(LedgerValidationError):
            engine.set_budgets({"food": 100, "health": -5})
        assert store.state.budgets == {}

        engine.set_budgets({"food": 100, "health": 50})
        assert len(store.state.budgets) == 2


class TestSettingsCommands:
    """PIN, theme, reset and composition."""

    def test_set_and_verify_pin(self, engine):
        """Test that a matching 4-digit PIN is stored."""
        assert engine.has_pin() is False
        engine.set_pin("0420", "0420")
        assert engine.has_pin() is True
        assert engine.verify_pin("0420") is True
        assert engine.verify_pin("1111") is False

    @pytest.mark.parametrize("new,confirm", [
        ("123", "123"),
        ("12a4", "12a4"),
        ("1234", "4321"),
    ])
    def test_invalid_pin_rejected(self, engine, store, new, confirm):
        """Test that PINs must be 4 digits and confirmed."""
        with pytest.raises(LedgerValidationError):
            engine.set_pin(new, confirm)
        assert store.state.pin is None

    def test_set_theme(self, engine, store):
        """Test that the theme is persisted with the ledger."""
        assert engine.set_theme("dark") == Theme.DARK
        assert store.state.theme == Theme.DARK
        with pytest.raises(LedgerValidationError):
            engine.set_theme("neon")

    def test_reset_clears_everything(self, engine, store, storage, account):
        """Test that reset empties the state and the backend."""
        engine.create_movement("Salary", 100, "income", account.id)
        engine.reset()
        assert store.state.accounts == []
        assert store.state.movements == []
        assert storage.exists() is False

    def test_create_tracker_wires_components(self, clock):
        """Test that the composition root shares one store."""
        storage = InMemoryStorage({"pin": "9999", "cuentas": [], "movimientos": []})

        store, engine, metrics = create_tracker(
            settings=Settings(),
            storage=storage,
            clock=clock,
            setup_logging=False,
        )

        assert engine.store is store
        assert engine.metrics is metrics
        assert store.state.pin == "9999"
        engine.create_movement("Coffee", 3, "expense")
        assert metrics.cash_balance() == -3
        assert storage.load()["movimientos"][0]["amount"] == 3.0


class TestConcurrency:
    """Single-writer access through the engine lock."""

    def test_concurrent_commands_keep_replay(self, engine, store, metrics, account):
        """Test that parallel writers never lose an update."""
        def writer():
            for _ in range(20):
                engine.create_movement("Tick", 1, "income", account.id)

        threads = [threading.Thread(target=writer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert balance(store, account.id) == 160
        assert metrics.replayed_balance(account.id) == 160

    def test_lock_is_reentrant(self, engine, account):
        """Test that a command can run while the caller holds the lock."""
        with engine._lock:
            movement = engine.create_movement("Nested", 5, "income", account.id)
        assert movement.amount == 5

    def test_activity_logger_receives_movement_events(self, store, ledger_settings, clock):
        """Test that each successful command emits one activity event."""
        engine = ReconciliationEngine(
            store,
            settings=ledger_settings,
            activity_logger=ActivityLogger("test"),
            metrics=MetricsCalculator(store, ledger_settings, clock),
            clock=clock,
        )
        with capture_logs() as logs:
            movement = engine.create_movement("Snack", 2, "expense")
            engine.delete_movement(movement.id)

        types = [e["event_type"] for e in logs if "event_type" in e]
        assert types == ["movement_created", "movement_deleted"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
