"""
Input Validation

DESIGN DECISION: Every command validates its raw input BEFORE touching the
ledger. Validation returns a list of issues instead of stopping at the first
one, so a form can show everything that is wrong at once.

Checks fall into two groups:
- Field checks (required text, numeric amounts > 0, day of month in range)
- Reference checks (the payment method is cash or an existing account)

IMPORTANT: Validation NEVER silently fixes input. Amounts that are not
numbers are reported, not defaulted to zero.
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from finance_tracker.errors import LedgerValidationError
from finance_tracker.models.ledger import (
    BUDGETABLE_CATEGORIES,
    CASH,
    Category,
    Direction,
    ValidationIssue,
)
from finance_tracker.store import LedgerStore

# Commas are only accepted as thousands separators: "1,250.00" but not "1,50"
_THOUSANDS = re.compile(r"^-?\d{1,3}(,\d{3})+(\.\d+)?$")


def coerce_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a user-supplied amount.

    Accepts Decimal, int, float and numeric strings. Returns None for
    anything else, including booleans, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return Decimal(str(value))
    if isinstance(value, (int, Decimal)):
        amount = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        if "," in text:
            if not _THOUSANDS.match(text):
                return None
            text = text.replace(",", "")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not amount.is_finite():
        return None
    return amount


def raise_if_errors(issues: list[ValidationIssue]) -> None:
    """Raise LedgerValidationError if any issue has error severity."""
    errors = [i for i in issues if i.severity == "error"]
    if errors:
        raise LedgerValidationError(errors)


class LedgerValidator:
    """Validates command input against field rules and the current ledger."""

    def __init__(self, store: LedgerStore):
        self._store = store

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    def check_text(self, field: str, value: Any, label: str) -> list[ValidationIssue]:
        if not isinstance(value, str) or not value.strip():
            return [ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{label} is required",
            )]
        return []

    def check_amount(
        self,
        field: str,
        value: Any,
        allow_zero: bool = False,
    ) -> list[ValidationIssue]:
        """Amount must be numeric and > 0 (or >= 0 when allow_zero)."""
        amount = coerce_amount(value)
        if amount is None:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"Amount must be a number, got {value!r}",
            )]
        if allow_zero and amount < 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount cannot be negative",
            )]
        if not allow_zero and amount <= 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            )]
        return []

    def check_enum(self, field: str, value: Any, enum_cls) -> list[ValidationIssue]:
        try:
            enum_cls(value)
        except ValueError:
            allowed = ", ".join(e.value for e in enum_cls)
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"Unknown {field} {value!r}. Allowed: {allowed}",
            )]
        return []

    def check_day_of_month(self, field: str, value: Any) -> list[ValidationIssue]:
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 31:
            return [ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"Day of month must be between 1 and 31, got {value!r}",
            )]
        return []

    def check_optional_positive_int(self, field: str, value: Any) -> list[ValidationIssue]:
        if value is None:
            return []
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field} must be a positive whole number",
            )]
        return []

    # -------------------------------------------------------------------------
    # Reference checks
    # -------------------------------------------------------------------------

    def check_payment_method(self, field: str, value: Any) -> list[ValidationIssue]:
        """Payment method must be cash or an existing account id."""
        if value == CASH:
            return []
        if not isinstance(value, str) or self._store.get_account(value) is None:
            return [ValidationIssue(
                field=field,
                issue_type="not_found",
                message=f"Payment method {value!r} is neither cash nor a known account",
            )]
        return []

    # -------------------------------------------------------------------------
    # Per-record validation
    # -------------------------------------------------------------------------

    def validate_movement(
        self,
        description: Any,
        amount: Any,
        direction: Any,
        payment_method: Any,
        category: Any,
        check_reference: bool = True,
    ) -> list[ValidationIssue]:
        """
        check_reference=False skips the payment method lookup, for edits that
        keep a movement on an account that has since been deleted.
        """
        issues = []
        issues.extend(self.check_text("description", description, "Description"))
        issues.extend(self.check_amount("amount", amount))
        issues.extend(self.check_enum("direction", direction, Direction))
        issues.extend(self.check_enum("category", category, Category))
        if check_reference:
            issues.extend(self.check_payment_method("payment_method", payment_method))
        return issues

    def validate_account(self, name: Any, alias: Any) -> list[ValidationIssue]:
        issues = []
        issues.extend(self.check_text("name", name, "Account name"))
        issues.extend(self.check_text("alias", alias, "Account alias"))
        return issues

    def validate_debt(
        self,
        description: Any,
        total_amount: Any,
        term_months: Any = None,
        minimum_payment: Any = None,
    ) -> list[ValidationIssue]:
        issues = []
        issues.extend(self.check_text("description", description, "Description"))
        issues.extend(self.check_amount("total_amount", total_amount))
        issues.extend(self.check_optional_positive_int("term_months", term_months))
        if minimum_payment is not None:
            issues.extend(self.check_amount("minimum_payment", minimum_payment))
        return issues

    def validate_savings_goal(
        self,
        name: Any,
        target_amount: Any,
        current_amount: Any = 0,
    ) -> list[ValidationIssue]:
        issues = []
        issues.extend(self.check_text("name", name, "Goal name"))
        issues.extend(self.check_amount("target_amount", target_amount))
        issues.extend(self.check_amount("current_amount", current_amount, allow_zero=True))
        return issues

    def validate_subscription(
        self,
        name: Any,
        amount: Any,
        billing_day: Any,
        payment_method: Any,
    ) -> list[ValidationIssue]:
        issues = []
        issues.extend(self.check_text("name", name, "Subscription name"))
        issues.extend(self.check_amount("amount", amount))
        issues.extend(self.check_day_of_month("billing_day", billing_day))
        issues.extend(self.check_payment_method("payment_method", payment_method))
        return issues

    def validate_budget(self, category: Any, limit: Any) -> list[ValidationIssue]:
        issues = self.check_enum("category", category, Category)
        if not issues and Category(category) not in BUDGETABLE_CATEGORIES:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=f"Category {Category(category).value!r} cannot have a budget",
            ))
        issues.extend(self.check_amount("limit", limit, allow_zero=True))
        return issues

    def validate_pin(self, new_pin: Any, confirm_pin: Any) -> list[ValidationIssue]:
        if not isinstance(new_pin, str) or len(new_pin) != 4 or not new_pin.isdigit():
            return [ValidationIssue(
                field="pin",
                issue_type="invalid_format",
                message="PIN must be exactly 4 digits",
            )]
        if new_pin != confirm_pin:
            return [ValidationIssue(
                field="confirm_pin",
                issue_type="mismatch",
                message="PINs do not match",
            )]
        return []
