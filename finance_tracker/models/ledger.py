"""
Core Data Models for Finance Tracker

These models define the strict schemas for everything kept in the ledger.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Round-trip through the persisted JSON blob
4. Accept backups written by the legacy web app (Spanish keys and values)

DESIGN DECISION: Money is Decimal in memory and a plain JSON number on disk.
Replaying movements must give back exactly the stored balance, which float
arithmetic cannot promise.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)


def _money_to_json(value: Decimal) -> float:
    return float(value)


Money = Annotated[
    Decimal,
    PlainSerializer(_money_to_json, return_type=float, when_used="json"),
]

# Payment method sentinel for the virtual cash account
CASH = "cash"

_LEGACY_CASH = "efectivo"

# Description prefixes of savings contribution movements, current and legacy
CONTRIBUTION_PREFIXES = ("Savings contribution: ", "Aporte a meta: ")


def new_id(prefix: str) -> str:
    """Generate an opaque, never-reused record id."""
    return f"{prefix}-{uuid4().hex}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Direction(str, Enum):
    """Whether a movement adds money to or takes money from its account."""
    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def _missing_(cls, value):
        legacy = {"ingreso": cls.INCOME, "egreso": cls.EXPENSE}
        if isinstance(value, str):
            return legacy.get(value.strip().lower())
        return None


class Category(str, Enum):
    """
    Movement categories.

    DEBT_PAYMENT, SAVINGS and ADJUSTMENT are the tags the engine puts on the
    movements it synthesizes; users may pick any category.
    """
    FOOD = "food"
    TRANSPORT = "transport"
    HOUSING = "housing"
    ENTERTAINMENT = "entertainment"
    HEALTH = "health"
    SUBSCRIPTION = "subscription"
    DEBT_PAYMENT = "debt-payment"
    SALARY = "salary"
    SAVINGS = "savings"
    ADJUSTMENT = "adjustment"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return _LEGACY_CATEGORIES.get(value.strip().lower())
        return None


_LEGACY_CATEGORIES = {
    "comida": Category.FOOD,
    "transporte": Category.TRANSPORT,
    "vivienda": Category.HOUSING,
    "entretenimiento": Category.ENTERTAINMENT,
    "salud": Category.HEALTH,
    "suscripcion": Category.SUBSCRIPTION,
    "pago deuda": Category.DEBT_PAYMENT,
    "salario": Category.SALARY,
    "ahorro": Category.SAVINGS,
    "ajuste": Category.ADJUSTMENT,
    "otros": Category.OTHER,
}

# Categories that can carry a monthly limit
BUDGETABLE_CATEGORIES: tuple[Category, ...] = tuple(
    c for c in Category if c not in (Category.SALARY, Category.ADJUSTMENT)
)


class Theme(str, Enum):
    """UI theme preference, persisted with the ledger."""
    LIGHT = "light"
    DARK = "dark"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class _Record(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )


def _normalize_payment_method(value):
    if isinstance(value, str) and value.strip().lower() == _LEGACY_CASH:
        return CASH
    return value


class Account(_Record):
    """
    A bank account or card.

    The balance is a cached value. Only the reconciliation engine writes it,
    and it always equals the replay of the movements pointing here.
    """

    id: str = Field(default_factory=lambda: new_id("acc"))
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("name", "nombre"),
    )
    alias: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Short display name"
    )
    balance: Money = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("balance", "saldo"),
    )
    color: str = Field(
        default="#4a90e2",
        pattern=r"^#[0-9a-fA-F]{3,8}$",
    )


class Movement(_Record):
    """
    A single income or expense transaction.

    The amount is always positive; the direction carries the sign.
    """

    id: str = Field(default_factory=lambda: new_id("mov"))
    description: str = Field(
        ...,
        min_length=1,
        max_length=250,
        validation_alias=AliasChoices("description", "descripcion"),
    )
    amount: Money = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("amount", "monto"),
    )
    direction: Direction = Field(
        ...,
        validation_alias=AliasChoices("direction", "tipo"),
    )
    payment_method: str = Field(
        default=CASH,
        min_length=1,
        validation_alias=AliasChoices("payment_method", "metodoPago"),
        description="'cash' or an account id"
    )
    category: Category = Field(
        default=Category.OTHER,
        validation_alias=AliasChoices("category", "categoria"),
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        validation_alias=AliasChoices("timestamp", "fecha"),
    )
    linked_id: Optional[str] = Field(
        default=None,
        description="Debt or savings goal this movement was generated for"
    )

    @field_validator('payment_method', mode='before')
    @classmethod
    def normalize_payment_method(cls, v):
        return _normalize_payment_method(v)

    @field_validator('timestamp')
    @classmethod
    def to_local_time(cls, v: datetime) -> datetime:
        """Store local wall-clock time so month filters follow the local calendar."""
        if v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v

    @property
    def is_cash(self) -> bool:
        return self.payment_method == CASH

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the direction applied (+ income, - expense)."""
        return self.amount if self.direction == Direction.INCOME else -self.amount


class Debt(_Record):
    """A debt being paid down. amount_paid only ever grows."""

    id: str = Field(default_factory=lambda: new_id("debt"))
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        validation_alias=AliasChoices("description", "descripcion"),
    )
    total_amount: Money = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("total_amount", "montoTotal"),
    )
    amount_paid: Money = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("amount_paid", "montoPagado"),
    )
    term_months: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("term_months", "plazo"),
    )
    minimum_payment: Optional[Money] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("minimum_payment", "pagoMinimo"),
    )


class SavingsGoal(_Record):
    """A savings target funded through contributions."""

    id: str = Field(default_factory=lambda: new_id("goal"))
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("name", "nombre"),
    )
    target_amount: Money = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("target_amount", "montoMeta"),
    )
    current_amount: Money = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("current_amount", "montoActual"),
    )


class Subscription(_Record):
    """A recurring monthly charge."""

    id: str = Field(default_factory=lambda: new_id("sub"))
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("name", "nombre"),
    )
    amount: Money = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("amount", "monto"),
    )
    billing_day: int = Field(
        ...,
        ge=1,
        le=31,
        validation_alias=AliasChoices("billing_day", "fechaCorte"),
    )
    payment_method: str = Field(
        default=CASH,
        min_length=1,
        validation_alias=AliasChoices("payment_method", "metodoPago"),
    )

    @field_validator('payment_method', mode='before')
    @classmethod
    def normalize_payment_method(cls, v):
        return _normalize_payment_method(v)


# =============================================================================
# PERSISTED STATE
# =============================================================================

class LedgerState(BaseModel):
    """
    The whole persisted blob.

    Top-level keys keep the legacy layout (cuentas, movimientos, ...).
    Any missing key falls back to its empty default on load.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )

    pin: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}$",
        description="4-digit access PIN, stored in cleartext"
    )
    theme: Theme = Theme.LIGHT
    accounts: list[Account] = Field(default_factory=list, alias="cuentas")
    movements: list[Movement] = Field(default_factory=list, alias="movimientos")
    subscriptions: list[Subscription] = Field(default_factory=list, alias="suscripciones")
    debts: list[Debt] = Field(default_factory=list, alias="deudas")
    savings_goals: list[SavingsGoal] = Field(default_factory=list, alias="ahorros")
    budgets: dict[Category, Annotated[Money, Field(ge=0)]] = Field(default_factory=dict)

    @model_validator(mode='after')
    def link_legacy_contributions(self) -> "LedgerState":
        """
        Link savings contributions saved without a goal id.

        Older backups only name the goal in the description. A movement is
        linked when exactly one goal carries that name.
        """
        goals_by_name: dict[str, list[str]] = {}
        for goal in self.savings_goals:
            goals_by_name.setdefault(goal.name, []).append(goal.id)
        for movement in self.movements:
            if movement.linked_id is not None or movement.category != Category.SAVINGS:
                continue
            for prefix in CONTRIBUTION_PREFIXES:
                if movement.description.startswith(prefix):
                    ids = goals_by_name.get(movement.description[len(prefix):].strip(), [])
                    if len(ids) == 1:
                        movement.linked_id = ids[0]
                    break
        return self

    def to_blob(self) -> dict:
        """Serialize to the JSON-ready persisted layout."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found in user input."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_found')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
