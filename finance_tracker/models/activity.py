"""
Activity Event Models for Finance Tracker

Every mutation of the ledger, and every rejected one, produces an event
that is written to the structured log. Events are not persisted: the
ledger itself is the only history kept.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

DESCRIPTION_LIMIT = 500


class ActivityEventType(str, Enum):
    """Types of events we log."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Movements
    MOVEMENT_CREATED = "movement_created"
    MOVEMENT_UPDATED = "movement_updated"
    MOVEMENT_DELETED = "movement_deleted"
    ORPHANED_REFERENCE = "orphaned_reference"

    # Debts and savings
    DEBT_CREATED = "debt_created"
    DEBT_UPDATED = "debt_updated"
    DEBT_DELETED = "debt_deleted"
    DEBT_PAYMENT_REGISTERED = "debt_payment_registered"
    SAVINGS_GOAL_CREATED = "savings_goal_created"
    SAVINGS_GOAL_UPDATED = "savings_goal_updated"
    SAVINGS_GOAL_DELETED = "savings_goal_deleted"
    SAVINGS_CONTRIBUTION_REGISTERED = "savings_contribution_registered"

    # Subscriptions and budgets
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    BUDGET_UPDATED = "budget_updated"

    # Reconciliation
    RECONCILIATION_BALANCED = "reconciliation_balanced"
    ADJUSTMENT_CREATED = "adjustment_created"

    # Whole-state operations
    STATE_LOADED = "state_loaded"
    STATE_RESET = "state_reset"
    STATE_IMPORTED = "state_imported"
    STATE_EXPORTED = "state_exported"
    IMPORT_REJECTED = "import_rejected"
    PIN_CHANGED = "pin_changed"
    THEME_CHANGED = "theme_changed"

    # Failures
    OPERATION_REJECTED = "operation_rejected"
    STORAGE_ERROR = "storage_error"


class ActivitySeverity(str, Enum):
    """Severity level for activity events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ActivityEvent(BaseModel):
    """A single activity event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred (local time)"
    )

    event_type: ActivityEventType
    severity: ActivitySeverity = ActivitySeverity.INFO

    # What record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of record (e.g., 'account', 'movement', 'debt')"
    )
    entity_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=DESCRIPTION_LIMIT,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    @field_validator('description', mode='before')
    @classmethod
    def truncate_description(cls, v):
        """Clip long descriptions built from user text."""
        if isinstance(v, str) and len(v) > DESCRIPTION_LIMIT:
            return v[:DESCRIPTION_LIMIT - 3] + "..."
        return v

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class ActivityEventBuilder:
    """
    Helper class to build activity events with common patterns.

    Usage:
        event = ActivityEventBuilder.record_changed(
            ActivityEventType.ACCOUNT_CREATED, "account", account.id, "Account created: BBVA"
        )
        event = ActivityEventBuilder.operation_rejected("delete_account", "has movements")
    """

    @staticmethod
    def record_changed(
        event_type: ActivityEventType,
        entity_type: str,
        entity_id: str,
        description: str,
        details: Optional[dict] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def movement_changed(
        event_type: ActivityEventType,
        movement_id: str,
        direction: str,
        amount: str,
        payment_method: str,
        category: str,
    ) -> ActivityEvent:
        verb = event_type.value.split("_")[-1]
        return ActivityEvent(
            event_type=event_type,
            entity_type="movement",
            entity_id=movement_id,
            description=f"Movement {verb}: {direction} {amount} via {payment_method}",
            details={
                "direction": direction,
                "amount": amount,
                "payment_method": payment_method,
                "category": category,
            },
        )

    @staticmethod
    def orphaned_reference(
        movement_id: str,
        payment_method: str,
        action: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.ORPHANED_REFERENCE,
            severity=ActivitySeverity.WARNING,
            entity_type="movement",
            entity_id=movement_id,
            description=f"Account {payment_method} no longer exists; {action} skipped",
            details={
                "payment_method": payment_method,
                "action": action,
            },
        )

    @staticmethod
    def reconciliation(
        payment_method: str,
        difference: str,
        adjustment_id: Optional[str],
    ) -> ActivityEvent:
        if adjustment_id is None:
            return ActivityEvent(
                event_type=ActivityEventType.RECONCILIATION_BALANCED,
                entity_type="account",
                entity_id=payment_method,
                description=f"Balance of {payment_method} matches the declared balance",
                details={"difference": difference},
            )
        return ActivityEvent(
            event_type=ActivityEventType.ADJUSTMENT_CREATED,
            entity_type="movement",
            entity_id=adjustment_id,
            description=f"Adjustment of {difference} created for {payment_method}",
            details={
                "payment_method": payment_method,
                "difference": difference,
            },
        )

    @staticmethod
    def state_changed(
        event_type: ActivityEventType,
        description: str,
        details: Optional[dict] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=event_type,
            entity_type="ledger",
            description=description,
            details=details or {},
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.OPERATION_REJECTED,
            severity=ActivitySeverity.WARNING,
            description=f"Operation rejected: {operation}",
            error_message=error_message,
            details=details or {},
        )

    @staticmethod
    def import_rejected(error_message: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.IMPORT_REJECTED,
            severity=ActivitySeverity.WARNING,
            entity_type="ledger",
            description="Import rejected: document is not a valid backup",
            error_message=error_message,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.STORAGE_ERROR,
            severity=ActivitySeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
