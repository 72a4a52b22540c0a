"""
Activity Logger

DESIGN DECISION: Every mutation of the ledger is logged as a structured event.
This provides:
1. Traceability when a balance looks wrong
2. Visibility of rejected operations and orphaned references
3. Debugging capability without a separate audit store

The logger only writes to the local structured log. The ledger itself is the
only persisted history.
"""

import logging
import sys
from typing import Optional

import structlog

from finance_tracker.config import LoggingSettings, get_settings
from finance_tracker.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
)
from finance_tracker.models.ledger import Movement


def configure_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Call once from the composition root. Tests leave it unconfigured so
    structlog.testing.capture_logs() can intercept events.
    """
    settings = settings or get_settings().logging

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.level),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class ActivityLogger:
    """Central activity logging service."""

    def __init__(self, logger_name: str = "finance_tracker"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: ActivityEvent) -> None:
        """Write an activity event at the level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity == ActivitySeverity.ERROR:
            self._logger.error("activity_event", **log_dict)
        elif event.severity == ActivitySeverity.WARNING:
            self._logger.warning("activity_event", **log_dict)
        elif event.severity == ActivitySeverity.DEBUG:
            self._logger.debug("activity_event", **log_dict)
        else:
            self._logger.info("activity_event", **log_dict)

    def log_movement(self, event_type: ActivityEventType, movement: Movement) -> None:
        """Log creation, edit or deletion of a movement."""
        event = ActivityEventBuilder.movement_changed(
            event_type=event_type,
            movement_id=movement.id,
            direction=movement.direction.value,
            amount=str(movement.amount),
            payment_method=movement.payment_method,
            category=movement.category.value,
        )
        self.log(event)

    def log_record(
        self,
        event_type: ActivityEventType,
        entity_type: str,
        entity_id: str,
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a change to an account, debt, goal, subscription or budget."""
        event = ActivityEventBuilder.record_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
        )
        self.log(event)

    def log_orphaned_reference(self, movement: Movement, action: str) -> None:
        """Log a movement whose account no longer exists."""
        event = ActivityEventBuilder.orphaned_reference(
            movement_id=movement.id,
            payment_method=movement.payment_method,
            action=action,
        )
        self.log(event)

    def log_reconciliation(
        self,
        payment_method: str,
        difference: str,
        adjustment_id: Optional[str],
    ) -> None:
        event = ActivityEventBuilder.reconciliation(
            payment_method=payment_method,
            difference=difference,
            adjustment_id=adjustment_id,
        )
        self.log(event)

    def log_state(
        self,
        event_type: ActivityEventType,
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a whole-state operation (load, reset, import, export...)."""
        event = ActivityEventBuilder.state_changed(
            event_type=event_type,
            description=description,
            details=details,
        )
        self.log(event)

    def log_rejected(
        self,
        operation: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an operation that was refused before mutating anything."""
        event = ActivityEventBuilder.operation_rejected(
            operation=operation,
            error_message=error_message,
            details=details,
        )
        self.log(event)

    def log_import_rejected(self, error_message: str) -> None:
        self.log(ActivityEventBuilder.import_rejected(error_message))

    def log_storage_error(self, operation: str, error_message: str) -> None:
        event = ActivityEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
        )
        self.log(event)
