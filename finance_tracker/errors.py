"""
Ledger Exceptions

Every rejected operation raises one of these BEFORE anything is mutated.
Callers can catch LedgerError to handle all of them at once.
"""

from typing import Optional

from finance_tracker.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for rejected ledger operations."""
    pass


class LedgerValidationError(LedgerError):
    """User input failed validation (empty field, bad amount, bad day...)."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        message = "; ".join(f"{i.field}: {i.message}" for i in issues)
        super().__init__(message or "Invalid input")

    @classmethod
    def single(cls, field: str, issue_type: str, message: str) -> "LedgerValidationError":
        return cls([ValidationIssue(field=field, issue_type=issue_type, message=message)])


class ReferentialIntegrityError(LedgerError):
    """Deleting a record that other records still depend on."""
    pass


class RecordNotFoundError(LedgerError):
    """An explicit lookup by id found nothing."""

    def __init__(self, entity_type: str, entity_id: Optional[str]):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")


class CorruptImportError(LedgerError):
    """An import document is malformed or not a ledger backup."""
    pass
