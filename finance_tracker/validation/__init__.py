"""Input validation package."""

from finance_tracker.validation.validator import (
    LedgerValidator,
    coerce_amount,
    raise_if_errors,
)

__all__ = ["LedgerValidator", "coerce_amount", "raise_if_errors"]
