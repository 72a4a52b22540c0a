"""Services package."""

from finance_tracker.services.storage import (
    CorruptStateError,
    InMemoryStorage,
    JsonFileStorage,
    LedgerStorageInterface,
    StorageError,
)

__all__ = [
    # Storage services
    "CorruptStateError",
    "InMemoryStorage",
    "JsonFileStorage",
    "LedgerStorageInterface",
    "StorageError",
]
