"""
Storage Services Package

Provides the abstract blob storage interface and its implementations.
The JSON file backend is the default; in-memory storage serves tests.
"""

from finance_tracker.services.storage.interface import (
    CorruptStateError,
    LedgerStorageInterface,
    StorageError,
)
from finance_tracker.services.storage.json_file import JsonFileStorage
from finance_tracker.services.storage.memory import InMemoryStorage

__all__ = [
    # Interface
    "LedgerStorageInterface",
    # Exceptions
    "CorruptStateError",
    "StorageError",
    # Implementations
    "InMemoryStorage",
    "JsonFileStorage",
]
