"""
Abstract Storage Interface

DESIGN DECISION: The ledger is persisted as ONE blob, written whole.
A backend only has to know how to read, write and forget that blob.
This allows us to:
1. Keep a JSON file on disk for normal use
2. Use in-memory storage for testing
3. Swap in another backend without touching ledger logic

There is no partial persistence and no transaction spanning two calls:
every mutation is followed by a full save.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger blob storage.

    Any storage implementation must implement these methods.
    All of them are synchronous and blocking.
    """

    @abstractmethod
    def load(self) -> Optional[dict[str, Any]]:
        """
        Read the persisted blob.

        Returns:
            The decoded blob, or None if nothing has been persisted yet

        Raises:
            CorruptStateError: If the blob exists but cannot be decoded
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def save(self, blob: dict[str, Any]) -> None:
        """
        Replace the persisted blob.

        Args:
            blob: JSON-ready state

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """
        Remove the persisted blob. Clearing an empty backend is not an error.

        Raises:
            StorageError: If the blob cannot be removed
        """
        pass

    @abstractmethod
    def exists(self) -> bool:
        """Check whether a blob has been persisted."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptStateError(StorageError):
    """The persisted blob exists but is not a valid ledger."""
    pass
