"""In-memory storage, used by tests and throwaway sessions."""

import copy
from typing import Any, Optional

from finance_tracker.services.storage.interface import LedgerStorageInterface


class InMemoryStorage(LedgerStorageInterface):
    """Keeps a deep copy of the last saved blob."""

    def __init__(self, blob: Optional[dict[str, Any]] = None):
        self._blob = copy.deepcopy(blob) if blob is not None else None
        self.save_count = 0

    def exists(self) -> bool:
        return self._blob is not None

    def load(self) -> Optional[dict[str, Any]]:
        return copy.deepcopy(self._blob)

    def save(self, blob: dict[str, Any]) -> None:
        self._blob = copy.deepcopy(blob)
        self.save_count += 1

    def clear(self) -> None:
        self._blob = None
