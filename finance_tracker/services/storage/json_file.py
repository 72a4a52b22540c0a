"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON file is the default backend because:
1. The whole ledger is small (personal use)
2. Users can read, back up and restore it by hand
3. It mirrors the legacy browser storage (one key, one blob)

Writes go to a temporary file in the same directory and are then moved over
the real file, so a crash mid-write never leaves half a ledger behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import get_settings
from finance_tracker.services.storage.interface import (
    CorruptStateError,
    LedgerStorageInterface,
    StorageError,
)


class JsonFileStorage(LedgerStorageInterface):
    """
    Stores the ledger blob as a JSON document on local disk.

    Transient OS errors on write are retried with exponential backoff.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        write_attempts: Optional[int] = None,
    ):
        settings = get_settings().storage
        self._path = Path(path) if path is not None else settings.data_file
        self._write_attempts = write_attempts or settings.write_attempts

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> Optional[dict[str, Any]]:
        """Read and decode the ledger file."""
        if not self._path.exists():
            return None

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CorruptStateError(f"Ledger file is not valid JSON: {self._path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read ledger file {self._path}: {e}")

        if not isinstance(data, dict):
            raise CorruptStateError(
                f"Ledger file must contain a JSON object, got {type(data).__name__}"
            )
        return data

    def save(self, blob: dict[str, Any]) -> None:
        """Atomically replace the ledger file."""
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._write_attempts),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                retry=retry_if_exception_type(OSError),
                reraise=True,
            ):
                with attempt:
                    self._write(blob)
        except OSError as e:
            raise StorageError(f"Failed to save ledger file {self._path}: {e}")

    def _write(self, blob: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(blob, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def clear(self) -> None:
        """Delete the ledger file."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove ledger file {self._path}: {e}")
