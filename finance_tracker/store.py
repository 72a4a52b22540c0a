"""
Ledger Store

Owns the canonical collections (accounts, movements, debts, savings goals,
subscriptions, budgets) and their persistence lifecycle.

DESIGN DECISION: The store is an explicit object handed to the engine and
the metrics calculator by the composition root. There is no module-level
state: two stores over two backends never interfere.

Persistence is all-or-nothing:
- load() replaces the in-memory state with the persisted blob
- save() writes the entire state
- reset() restores the empty state and clears the backend
The store never mutates balances itself; that is the engine's job.
"""

import csv
import json
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from finance_tracker.activity import ActivityLogger
from finance_tracker.config import get_settings
from finance_tracker.errors import CorruptImportError
from finance_tracker.models.activity import ActivityEventType
from finance_tracker.models.ledger import (
    Account,
    Debt,
    LedgerState,
    Movement,
    SavingsGoal,
    Subscription,
)
from finance_tracker.services.storage import (
    CorruptStateError,
    LedgerStorageInterface,
    StorageError,
)

BACKUP_PREFIX = "finance_backup_"

CSV_COLUMNS = [
    "id",
    "timestamp",
    "description",
    "direction",
    "amount",
    "payment_method",
    "category",
]


class LedgerStore:
    """
    In-memory ledger state bound to one storage backend.

    Usage:
        store = LedgerStore(JsonFileStorage())
        store.load()
        ...mutate through ReconciliationEngine...
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        activity_logger: Optional[ActivityLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._activity = activity_logger or ActivityLogger()
        self._clock = clock or datetime.now
        self._state = LedgerState()

    @property
    def state(self) -> LedgerState:
        return self._state

    # -------------------------------------------------------------------------
    # Persistence lifecycle
    # -------------------------------------------------------------------------

    def load(self) -> LedgerState:
        """
        Replace the in-memory state with the persisted blob.

        Missing top-level collections are filled with empty defaults.
        An empty backend yields the empty state.

        Raises:
            CorruptStateError: If the blob does not describe a valid ledger
        """
        blob = self._storage.load()
        if blob is None:
            self._state = LedgerState()
        else:
            try:
                self._state = LedgerState.model_validate(blob)
            except ValidationError as e:
                self._activity.log_storage_error("load", str(e))
                raise CorruptStateError(f"Persisted ledger is invalid: {e}")

        self._activity.log_state(
            ActivityEventType.STATE_LOADED,
            "Ledger loaded",
            details=self._counts(),
        )
        return self._state

    def save(self) -> None:
        """Write the entire state to the backend."""
        try:
            self._storage.save(self._state.to_blob())
        except StorageError as e:
            self._activity.log_storage_error("save", str(e))
            raise

    def reset(self) -> None:
        """Restore the empty default state and clear persisted storage."""
        self._storage.clear()
        self._state = LedgerState()
        self._activity.log_state(ActivityEventType.STATE_RESET, "Ledger reset to empty state")

    def snapshot(self) -> LedgerState:
        """Deep copy of the current state."""
        return self._state.model_copy(deep=True)

    def restore(self, snapshot: LedgerState) -> None:
        """Put back a state taken with snapshot(). Does not save."""
        self._state = snapshot

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self._state.accounts if a.id == account_id), None)

    def get_movement(self, movement_id: str) -> Optional[Movement]:
        return next((m for m in self._state.movements if m.id == movement_id), None)

    def get_debt(self, debt_id: str) -> Optional[Debt]:
        return next((d for d in self._state.debts if d.id == debt_id), None)

    def get_savings_goal(self, goal_id: str) -> Optional[SavingsGoal]:
        return next((g for g in self._state.savings_goals if g.id == goal_id), None)

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return next(
            (s for s in self._state.subscriptions if s.id == subscription_id),
            None,
        )

    def movements_for(self, payment_method: str) -> list[Movement]:
        """All movements charged to an account id or to cash."""
        return [m for m in self._state.movements if m.payment_method == payment_method]

    def linked_movements(self, record_id: str) -> list[Movement]:
        """Movements generated for a debt or savings goal."""
        return [m for m in self._state.movements if m.linked_id == record_id]

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_json(self) -> str:
        """The full state as an indented JSON document."""
        return json.dumps(self._state.to_blob(), indent=2, ensure_ascii=False)

    def backup_filename(self, today: Optional[date] = None) -> str:
        today = today or self._clock().date()
        return f"{BACKUP_PREFIX}{today.isoformat()}.json"

    def export_to_file(
        self,
        directory: Optional[Path] = None,
        today: Optional[date] = None,
    ) -> Path:
        """
        Write a dated backup into a directory.

        Without a directory the configured export_dir is used.

        Returns:
            Path of the written backup
        """
        if directory is None:
            directory = get_settings().storage.export_dir
        directory = Path(directory)
        path = directory / self.backup_filename(today)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_text(self.export_json() + "\n", encoding="utf-8")
        except OSError as e:
            self._activity.log_storage_error("export", str(e))
            raise StorageError(f"Failed to write backup {path}: {e}")

        self._activity.log_state(
            ActivityEventType.STATE_EXPORTED,
            f"Backup written to {path.name}",
            details={"path": str(path), **self._counts()},
        )
        return path

    def export_movements_csv(self, output_path: Path, delimiter: str = ",") -> int:
        """
        Write the movement ledger as CSV, newest first.

        Returns:
            Number of movements written
        """
        movements = sorted(self._state.movements, key=lambda m: m.timestamp, reverse=True)
        try:
            with open(output_path, "w", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, delimiter=delimiter)
                writer.writeheader()
                for mov in movements:
                    writer.writerow({
                        "id": mov.id,
                        "timestamp": mov.timestamp.isoformat(),
                        "description": mov.description,
                        "direction": mov.direction.value,
                        "amount": str(mov.amount),
                        "payment_method": mov.payment_method,
                        "category": mov.category.value,
                    })
        except OSError as e:
            raise StorageError(f"Failed to write CSV {output_path}: {e}")
        return len(movements)

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    @staticmethod
    def parse_backup(text: str) -> LedgerState:
        """
        Validate an import document without touching any store.

        A backup must carry a PIN credential, an accounts collection and a
        movements collection, and must validate as a full ledger.

        Raises:
            CorruptImportError: If any of the above does not hold
        """
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise CorruptImportError(f"Backup is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise CorruptImportError("Backup must be a JSON object")
        if not data.get("pin"):
            raise CorruptImportError("Backup has no PIN credential")

        accounts = data.get("cuentas", data.get("accounts"))
        if not isinstance(accounts, list):
            raise CorruptImportError("Backup has no accounts collection")
        if not isinstance(data.get("movimientos"), list):
            raise CorruptImportError("Backup has no movements collection")

        try:
            return LedgerState.model_validate(data)
        except ValidationError as e:
            raise CorruptImportError(f"Backup does not describe a valid ledger: {e}")

    def import_json(self, text: str) -> LedgerState:
        """
        Fully replace in-memory and persisted state with a backup.

        Nothing is merged. If validation or the save fails, the current
        state is left untouched.
        """
        try:
            new_state = self.parse_backup(text)
        except CorruptImportError as e:
            self._activity.log_import_rejected(str(e))
            raise

        previous = self._state
        self._state = new_state
        try:
            self.save()
        except StorageError:
            self._state = previous
            raise

        self._activity.log_state(
            ActivityEventType.STATE_IMPORTED,
            "Ledger replaced from backup",
            details=self._counts(),
        )
        return self._state

    def _counts(self) -> dict[str, int]:
        return {
            "accounts": len(self._state.accounts),
            "movements": len(self._state.movements),
            "debts": len(self._state.debts),
            "savings_goals": len(self._state.savings_goals),
            "subscriptions": len(self._state.subscriptions),
        }
