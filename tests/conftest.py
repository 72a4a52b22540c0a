"""
Shared fixtures.

Every test runs against in-memory storage and a fixed clock, so balances,
month filters and due dates are deterministic.
"""

from datetime import datetime

import pytest

from finance_tracker.activity import ActivityLogger
from finance_tracker.config import LedgerSettings
from finance_tracker.engine import ReconciliationEngine
from finance_tracker.metrics import MetricsCalculator
from finance_tracker.services.storage import InMemoryStorage, StorageError
from finance_tracker.store import LedgerStore

NOW = datetime(2025, 3, 15, 10, 0)


class FixedClock:
    """Callable clock that tests can move."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FailingStorage(InMemoryStorage):
    """Accepts loads but refuses every save once armed."""

    def __init__(self, blob=None):
        super().__init__(blob)
        self.fail = False

    def save(self, blob):
        if self.fail:
            raise StorageError("disk full")
        super().save(blob)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def store(storage, clock):
    store = LedgerStore(storage, activity_logger=ActivityLogger(), clock=clock)
    store.load()
    return store


@pytest.fixture
def metrics(store, ledger_settings, clock):
    return MetricsCalculator(store, ledger_settings, clock)


@pytest.fixture
def engine(store, ledger_settings, metrics, clock):
    return ReconciliationEngine(
        store,
        settings=ledger_settings,
        activity_logger=ActivityLogger(),
        metrics=metrics,
        clock=clock,
    )


@pytest.fixture
def account(engine):
    """A bank account with a zero opening balance."""
    return engine.create_account("Banco Uno", "B1")
