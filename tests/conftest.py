"""Pytest configuration and fixtures."""
import os

# Keep test runs off disk and on the in-memory ledger unless a test asks otherwise
os.environ["LOG_FILE"] = ""
os.environ["DATABASE_URL"] = ""

from datetime import datetime, timedelta, timezone

import pytest

from bloodchain.core.config import Settings
from bloodchain.services.coordinator import BloodBankCoordinator
from bloodchain.services.ledger import InMemoryLedger
from bloodchain.services.sql_ledger import SqlAlchemyLedger

T0 = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def names(self):
        return [e.name for e in self.events]

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]


class FlakyLedger(InMemoryLedger):
    """In-memory ledger whose commits can be made to fail by operation name."""

    def __init__(self):
        super().__init__()
        self.fail_on = set()

    def _maybe_fail(self, operation):
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} unavailable")

    def commit_completion(self, *args):
        self._maybe_fail("commit_completion")
        return super().commit_completion(*args)

    def commit_donor_update(self, *args):
        self._maybe_fail("commit_donor_update")
        return super().commit_donor_update(*args)

    def commit_inventory_adjustment(self, *args):
        self._maybe_fail("commit_inventory_adjustment")
        return super().commit_inventory_adjustment(*args)

    def commit_request_transition(self, *args):
        self._maybe_fail("commit_request_transition")
        return super().commit_request_transition(*args)


def make_settings(**overrides) -> Settings:
    values = {"DATABASE_URL": "", "LOG_FILE": ""}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def coordinator(clock, recorder):
    coordinator = BloodBankCoordinator(clock=clock, config=make_settings())
    coordinator.events.subscribe(recorder)
    return coordinator


@pytest.fixture
def flaky_ledger():
    return FlakyLedger()


@pytest.fixture
def flaky_coordinator(clock, recorder, flaky_ledger):
    coordinator = BloodBankCoordinator(ledger=flaky_ledger, clock=clock, config=make_settings())
    coordinator.events.subscribe(recorder)
    return coordinator


@pytest.fixture
def sql_ledger():
    ledger = SqlAlchemyLedger(database_url="sqlite://")
    yield ledger
    ledger.engine.dispose()


@pytest.fixture
def sql_coordinator(clock, recorder, sql_ledger):
    coordinator = BloodBankCoordinator(ledger=sql_ledger, clock=clock, config=make_settings())
    coordinator.events.subscribe(recorder)
    return coordinator
