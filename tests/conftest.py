"""Shared fixtures for fairshare tests."""

from datetime import UTC, datetime, timedelta

import pytest

from fairshare.db import Database
from fairshare.identity import StaticIdentity
from fairshare.service import GroupLocks, LedgerService


class FakeClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(minutes=1)
        return current


@pytest.fixture
def db(tmp_path):
    """Create a temporary database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def clock():
    """Create a deterministic clock."""
    return FakeClock()


@pytest.fixture
def ledger(db, clock):
    """Factory returning a LedgerService that acts as the given member."""
    locks = GroupLocks()

    def _ledger(member_id: str | None) -> LedgerService:
        return LedgerService(db, StaticIdentity(member_id), clock=clock, locks=locks)

    return _ledger


@pytest.fixture
def alice(ledger):
    return ledger("alice")


@pytest.fixture
def bob(ledger):
    return ledger("bob")


@pytest.fixture
def carol(ledger):
    return ledger("carol")


@pytest.fixture
def mallory(ledger):
    """A member of no group."""
    return ledger("mallory")


@pytest.fixture
def flat(alice):
    """A three-member group created by alice."""
    return alice.create_group("Flat 4B", member_ids=["bob", "carol"])
