"""Tests for expense and group settlement."""

import sqlite3
import threading
from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from fairshare.exceptions import (
    AlreadySettledError,
    AlreadyUnsettledError,
    ErrorKind,
    FairshareError,
    NoUnsettledExpensesError,
    PermissionDeniedError,
)
from fairshare.models import Expense, Group
from fairshare.settlement import reopen_group, settle, settle_batch, unsettle

AT = datetime(2025, 3, 2, 9, 30, tzinfo=UTC)


@pytest.fixture
def expense():
    return Expense(amount=90.0, group_id="g1", payer_id="alice", splits={"alice": 90.0})


class TestTransitions:
    """Tests for the pure state transitions."""

    def test_settle_stamps_timestamp(self, expense):
        """Settling returns a copy with settled and settled_at set."""
        settled = settle(expense, AT)

        assert settled.settled is True
        assert settled.settled_at == AT
        assert expense.settled is False

    def test_settle_twice_fails(self, expense):
        """An already settled expense cannot be settled again."""
        with pytest.raises(AlreadySettledError) as exc_info:
            settle(settle(expense, AT), datetime(2025, 4, 1, tzinfo=UTC))

        assert exc_info.value.kind is ErrorKind.ALREADY_SETTLED

    def test_unsettle_clears_timestamp(self, expense):
        """Unsettling clears both fields."""
        reopened = unsettle(settle(expense, AT))

        assert reopened.settled is False
        assert reopened.settled_at is None

    def test_unsettle_open_expense_fails(self, expense):
        """An open expense cannot be unsettled."""
        with pytest.raises(AlreadyUnsettledError):
            unsettle(expense)

    def test_settle_batch_requires_open_expenses(self):
        """A batch with nothing open fails."""
        group = Group(id="g1", name="Trip", member_ids=["alice"], creator_id="alice")

        with pytest.raises(NoUnsettledExpensesError):
            settle_batch(group, [], AT)

    def test_reopen_group_requires_flag(self):
        """Only a group carrying the settled flag can be reopened."""
        group = Group(name="Trip", member_ids=["alice"], creator_id="alice")

        with pytest.raises(AlreadyUnsettledError):
            reopen_group(group)

        reopened = reopen_group(group.model_copy(update={"settled": True}))
        assert reopened.settled is False


class TestSettleExpense:
    """Tests for LedgerService.settle_expense and unsettle_expense."""

    def test_any_member_can_settle(self, flat, alice, bob, db):
        """A member other than the payer may settle; the change is persisted."""
        expense = alice.create_expense_from_policy(flat.id, 90.0)

        settled = bob.settle_expense(expense.id)

        assert settled.settled is True
        assert settled.settled_at is not None
        stored = db.get_expense(expense.id)
        assert stored.settled is True
        assert stored.settled_at == settled.settled_at

    def test_already_settled_keeps_original_timestamp(self, flat, alice, bob, db):
        """A second settle fails and leaves settled_at untouched."""
        expense = alice.create_expense_from_policy(flat.id, 90.0)
        first = alice.settle_expense(expense.id)

        with pytest.raises(AlreadySettledError):
            bob.settle_expense(expense.id)

        assert db.get_expense(expense.id).settled_at == first.settled_at

    def test_unsettle_round_trip(self, flat, alice, carol, db):
        """Unsettling reopens the expense in storage."""
        expense = alice.create_expense_from_policy(flat.id, 90.0)
        alice.settle_expense(expense.id)

        reopened = carol.unsettle_expense(expense.id)

        assert reopened.settled is False
        assert db.get_expense(expense.id).settled_at is None

    def test_unsettle_does_not_touch_group(self, flat, alice, db):
        """Reopening an expense leaves the group's fields alone."""
        expense = alice.create_expense_from_policy(flat.id, 90.0)
        alice.settle_group(flat.id)
        before = db.get_group(flat.id)

        alice.unsettle_expense(expense.id)

        assert db.get_group(flat.id) == before

    def test_non_member_denied(self, flat, alice, mallory, db):
        """Someone outside the group cannot settle its expenses."""
        expense = alice.create_expense_from_policy(flat.id, 90.0)

        with pytest.raises(PermissionDeniedError):
            mallory.settle_expense(expense.id)

        assert db.get_expense(expense.id).settled is False


class TestSettleGroup:
    """Tests for LedgerService.settle_group."""

    def test_settles_every_open_expense_at_one_timestamp(self, flat, alice, bob, db):
        """All open expenses share the batch timestamp; the group records it too."""
        for amount in (90.0, 30.0, 12.5):
            alice.create_expense_from_policy(flat.id, amount)

        outcome = bob.settle_group(flat.id)

        assert len(outcome.expenses) == 3
        assert outcome.total_amount == pytest.approx(132.5)
        stored = db.list_expenses(flat.id)
        assert all(e.settled for e in stored)
        assert {e.settled_at for e in stored} == {outcome.settled_at}
        assert db.get_group(flat.id).settled_at == outcome.settled_at

    def test_already_settled_expenses_keep_their_timestamp(self, flat, alice, db):
        """Only open expenses join the batch."""
        early = alice.create_expense_from_policy(flat.id, 90.0)
        early_settled = alice.settle_expense(early.id)
        alice.create_expense_from_policy(flat.id, 30.0)

        outcome = alice.settle_group(flat.id)

        assert len(outcome.expense_ids) == 1
        assert early.id not in outcome.expense_ids
        assert db.get_expense(early.id).settled_at == early_settled.settled_at

    def test_group_settled_flag_unchanged(self, flat, alice, db):
        """Settling a group stamps settled_at but leaves the legacy flag."""
        alice.create_expense_from_policy(flat.id, 90.0)

        outcome = alice.settle_group(flat.id)

        assert outcome.group.settled is False
        assert db.get_group(flat.id).settled is False

    def test_nothing_open_raises_and_changes_nothing(self, flat, alice, db):
        """Zero open expenses fails without touching the group."""
        expense = alice.create_expense_from_policy(flat.id, 90.0)
        alice.settle_expense(expense.id)
        before = db.get_group(flat.id)

        with pytest.raises(NoUnsettledExpensesError) as exc_info:
            alice.settle_group(flat.id)

        assert exc_info.value.kind is ErrorKind.NO_UNSETTLED_EXPENSES
        assert db.get_group(flat.id) == before

    def test_mid_batch_failure_rolls_back(self, flat, alice, db):
        """If the store fails halfway, no expense is left settled."""
        for amount in (90.0, 30.0, 12.5):
            alice.create_expense_from_policy(flat.id, amount)
        real_mark = db._mark_settled
        calls = []

        def flaky_mark(*args):
            calls.append(args)
            if len(calls) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return real_mark(*args)

        with patch.object(db, "_mark_settled", side_effect=flaky_mark):
            with pytest.raises(sqlite3.OperationalError):
                alice.settle_group(flat.id)

        assert len(calls) == 2
        assert not any(e.settled for e in db.list_expenses(flat.id))
        assert db.get_group(flat.id).settled_at is None

    def test_non_member_denied(self, flat, alice, mallory, db):
        """Someone outside the group cannot settle it."""
        alice.create_expense_from_policy(flat.id, 90.0)

        with pytest.raises(PermissionDeniedError):
            mallory.settle_group(flat.id)

        assert len(db.list_expenses(flat.id, settled=False)) == 1


class TestUnsettleGroup:
    """Tests for LedgerService.unsettle_group."""

    def test_clears_flag_keeps_timestamp(self, flat, alice, db):
        """Only the legacy flag is cleared."""
        stamped = flat.model_copy(update={"settled": True, "settled_at": AT})
        db.save_group(stamped)

        reopened = alice.unsettle_group(flat.id)

        assert reopened.settled is False
        assert db.get_group(flat.id).settled is False
        assert db.get_group(flat.id).settled_at == AT

    def test_already_unsettled(self, flat, alice):
        """A group without the flag cannot be unsettled."""
        with pytest.raises(AlreadyUnsettledError):
            alice.unsettle_group(flat.id)


class TestConcurrentSettlement:
    """Settling the same expense from two paths at once."""

    def test_exactly_one_settle_wins(self, flat, alice, bob, db):
        """settle_expense racing settle_group: one succeeds, the other fails cleanly."""
        expense = alice.create_expense_from_policy(flat.id, 90.0)
        barrier = threading.Barrier(2)
        results: list[str] = []
        errors: list[FairshareError] = []

        def run(action):
            barrier.wait()
            try:
                action()
                results.append("ok")
            except (AlreadySettledError, NoUnsettledExpensesError) as e:
                errors.append(e)

        threads = [
            threading.Thread(target=run, args=(lambda: alice.settle_expense(expense.id),)),
            threading.Thread(target=run, args=(lambda: bob.settle_group(flat.id),)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert results == ["ok"]
        assert len(errors) == 1
        stored = db.get_expense(expense.id)
        assert stored.settled is True
        assert stored.settled_at is not None
