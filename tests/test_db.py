"""Tests for the SQLite store."""

import sqlite3
from datetime import UTC, datetime, timedelta

import pytest

from fairshare.db import Database
from fairshare.exceptions import NotFoundError
from fairshare.models import Expense, ExpenseTemplate, Group, SplitPolicy, TemplateItem

T0 = datetime(2025, 1, 1, 12, tzinfo=UTC)


@pytest.fixture
def group(db):
    group = Group(
        name="Cabin",
        member_ids=["alice", "bob"],
        creator_id="alice",
        created_at=T0,
    )
    db.save_group(group)
    return group


def make_expense(group_id: str, minutes: int, settled: bool = False) -> Expense:
    created = T0 + timedelta(minutes=minutes)
    return Expense(
        amount=10.0 + minutes,
        group_id=group_id,
        payer_id="alice",
        created_at=created,
        splits={"alice": 5.0 + minutes / 2, "bob": 5.0 + minutes / 2},
        payments={"alice": 10.0 + minutes},
        settled=settled,
        settled_at=created if settled else None,
    )


class TestGroups:
    """Tests for group rows."""

    def test_round_trip(self, db, group):
        """A saved group reads back identically."""
        assert db.get_group(group.id) == group

    def test_save_updates_in_place(self, db, group):
        """Saving an existing id updates the row."""
        db.save_group(group.model_copy(update={"member_ids": ["alice"]}))

        assert db.get_group(group.id).member_ids == ["alice"]

    def test_missing_group(self, db):
        """Unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            db.get_group("nope")

        assert exc_info.value.entity == "group"

    def test_list_for_member(self, db, group):
        """Membership lookup matches exact member ids only."""
        assert [g.id for g in db.list_groups_for_member("bob")] == [group.id]
        assert db.list_groups_for_member("bo") == []

    def test_delete_cascades_to_expenses(self, db, group):
        """Deleting a group removes its expenses."""
        expense = make_expense(group.id, 1)
        db.create_expense(expense)

        db.delete_group(group.id)

        with pytest.raises(NotFoundError):
            db.get_expense(expense.id)


class TestExpenses:
    """Tests for expense rows."""

    def test_round_trip(self, db, group):
        """Every field survives storage, including custom percentages."""
        expense = make_expense(group.id, 3).model_copy(
            update={
                "split_policy": SplitPolicy.CUSTOM,
                "custom_percentages": {"alice": 50.0, "bob": 50.0},
                "category": "Fuel",
                "description": "Gas",
            }
        )
        db.create_expense(expense)

        assert db.get_expense(expense.id) == expense

    def test_newest_first_with_settled_filter(self, db, group):
        """Listing orders by created_at descending."""
        old = make_expense(group.id, 1, settled=True)
        mid = make_expense(group.id, 2)
        new = make_expense(group.id, 3)
        db.create_expenses([mid, old, new])

        assert [e.id for e in db.list_expenses(group.id)] == [new.id, mid.id, old.id]
        assert [e.id for e in db.list_expenses(group.id, settled=True)] == [old.id]
        assert [e.id for e in db.list_unsettled_expenses(group.id)] == [new.id, mid.id]

    def test_create_expenses_is_all_or_nothing(self, db, group):
        """A duplicate id in the batch leaves nothing written."""
        first = make_expense(group.id, 1)

        with pytest.raises(sqlite3.IntegrityError):
            db.create_expenses([first, first])

        assert db.list_expenses(group.id) == []

    def test_batch_settle(self, db, group):
        """Every listed expense and the group get the same timestamp."""
        expenses = [make_expense(group.id, m) for m in (1, 2)]
        db.create_expenses(expenses)
        at = T0 + timedelta(days=1)

        db.batch_settle(group.id, [e.id for e in expenses], at)

        assert all(e.settled_at == at for e in db.list_expenses(group.id))
        assert db.get_group(group.id).settled_at == at

    def test_batch_settle_rejects_settled_expense(self, db, group):
        """An expense settled since the batch was computed aborts it."""
        open_expense = make_expense(group.id, 1)
        settled = make_expense(group.id, 2, settled=True)
        db.create_expenses([open_expense, settled])

        with pytest.raises(NotFoundError):
            db.batch_settle(group.id, [open_expense.id, settled.id], T0)

        assert db.get_expense(open_expense.id).settled is False
        assert db.get_group(group.id).settled_at is None


class TestTemplates:
    """Tests for template rows."""

    def test_items_keep_order(self, db):
        """Items are stored and returned in their original order."""
        template = ExpenseTemplate(
            name="Weekend",
            creator_id="alice",
            created_at=T0,
            items=[
                TemplateItem(amount=float(n), description=f"Item {n}") for n in (3, 1, 2)
            ],
        )
        db.save_template(template)

        stored = db.get_template(template.id)

        assert [i.description for i in stored.items] == ["Item 3", "Item 1", "Item 2"]
        assert stored == template

    def test_list_includes_shared(self, db):
        """Listing returns own templates plus shared ones."""
        own = ExpenseTemplate(name="Own", creator_id="bob", created_at=T0)
        shared = ExpenseTemplate(
            name="Shared", creator_id="alice", created_at=T0, is_shared=True
        )
        private = ExpenseTemplate(name="Private", creator_id="alice", created_at=T0)
        for template in (own, shared, private):
            db.save_template(template)

        assert {t.id for t in db.list_templates("bob")} == {own.id, shared.id}

    def test_delete_missing(self, db):
        """Deleting an unknown template raises NotFoundError."""
        with pytest.raises(NotFoundError):
            db.delete_template("missing")


def test_reopen_persists(tmp_path):
    """Data written through one connection is visible to the next."""
    path = tmp_path / "ledger.db"
    first = Database(path)
    group = Group(name="Cabin", member_ids=["alice"], creator_id="alice", created_at=T0)
    first.save_group(group)
    first.close()

    second = Database(path)
    try:
        assert second.get_group(group.id) == group
    finally:
        second.close()
