"""SQLite database operations for fairshare."""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from pydantic import TypeAdapter

from .exceptions import NotFoundError
from .models import Expense, ExpenseTemplate, Group, SplitPolicy, TemplateItem

logger = logging.getLogger(__name__)

_template_items = TypeAdapter(list[TemplateItem])


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Database:
    """SQLite-backed group, expense and template store.

    A single connection is shared between threads; every statement runs
    under ``self._lock`` and multi-statement writes run inside one
    transaction.
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS groups (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                member_ids TEXT NOT NULL,
                creator_id TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                settled INTEGER NOT NULL DEFAULT 0,
                settled_at TIMESTAMP
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
                amount REAL NOT NULL,
                description TEXT,
                payer_id TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                split_policy TEXT NOT NULL,
                splits TEXT NOT NULL,
                payments TEXT NOT NULL DEFAULT '{}',
                custom_percentages TEXT,
                category TEXT,
                settled INTEGER NOT NULL DEFAULT 0,
                settled_at TIMESTAMP
            )
        """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_expenses_group
            ON expenses (group_id, settled, created_at)
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS templates (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                creator_id TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                items TEXT NOT NULL,
                is_shared INTEGER NOT NULL DEFAULT 0
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Group operations
    # ========================================================================

    def save_group(self, group: Group) -> None:
        """Insert or replace a group."""
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT INTO groups (
                    id, name, description, member_ids, creator_id,
                    created_at, settled, settled_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    member_ids = excluded.member_ids,
                    creator_id = excluded.creator_id,
                    settled = excluded.settled,
                    settled_at = excluded.settled_at
                """,
                (
                    group.id,
                    group.name,
                    group.description,
                    json.dumps(group.member_ids),
                    group.creator_id,
                    _ts(group.created_at),
                    int(group.settled),
                    _ts(group.settled_at),
                ),
            )

    def get_group(self, group_id: str) -> Group:
        """Get a group by id."""
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM groups WHERE id = ?", (group_id,)
            ).fetchone()
        if not row:
            raise NotFoundError("group", group_id)
        return self._row_to_group(row)

    def delete_group(self, group_id: str) -> None:
        """Delete a group and, by cascade, its expenses."""
        with self._lock, self.conn:
            cursor = self.conn.execute("DELETE FROM groups WHERE id = ?", (group_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("group", group_id)

    def list_groups_for_member(self, member_id: str) -> list[Group]:
        """Groups the member belongs to, oldest first."""
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT g.* FROM groups g, json_each(g.member_ids) m
                WHERE m.value = ?
                ORDER BY g.created_at
                """,
                (member_id,),
            ).fetchall()
        return [self._row_to_group(row) for row in rows]

    def list_unsettled_expenses(self, group_id: str) -> list[Expense]:
        """Unsettled expenses of a group, newest first."""
        return self.list_expenses(group_id, settled=False)

    def batch_settle(
        self, group_id: str, expense_ids: list[str], timestamp: datetime
    ) -> None:
        """
        Mark expenses settled and stamp the group's settled_at in one transaction.

        Any failure rolls back every row touched so far.
        """
        with self._lock, self.conn:
            cursor = self.conn.cursor()
            for expense_id in expense_ids:
                self._mark_settled(cursor, group_id, expense_id, timestamp)

            cursor.execute(
                "UPDATE groups SET settled_at = ? WHERE id = ?",
                (_ts(timestamp), group_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("group", group_id)

        logger.debug(f"Batch settled {len(expense_ids)} expenses in group {group_id}")

    def _mark_settled(
        self,
        cursor: sqlite3.Cursor,
        group_id: str,
        expense_id: str,
        timestamp: datetime,
    ) -> None:
        cursor.execute(
            """
            UPDATE expenses SET settled = 1, settled_at = ?
            WHERE id = ? AND group_id = ? AND settled = 0
            """,
            (_ts(timestamp), expense_id, group_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(
                "expense",
                expense_id,
                f"Expense {expense_id} is missing or no longer unsettled",
            )

    def _row_to_group(self, row: sqlite3.Row) -> Group:
        return Group(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            member_ids=json.loads(row["member_ids"]),
            creator_id=row["creator_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            settled=bool(row["settled"]),
            settled_at=_parse_ts(row["settled_at"]),
        )

    # ========================================================================
    # Expense operations
    # ========================================================================

    def create_expense(self, expense: Expense) -> None:
        """Insert a new expense."""
        with self._lock, self.conn:
            self._insert_expense(self.conn.cursor(), expense)

    def create_expenses(self, expenses: list[Expense]) -> None:
        """Insert several expenses in one transaction."""
        with self._lock, self.conn:
            cursor = self.conn.cursor()
            for expense in expenses:
                self._insert_expense(cursor, expense)

    def _insert_expense(self, cursor: sqlite3.Cursor, expense: Expense) -> None:
        cursor.execute(
            """
            INSERT INTO expenses (
                id, group_id, amount, description, payer_id, created_at,
                split_policy, splits, payments, custom_percentages,
                category, settled, settled_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._expense_params(expense),
        )

    def get_expense(self, expense_id: str) -> Expense:
        """Get an expense by id."""
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM expenses WHERE id = ?", (expense_id,)
            ).fetchone()
        if not row:
            raise NotFoundError("expense", expense_id)
        return self._row_to_expense(row)

    def update_expense(self, expense: Expense) -> None:
        """Replace every field of an existing expense."""
        params = self._expense_params(expense)
        with self._lock, self.conn:
            cursor = self.conn.execute(
                """
                UPDATE expenses SET
                    group_id = ?, amount = ?, description = ?, payer_id = ?,
                    created_at = ?, split_policy = ?, splits = ?, payments = ?,
                    custom_percentages = ?, category = ?, settled = ?,
                    settled_at = ?
                WHERE id = ?
                """,
                (*params[1:], params[0]),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("expense", expense.id)

    def delete_expense(self, expense_id: str) -> None:
        """Delete an expense."""
        with self._lock, self.conn:
            cursor = self.conn.execute(
                "DELETE FROM expenses WHERE id = ?", (expense_id,)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("expense", expense_id)

    def list_expenses(
        self, group_id: str, settled: bool | None = None
    ) -> list[Expense]:
        """Expenses of a group ordered by created_at descending."""
        query = "SELECT * FROM expenses WHERE group_id = ?"
        params: list[str | int] = [group_id]
        if settled is not None:
            query += " AND settled = ?"
            params.append(int(settled))
        query += " ORDER BY created_at DESC"

        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_expense(row) for row in rows]

    def _expense_params(self, expense: Expense) -> tuple:
        return (
            expense.id,
            expense.group_id,
            expense.amount,
            expense.description,
            expense.payer_id,
            _ts(expense.created_at),
            expense.split_policy.value,
            json.dumps(expense.splits),
            json.dumps(expense.payments),
            (
                json.dumps(expense.custom_percentages)
                if expense.custom_percentages is not None
                else None
            ),
            expense.category,
            int(expense.settled),
            _ts(expense.settled_at),
        )

    def _row_to_expense(self, row: sqlite3.Row) -> Expense:
        return Expense(
            id=row["id"],
            group_id=row["group_id"],
            amount=row["amount"],
            description=row["description"],
            payer_id=row["payer_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            split_policy=SplitPolicy(row["split_policy"]),
            splits=json.loads(row["splits"]),
            payments=json.loads(row["payments"] or "{}"),
            custom_percentages=(
                json.loads(row["custom_percentages"])
                if row["custom_percentages"]
                else None
            ),
            category=row["category"],
            settled=bool(row["settled"]),
            settled_at=_parse_ts(row["settled_at"]),
        )

    # ========================================================================
    # Template operations
    # ========================================================================

    def save_template(self, template: ExpenseTemplate) -> None:
        """Insert or replace a template, including its whole item list."""
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT INTO templates (
                    id, name, description, creator_id, created_at, items, is_shared
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    items = excluded.items,
                    is_shared = excluded.is_shared
                """,
                (
                    template.id,
                    template.name,
                    template.description,
                    template.creator_id,
                    _ts(template.created_at),
                    _template_items.dump_json(template.items).decode(),
                    int(template.is_shared),
                ),
            )

    def get_template(self, template_id: str) -> ExpenseTemplate:
        """Get a template by id."""
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM templates WHERE id = ?", (template_id,)
            ).fetchone()
        if not row:
            raise NotFoundError("template", template_id)
        return self._row_to_template(row)

    def list_templates(self, creator_id: str) -> list[ExpenseTemplate]:
        """Templates created by a member, plus shared ones, newest first."""
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT * FROM templates
                WHERE creator_id = ? OR is_shared = 1
                ORDER BY created_at DESC
                """,
                (creator_id,),
            ).fetchall()
        return [self._row_to_template(row) for row in rows]

    def delete_template(self, template_id: str) -> None:
        """Delete a template."""
        with self._lock, self.conn:
            cursor = self.conn.execute(
                "DELETE FROM templates WHERE id = ?", (template_id,)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("template", template_id)

    def _row_to_template(self, row: sqlite3.Row) -> ExpenseTemplate:
        return ExpenseTemplate(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            creator_id=row["creator_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            items=_template_items.validate_json(row["items"]),
            is_shared=bool(row["is_shared"]),
        )
