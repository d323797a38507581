"""Storage and identity interfaces the ledger depends on.

``fairshare.db.Database`` implements all three stores on SQLite; tests and
other backends can supply their own.
"""

from datetime import datetime
from typing import Protocol

from .models import Expense, ExpenseTemplate, Group


class GroupStore(Protocol):
    def get_group(self, group_id: str) -> Group: ...

    def save_group(self, group: Group) -> None: ...

    def delete_group(self, group_id: str) -> None: ...

    def list_groups_for_member(self, member_id: str) -> list[Group]: ...

    def list_unsettled_expenses(self, group_id: str) -> list[Expense]: ...

    def batch_settle(
        self, group_id: str, expense_ids: list[str], timestamp: datetime
    ) -> None:
        """Settle all expense_ids and stamp the group, all or nothing."""
        ...


class ExpenseStore(Protocol):
    def create_expense(self, expense: Expense) -> None: ...

    def create_expenses(self, expenses: list[Expense]) -> None:
        """Insert several expenses, all or nothing."""
        ...

    def get_expense(self, expense_id: str) -> Expense: ...

    def update_expense(self, expense: Expense) -> None: ...

    def delete_expense(self, expense_id: str) -> None: ...

    def list_expenses(
        self, group_id: str, settled: bool | None = None
    ) -> list[Expense]:
        """Expenses of a group, newest first, optionally filtered by settled flag."""
        ...


class TemplateStore(Protocol):
    def save_template(self, template: ExpenseTemplate) -> None: ...

    def get_template(self, template_id: str) -> ExpenseTemplate: ...

    def list_templates(self, creator_id: str) -> list[ExpenseTemplate]: ...

    def delete_template(self, template_id: str) -> None: ...


class IdentityProvider(Protocol):
    def current_identity(self) -> str:
        """Return the acting member id or raise UnauthenticatedError."""
        ...


class LedgerStore(GroupStore, ExpenseStore, TemplateStore, Protocol):
    """A single backend serving groups, expenses and templates."""
