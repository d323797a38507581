"""Settlement state transitions for expenses and groups.

These functions only compute the next state. They never touch storage;
``LedgerService`` persists the result and hands it back to the caller once
the store confirms the write.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from .exceptions import (
    AlreadySettledError,
    AlreadyUnsettledError,
    NoUnsettledExpensesError,
    PermissionDeniedError,
)
from .models import Expense, Group


@dataclass(frozen=True)
class GroupSettlement:
    """The outcome of settling every open expense in a group."""

    group: Group
    expenses: list[Expense]
    settled_at: datetime

    @property
    def expense_ids(self) -> list[str]:
        return [expense.id for expense in self.expenses]

    @property
    def total_amount(self) -> float:
        return sum(expense.amount for expense in self.expenses)


def require_member(group: Group, member_id: str, action: str) -> None:
    """Raise PermissionDeniedError unless member_id belongs to the group."""
    if not group.has_member(member_id):
        raise PermissionDeniedError(
            f"You must be a member of group '{group.name}' to {action}"
        )


def settle(expense: Expense, at: datetime) -> Expense:
    """Return a settled copy of an unsettled expense."""
    if expense.settled:
        raise AlreadySettledError(expense.id)
    return expense.model_copy(update={"settled": True, "settled_at": at})


def unsettle(expense: Expense) -> Expense:
    """Return an unsettled copy of a settled expense."""
    if not expense.settled:
        raise AlreadyUnsettledError("expense", expense.id)
    return expense.model_copy(update={"settled": False, "settled_at": None})


def settle_batch(
    group: Group, unsettled: Sequence[Expense], at: datetime
) -> GroupSettlement:
    """
    Settle every open expense of a group at a single timestamp.

    The group's own ``settled`` flag is left as it is; only ``settled_at``
    records the batch.

    Raises:
        NoUnsettledExpensesError: If there is nothing open to settle
    """
    open_expenses = [e for e in unsettled if not e.settled and e.group_id == group.id]
    if not open_expenses:
        raise NoUnsettledExpensesError(group.id)

    return GroupSettlement(
        group=group.model_copy(update={"settled_at": at}),
        expenses=[settle(expense, at) for expense in open_expenses],
        settled_at=at,
    )


def reopen_group(group: Group) -> Group:
    """Return a copy of the group with its settled flag cleared."""
    if not group.settled:
        raise AlreadyUnsettledError("group", group.id)
    return group.model_copy(update={"settled": False})
