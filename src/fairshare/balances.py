"""Balance aggregation over a group's expense history.

A balance is ``paid - owed`` summed over expenses: positive means the member
is owed money, negative means the member owes money.
"""

import logging
from collections.abc import Iterable, Sequence

from .models import Expense, SplitPolicy

logger = logging.getLogger(__name__)


def legacy_payments(expense: Expense) -> dict[str, float]:
    """
    Reconstruct a payment ledger for an expense recorded without one.

    Older records only stored splits. For those, the payer is assumed to have
    paid the full amount, except under PAYER_OWES_ALL where the payer owes
    rather than paid.
    """
    if expense.split_policy is SplitPolicy.PAYER_OWES_ALL:
        return {}
    return {expense.payer_id: expense.amount}


def paid_by(expense: Expense, member_id: str) -> float:
    """Amount a member contributed toward an expense."""
    if member_id in expense.payments:
        return expense.payments[member_id]
    if member_id != expense.payer_id:
        return 0.0
    return legacy_payments(expense).get(member_id, 0.0)


def owed_by(expense: Expense, member_id: str) -> float:
    """Amount a member is responsible for in an expense."""
    return expense.splits.get(member_id, 0.0)


def _included(expenses: Iterable[Expense], include_settled: bool) -> list[Expense]:
    return [e for e in expenses if include_settled or not e.settled]


def compute_balance(
    expenses: Iterable[Expense], member_id: str, include_settled: bool = True
) -> float:
    """
    Compute one member's net balance across a set of expenses.

    Args:
        expenses: The group's expenses
        member_id: Member whose balance is requested
        include_settled: When False, settled expenses are skipped

    Returns:
        Signed balance (positive = owed money, negative = owes money)
    """
    return sum(
        paid_by(expense, member_id) - owed_by(expense, member_id)
        for expense in _included(expenses, include_settled)
    )


def compute_balances(
    expenses: Iterable[Expense],
    member_ids: Sequence[str],
    include_settled: bool = True,
) -> dict[str, float]:
    """
    Compute net balances for every member of a group.

    Members that appear in an expense but are no longer in ``member_ids``
    (e.g. someone who left the group) are included as well, so the totals
    still reconcile.
    """
    included = _included(expenses, include_settled)

    members = list(member_ids)
    for expense in included:
        for member_id in [expense.payer_id, *expense.splits, *expense.payments]:
            if member_id not in members:
                members.append(member_id)

    balances = {m: compute_balance(included, m) for m in members}

    drift = sum(balances.values())
    if abs(drift) > 0.01:
        logger.debug(f"Balances do not net to zero (drift {drift:.2f})")

    return balances
