"""Split calculation: divide an expense amount among group members.

All functions here are pure. Amounts are floats; callers compare totals
with ``SPLIT_TOLERANCE`` rather than exact equality, since an equal split
of e.g. 100 among 3 members does not sum back to exactly 100.
"""

import math
from collections.abc import Mapping, Sequence

from .exceptions import EmptyMembershipError, InvalidAmountError, InvalidSplitError
from .models import SplitPolicy

SPLIT_TOLERANCE = 0.01
PERCENT_TOTAL = 100.0


def validate_percentages(
    percentages: Mapping[str, float], tolerance: float = SPLIT_TOLERANCE
) -> bool:
    """Check that percentages sum to 100 within tolerance."""
    return abs(sum(percentages.values()) - PERCENT_TOTAL) < tolerance


def splits_from_percentages(
    percentages: Mapping[str, float], amount: float
) -> dict[str, float]:
    """Convert a percentage map into per-member amounts."""
    return {
        member_id: amount * percentage / PERCENT_TOTAL
        for member_id, percentage in percentages.items()
    }


def is_valid_amount(amount: float) -> bool:
    """Check that an amount is a finite number greater than zero."""
    return math.isfinite(amount) and amount > 0


def check_custom_percentages(
    percentages: Mapping[str, float] | None,
    members: Sequence[str],
    tolerance: float = SPLIT_TOLERANCE,
) -> None:
    """
    Validate custom percentages against a membership.

    Keys must match the members exactly, and values must sum to 100.

    Raises:
        InvalidSplitError: If any rule is violated
    """
    if not percentages:
        raise InvalidSplitError("Custom split requires percentages for every member")

    member_set = set(members)
    unknown = [key for key in percentages if key not in member_set]
    if unknown:
        raise InvalidSplitError(
            f"Custom split percentages reference non-members: {', '.join(sorted(unknown))}"
        )

    missing = [member_id for member_id in members if member_id not in percentages]
    if missing:
        raise InvalidSplitError(
            f"Custom split percentages are missing members: {', '.join(missing)}"
        )

    total = sum(percentages.values())
    if not validate_percentages(percentages, tolerance):
        raise InvalidSplitError(
            f"Custom split percentages must sum to 100% (got {total:g}%)"
        )


def compute_splits(
    amount: float,
    policy: SplitPolicy,
    members: Sequence[str],
    payer_id: str,
    percentages: Mapping[str, float] | None = None,
) -> dict[str, float]:
    """
    Divide an expense amount among members according to a split policy.

    Args:
        amount: Expense amount, must be positive
        policy: The split policy to apply
        members: Ordered group membership
        payer_id: Member who paid; must be in members
        percentages: Member -> percent map, required for CUSTOM

    Returns:
        Member -> amount owed for this expense

    Raises:
        InvalidAmountError: If amount is not a finite positive number
        EmptyMembershipError: If members is empty
        InvalidSplitError: If the payer is not a member or percentages are invalid
    """
    policy = SplitPolicy(policy)
    if not is_valid_amount(amount):
        raise InvalidAmountError(amount)
    if not members:
        raise EmptyMembershipError()
    if payer_id not in members:
        raise InvalidSplitError(f"Payer {payer_id} is not a member of the group")

    if policy is SplitPolicy.EQUAL:
        share = amount / len(members)
        return {member_id: share for member_id in members}

    if policy is SplitPolicy.PAYER_OWES_ALL:
        return {payer_id: amount}

    if policy is SplitPolicy.PAYER_OWED_ALL:
        others = [member_id for member_id in members if member_id != payer_id]
        splits = {payer_id: 0.0}
        if not others:
            # Sole member: nobody to redistribute to, the amount is dropped.
            return splits
        share = amount / len(others)
        for member_id in others:
            splits[member_id] = share
        return splits

    if not percentages:
        raise InvalidSplitError("Custom split requires percentages for every member")
    check_custom_percentages(percentages, members)
    # Keep membership order in the result.
    ordered = {member_id: percentages[member_id] for member_id in members}
    return splits_from_percentages(ordered, amount)
