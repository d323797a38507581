"""Template validation and expansion into concrete expenses."""

import logging
from collections.abc import Sequence
from datetime import datetime

from .exceptions import InvalidAmountError, InvalidSplitError, InvalidTemplateError
from .models import Expense, ExpenseTemplate, Group, SplitPolicy, TemplateItem
from .splits import (
    check_custom_percentages,
    compute_splits,
    is_valid_amount,
    validate_percentages,
)

logger = logging.getLogger(__name__)


def validate_item(
    item: TemplateItem, position: int, members: Sequence[str] | None = None
) -> None:
    """
    Validate a single template item.

    Args:
        item: The template item
        position: 1-based position, used in error messages
        members: Current member ids of the target group. Without a group
            (when a template is saved) custom percentages are only checked
            to sum to 100.
    """
    if not item.description.strip():
        raise InvalidTemplateError(f"Item {position}: Description cannot be empty")
    if not is_valid_amount(item.amount):
        raise InvalidAmountError(
            item.amount, f"Item {position}: Amount must be a finite number greater than zero"
        )
    if item.split_policy is not SplitPolicy.CUSTOM:
        return

    if members is None:
        if not item.custom_percentages or not validate_percentages(
            item.custom_percentages
        ):
            raise InvalidSplitError(
                f"Item {position}: Custom split percentages must sum to 100%"
            )
        return

    try:
        check_custom_percentages(item.custom_percentages, members)
    except InvalidSplitError as e:
        raise InvalidSplitError(f"Item {position}: {e.message}") from e


def validate_template(
    template: ExpenseTemplate, members: Sequence[str] | None = None
) -> None:
    """
    Validate a template; the first failure is raised.

    Raises:
        InvalidTemplateError: Empty name, no items, or a blank item description
        InvalidAmountError: An item amount is not positive
        InvalidSplitError: An item's custom percentages don't fit the membership
    """
    if not template.name.strip():
        raise InvalidTemplateError("Template name cannot be empty")
    if not template.items:
        raise InvalidTemplateError("Template must contain at least one expense item")

    for position, item in enumerate(template.items, start=1):
        validate_item(item, position, members)


def expand_template(
    template: ExpenseTemplate,
    group: Group,
    acting_id: str,
    now: datetime,
) -> list[Expense]:
    """
    Turn every template item into an expense for the target group.

    The acting identity becomes the payer of each expense. Nothing is
    produced unless the whole template validates.

    Returns:
        Expenses in template item order
    """
    validate_template(template, group.member_ids)

    expenses = []
    for item in template.items:
        splits = compute_splits(
            amount=item.amount,
            policy=item.split_policy,
            members=group.member_ids,
            payer_id=acting_id,
            percentages=item.custom_percentages,
        )
        expenses.append(
            Expense(
                amount=item.amount,
                description=item.description,
                group_id=group.id,
                payer_id=acting_id,
                created_at=now,
                split_policy=item.split_policy,
                splits=splits,
                payments={acting_id: item.amount},
                custom_percentages=item.custom_percentages,
                category=item.category,
            )
        )

    logger.debug(
        f"Expanded template '{template.name}' into {len(expenses)} expenses "
        f"for group {group.id}"
    )
    return expenses
