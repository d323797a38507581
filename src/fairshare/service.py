"""Service layer that composes the split, balance, settlement and template logic.

Every mutating command follows the same pipeline: authorize, compute the
next state with the pure modules, persist it, and only then return it. A
failed write leaves nothing for the caller to roll back.
"""

import logging
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from .balances import compute_balance, compute_balances, legacy_payments
from .exceptions import (
    FairshareError,
    InvalidInputError,
    InvalidSplitError,
    PermissionDeniedError,
)
from .models import (
    Expense,
    ExpenseRecord,
    ExpenseTemplate,
    Group,
    SplitPolicy,
    TemplateItem,
    utcnow,
)
from .settlement import (
    GroupSettlement,
    reopen_group,
    require_member,
    settle,
    settle_batch,
    unsettle,
)
from .splits import SPLIT_TOLERANCE, compute_splits
from .stores import IdentityProvider, LedgerStore
from .templates import expand_template, validate_template

logger = logging.getLogger(__name__)


@dataclass
class _GroupLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class GroupLocks:
    """One exclusive writer per group id.

    An entry lives only while some thread holds or waits for it, so the
    table stays as small as the number of groups being written to.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, _GroupLock] = {}

    @property
    def active(self) -> int:
        """Number of group ids currently held or waited on."""
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, group_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(group_id, _GroupLock())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if not entry.holders:
                    del self._locks[group_id]


class LedgerService:
    """Commands and queries over groups, expenses and templates."""

    def __init__(
        self,
        store: LedgerStore,
        identity: IdentityProvider,
        clock: Callable[[], datetime] = utcnow,
        tolerance: float = SPLIT_TOLERANCE,
        locks: GroupLocks | None = None,
    ):
        """Initialize the ledger service.

        Services that share a store within one process should share
        ``locks`` as well.
        """
        self.store = store
        self.identity = identity
        self.clock = clock
        self.tolerance = tolerance
        self.locks = locks or GroupLocks()

    def _actor(self) -> str:
        return self.identity.current_identity()

    def _group_for(self, group_id: str, actor: str, action: str) -> Group:
        group = self.store.get_group(group_id)
        require_member(group, actor, action)
        return group

    def _require_editor(self, expense: Expense, group: Group, actor: str, action: str):
        if actor not in (expense.payer_id, group.creator_id):
            raise PermissionDeniedError(
                f"Only the expense payer or the group creator can {action} this expense"
            )

    def _check_split_total(self, expense: Expense) -> None:
        sole_payer_owed = (
            expense.split_policy is SplitPolicy.PAYER_OWED_ALL
            and set(expense.splits) == {expense.payer_id}
        )
        if sole_payer_owed:
            return
        if abs(expense.split_total - expense.amount) > self.tolerance:
            raise InvalidSplitError(
                f"Splits total {expense.split_total:.2f} does not match "
                f"amount {expense.amount:.2f}"
            )

    # ========================================================================
    # Groups
    # ========================================================================

    def create_group(
        self,
        name: str,
        description: str | None = None,
        member_ids: Sequence[str] = (),
    ) -> Group:
        """
        Create a group with the acting member as creator and first member.

        Args:
            name: Group name
            description: Optional description
            member_ids: Additional members to add right away

        Returns:
            The persisted group
        """
        actor = self._actor()
        if not name.strip():
            raise InvalidInputError("Group name cannot be empty")

        members = [actor]
        for member_id in member_ids:
            if member_id not in members:
                members.append(member_id)

        group = Group(
            name=name.strip(),
            description=description,
            member_ids=members,
            creator_id=actor,
            created_at=self.clock(),
        )
        self.store.save_group(group)

        logger.info(f"Created group '{group.name}' ({group.id}) with {len(members)} members")
        return group

    def get_group(self, group_id: str) -> Group:
        """Get a group the acting member belongs to."""
        return self._group_for(group_id, self._actor(), "view it")

    def list_groups(self) -> list[Group]:
        """Groups the acting member belongs to."""
        return self.store.list_groups_for_member(self._actor())

    def join_group(self, group_id: str) -> Group:
        """Add the acting member to a group; joining twice is a no-op."""
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self.store.get_group(group_id)
            if group.has_member(actor):
                return group
            updated = group.model_copy(update={"member_ids": [*group.member_ids, actor]})
            self.store.save_group(updated)

        logger.info(f"{actor} joined group {group_id}")
        return updated

    def add_member(self, group_id: str, member_id: str) -> Group:
        """Add a member. Only the creator may add others; anyone may add themselves."""
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self.store.get_group(group_id)
            if actor != group.creator_id and actor != member_id:
                raise PermissionDeniedError(
                    "Only the group creator can add members, or users can add themselves"
                )
            if group.has_member(member_id):
                return group
            updated = group.model_copy(
                update={"member_ids": [*group.member_ids, member_id]}
            )
            self.store.save_group(updated)

        logger.info(f"Added {member_id} to group {group_id}")
        return updated

    def remove_member(self, group_id: str, member_id: str) -> Group:
        """Remove a member. Creator only; the creator cannot be removed."""
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self.store.get_group(group_id)
            if actor != group.creator_id:
                raise PermissionDeniedError("Only the group creator can remove members")
            if member_id == group.creator_id:
                raise PermissionDeniedError("The group creator cannot be removed")
            if not group.has_member(member_id):
                return group
            updated = group.model_copy(
                update={"member_ids": [m for m in group.member_ids if m != member_id]}
            )
            self.store.save_group(updated)

        logger.info(f"Removed {member_id} from group {group_id}")
        return updated

    def leave_group(self, group_id: str) -> Group | None:
        """
        Remove the acting member from a group.

        The creator may only leave once everyone else is gone; the last
        member leaving deletes the group.

        Returns:
            The updated group, or None if it was deleted
        """
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self._group_for(group_id, actor, "leave it")
            if group.creator_id == actor and len(group.member_ids) > 1:
                raise PermissionDeniedError(
                    "As the group creator, you must transfer ownership or delete the group"
                )
            if len(group.member_ids) <= 1:
                self.store.delete_group(group_id)
                logger.info(f"Last member left; deleted group {group_id}")
                return None

            updated = group.model_copy(
                update={"member_ids": [m for m in group.member_ids if m != actor]}
            )
            self.store.save_group(updated)

        logger.info(f"{actor} left group {group_id}")
        return updated

    def rename_group(self, group_id: str, name: str) -> Group:
        """Rename a group. Creator only."""
        actor = self._actor()
        if not name.strip():
            raise InvalidInputError("Group name cannot be empty")
        with self.locks.hold(group_id):
            group = self.store.get_group(group_id)
            if actor != group.creator_id:
                raise PermissionDeniedError("Only the group creator can rename the group")
            updated = group.model_copy(update={"name": name.strip()})
            self.store.save_group(updated)

        logger.info(f"Renamed group {group_id} to '{updated.name}'")
        return updated

    def delete_group(self, group_id: str) -> None:
        """Delete a group and its expenses. Creator only."""
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self._group_for(group_id, actor, "delete it")
            if group.creator_id != actor:
                raise PermissionDeniedError("Only the group creator can delete the group")
            self.store.delete_group(group_id)

        logger.info(f"Deleted group {group_id}")

    # ========================================================================
    # Expenses
    # ========================================================================

    def create_expense_from_policy(
        self,
        group_id: str,
        amount: float,
        policy: SplitPolicy = SplitPolicy.EQUAL,
        description: str | None = None,
        percentages: Mapping[str, float] | None = None,
        payments: Mapping[str, float] | None = None,
        category: str | None = None,
        settled: bool = False,
        created_at: datetime | None = None,
    ) -> Expense:
        """
        Split an amount under a policy and record it as a new expense.

        The acting member is the payer. Without an explicit payment ledger
        the payer is recorded as having paid the full amount.

        Returns:
            The persisted expense
        """
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self._group_for(group_id, actor, "add expenses")
            expense = self._build_expense(
                group,
                actor,
                ExpenseRecord(
                    amount=amount,
                    split_policy=policy,
                    description=description,
                    custom_percentages=percentages,
                    payments=payments,
                    category=category,
                    settled=settled,
                    created_at=created_at,
                ),
            )
            self.store.create_expense(expense)

        logger.info(
            f"Created expense {expense.id} ({expense.split_policy.value}, {amount:.2f}) "
            f"in group {group_id}"
        )
        return expense

    def _build_expense(self, group: Group, actor: str, record: ExpenseRecord) -> Expense:
        splits = compute_splits(
            amount=record.amount,
            policy=record.split_policy,
            members=group.member_ids,
            payer_id=actor,
            percentages=record.custom_percentages,
        )
        now = self.clock()
        policy = record.split_policy
        expense = Expense(
            amount=record.amount,
            description=record.description or None,
            group_id=group.id,
            payer_id=actor,
            created_at=record.created_at or now,
            split_policy=policy,
            splits=splits,
            payments=dict(record.payments) if record.payments else {actor: record.amount},
            custom_percentages=(
                dict(record.custom_percentages)
                if policy is SplitPolicy.CUSTOM and record.custom_percentages
                else None
            ),
            category=record.category or None,
            settled=record.settled,
            settled_at=now if record.settled else None,
        )
        self._check_split_total(expense)
        return expense

    def import_expenses(
        self, group_id: str, records: Sequence[ExpenseRecord]
    ) -> list[Expense]:
        """
        Record a batch of expenses paid by the acting member.

        Each record is split against the group's current membership. Rows
        are validated first; either every expense is created or none is.

        Raises:
            InvalidInputError: If any row fails, naming its 1-based position
        """
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self._group_for(group_id, actor, "import expenses")
            expenses = []
            for position, record in enumerate(records, start=1):
                try:
                    expenses.append(self._build_expense(group, actor, record))
                except FairshareError as e:
                    raise InvalidInputError(f"Row {position}: {e.message}") from e
            self.store.create_expenses(expenses)

        logger.info(f"Imported {len(expenses)} expenses into group {group_id}")
        return expenses

    def get_expense(self, expense_id: str) -> Expense:
        """Get an expense from a group the acting member belongs to."""
        actor = self._actor()
        expense = self.store.get_expense(expense_id)
        self._group_for(expense.group_id, actor, "view its expenses")
        return expense

    def list_expenses(self, group_id: str, settled: bool | None = None) -> list[Expense]:
        """Expenses of a group, newest first."""
        self._group_for(group_id, self._actor(), "view its expenses")
        return self.store.list_expenses(group_id, settled=settled)

    def update_expense(
        self,
        expense_id: str,
        amount: float | None = None,
        policy: SplitPolicy | None = None,
        percentages: Mapping[str, float] | None = None,
        description: str | None = None,
        category: str | None = None,
    ) -> Expense:
        """
        Edit an expense. Payer or group creator only.

        Changing the amount, policy or percentages re-runs the split against
        the group's current membership; description and category edits leave
        the splits alone.
        """
        actor = self._actor()
        group_id = self.store.get_expense(expense_id).group_id
        with self.locks.hold(group_id):
            expense = self.store.get_expense(expense_id)
            group = self._group_for(expense.group_id, actor, "edit its expenses")
            self._require_editor(expense, group, actor, "update")

            update: dict = {}
            if description is not None:
                update["description"] = description or None
            if category is not None:
                update["category"] = category or None

            resplit = amount is not None or policy is not None or percentages is not None
            if resplit:
                new_amount = expense.amount if amount is None else amount
                new_policy = SplitPolicy(policy or expense.split_policy)
                new_percentages = (
                    percentages if percentages is not None else expense.custom_percentages
                )
                update["splits"] = compute_splits(
                    amount=new_amount,
                    policy=new_policy,
                    members=group.member_ids,
                    payer_id=expense.payer_id,
                    percentages=new_percentages,
                )
                update["amount"] = new_amount
                update["split_policy"] = new_policy
                update["custom_percentages"] = (
                    dict(new_percentages)
                    if new_policy is SplitPolicy.CUSTOM and new_percentages
                    else None
                )
                # A default ledger follows the amount; an explicit one is kept.
                if expense.payments == {expense.payer_id: expense.amount}:
                    update["payments"] = {expense.payer_id: new_amount}

            updated = Expense.model_validate({**expense.model_dump(), **update})
            self._check_split_total(updated)
            self.store.update_expense(updated)

        logger.info(f"Updated expense {expense_id}{' (re-split)' if resplit else ''}")
        return updated

    def delete_expense(self, expense_id: str) -> None:
        """Delete an expense. Payer or group creator only."""
        actor = self._actor()
        group_id = self.store.get_expense(expense_id).group_id
        with self.locks.hold(group_id):
            expense = self.store.get_expense(expense_id)
            group = self._group_for(expense.group_id, actor, "delete its expenses")
            self._require_editor(expense, group, actor, "delete")
            self.store.delete_expense(expense_id)

        logger.info(f"Deleted expense {expense_id}")

    def migrate_group_payments(self, group_id: str) -> list[Expense]:
        """
        Fill in payment ledgers for legacy expenses that have none.

        Returns:
            The expenses that were migrated
        """
        actor = self._actor()
        migrated = []
        with self.locks.hold(group_id):
            self._group_for(group_id, actor, "migrate its expenses")
            for expense in self.store.list_expenses(group_id):
                if expense.payments:
                    continue
                payments = legacy_payments(expense)
                if not payments:
                    continue
                updated = expense.model_copy(update={"payments": payments})
                self.store.update_expense(updated)
                migrated.append(updated)

        logger.info(f"Migrated payments for {len(migrated)} expenses in group {group_id}")
        return migrated

    # ========================================================================
    # Settlement
    # ========================================================================

    def settle_expense(self, expense_id: str) -> Expense:
        """Mark an expense settled. Any group member may settle."""
        actor = self._actor()
        group_id = self.store.get_expense(expense_id).group_id
        with self.locks.hold(group_id):
            expense = self.store.get_expense(expense_id)
            self._group_for(expense.group_id, actor, "settle its expenses")
            settled = settle(expense, self.clock())
            self.store.update_expense(settled)

        logger.info(f"Settled expense {expense_id}")
        return settled

    def unsettle_expense(self, expense_id: str) -> Expense:
        """Mark a settled expense as open again. Any group member may unsettle."""
        actor = self._actor()
        group_id = self.store.get_expense(expense_id).group_id
        with self.locks.hold(group_id):
            expense = self.store.get_expense(expense_id)
            self._group_for(expense.group_id, actor, "unsettle its expenses")
            reopened = unsettle(expense)
            self.store.update_expense(reopened)

        logger.info(f"Unsettled expense {expense_id}")
        return reopened

    def settle_group(self, group_id: str) -> GroupSettlement:
        """
        Settle every open expense in a group at one timestamp.

        The store applies the whole batch atomically; if it fails, the
        exception propagates and no expense is reported as settled.
        """
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self._group_for(group_id, actor, "settle it")
            unsettled = self.store.list_unsettled_expenses(group_id)
            outcome = settle_batch(group, unsettled, self.clock())
            self.store.batch_settle(group_id, outcome.expense_ids, outcome.settled_at)

        logger.info(
            f"Settled {len(outcome.expenses)} expenses "
            f"({outcome.total_amount:.2f}) in group {group_id}"
        )
        return outcome

    def unsettle_group(self, group_id: str) -> Group:
        """Clear a group's own settled flag; its expenses are not touched."""
        actor = self._actor()
        with self.locks.hold(group_id):
            group = self._group_for(group_id, actor, "unsettle it")
            reopened = reopen_group(group)
            self.store.save_group(reopened)

        logger.info(f"Unsettled group {group_id}")
        return reopened

    # ========================================================================
    # Balances
    # ========================================================================

    def group_balances(
        self, group_id: str, include_settled: bool = False
    ) -> dict[str, float]:
        """Net balance of every member of a group."""
        group = self._group_for(group_id, self._actor(), "view balances")
        expenses = self.store.list_expenses(group_id)
        return compute_balances(expenses, group.member_ids, include_settled)

    def member_balance(
        self,
        group_id: str,
        member_id: str | None = None,
        include_settled: bool = False,
    ) -> float:
        """Net balance of one member (the acting member by default)."""
        actor = self._actor()
        self._group_for(group_id, actor, "view balances")
        expenses = self.store.list_expenses(group_id)
        return compute_balance(expenses, member_id or actor, include_settled)

    # ========================================================================
    # Templates
    # ========================================================================

    def create_template(
        self,
        name: str,
        items: Sequence[TemplateItem],
        description: str | None = None,
        is_shared: bool = False,
    ) -> ExpenseTemplate:
        """Save a new template owned by the acting member."""
        template = ExpenseTemplate(
            name=name.strip(),
            description=description,
            creator_id=self._actor(),
            created_at=self.clock(),
            items=list(items),
            is_shared=is_shared,
        )
        validate_template(template)
        self.store.save_template(template)

        logger.info(f"Created template '{template.name}' with {len(template.items)} items")
        return template

    def get_template(self, template_id: str) -> ExpenseTemplate:
        """Get a template owned by, or shared with, the acting member."""
        actor = self._actor()
        template = self.store.get_template(template_id)
        if template.creator_id != actor and not template.is_shared:
            raise PermissionDeniedError("You cannot view another member's template")
        return template

    def list_templates(self) -> list[ExpenseTemplate]:
        """Templates owned by the acting member, plus shared ones."""
        return self.store.list_templates(self._actor())

    def update_template(
        self,
        template_id: str,
        items: Sequence[TemplateItem],
        name: str | None = None,
        description: str | None = None,
    ) -> ExpenseTemplate:
        """Replace a template's item list (and optionally name). Creator only."""
        actor = self._actor()
        template = self.store.get_template(template_id)
        if template.creator_id != actor:
            raise PermissionDeniedError("Cannot update template belonging to another user")

        updated = template.model_copy(
            update={
                "items": list(items),
                "name": template.name if name is None else name.strip(),
                "description": (
                    template.description if description is None else description
                ),
            }
        )
        validate_template(updated)
        self.store.save_template(updated)

        logger.info(f"Updated template {template_id} ({len(updated.items)} items)")
        return updated

    def delete_template(self, template_id: str) -> None:
        """Delete a template. Creator only."""
        actor = self._actor()
        template = self.store.get_template(template_id)
        if template.creator_id != actor:
            raise PermissionDeniedError("Cannot delete template belonging to another user")
        self.store.delete_template(template_id)

        logger.info(f"Deleted template {template_id}")

    def apply_template(self, template_id: str, group_id: str) -> list[Expense]:
        """
        Expand a template into expenses for a group.

        Validation runs against the group's current membership and either
        every expense is created or none is.
        """
        actor = self._actor()
        template = self.get_template(template_id)
        with self.locks.hold(group_id):
            group = self._group_for(group_id, actor, "apply templates to it")
            expenses = expand_template(template, group, actor, self.clock())
            self.store.create_expenses(expenses)

        logger.info(
            f"Applied template '{template.name}' to group {group_id}: "
            f"{len(expenses)} expenses, {template.total_amount:.2f} total"
        )
        return expenses
