"""MCP server for fairshare: exposes the group ledger as tools for an assistant."""

import logging
from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP

from .config import Settings, load_settings
from .db import Database
from .exceptions import FairshareError
from .identity import StaticIdentity
from .models import Expense, SplitPolicy
from .service import LedgerService
from .splits import compute_splits

logger = logging.getLogger(__name__)

mcp_app = FastMCP("fairshare")

# ---------------------------------------------------------------------------
# Session state: one MCP server process = one conversation
# ---------------------------------------------------------------------------

WORKFLOW_INSTRUCTIONS = """\
You are helping a group of people keep track of shared expenses. Typical flow:

1. ORIENT: Call list_groups to see the groups the configured member belongs to.

2. RECORD: Call add_expense for each new expense. The configured member is the
   payer. Use policy "equal" unless told otherwise; for "custom", pass a
   percentage for EVERY group member, summing to 100.
   Use preview_split first if the user wants to see the numbers.

3. REVIEW: Call show_balances to report who owes whom. Positive balances are
   owed money, negative balances owe money.

4. SETTLE: When the user confirms money has changed hands, call settle_expense
   for a single expense or settle_group to settle everything open at once.
   Always ask before settling a whole group.

Templates: list_templates shows reusable expense lists; apply_template adds
one expense per item to a group.\
"""


@dataclass
class SessionState:
    """Holds state between MCP tool calls within a single conversation."""

    service: LedgerService | None = None
    db: Database | None = None
    settings: Settings | None = None


_state = SessionState()


def _ensure_service() -> LedgerService:
    """Lazily initialize the LedgerService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.settings = settings
        _state.db = Database(settings.database_path)
        _state.service = LedgerService(
            _state.db,
            StaticIdentity(settings.member_id),
            tolerance=settings.split_tolerance,
        )
    return _state.service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_amount(amount: float) -> str:
    """Format an amount as an accounting-style string."""
    symbol = _state.settings.currency_symbol if _state.settings else "$"
    if amount < -0.005:
        return f"({symbol}{abs(amount):,.2f})"
    return f"{symbol}{abs(amount):,.2f}"


def _format_expense(expense: Expense) -> str:
    status = "SETTLED" if expense.settled else "OPEN"
    shares = ", ".join(
        f"{member_id}: {_format_amount(share)}" for member_id, share in expense.splits.items()
    )
    return (
        f"{expense.id} | {expense.created_at.date()} | "
        f"{expense.description or '(no description)'} | "
        f"{_format_amount(expense.amount)} paid by {expense.payer_id} | "
        f"{expense.split_policy.label} [{shares}] | {status}"
    )


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_groups() -> str:
    """List the groups the configured member belongs to."""
    try:
        service = _ensure_service()
        groups = service.list_groups()

        if not groups:
            return "Not a member of any group."

        lines = ["Groups:"]
        for group in groups:
            lines.append(
                f"  - {group.name} (id: {group.id}) | members: {', '.join(group.member_ids)}"
            )
        return "\n".join(lines)
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to list groups: {e}"


@mcp_app.tool()
def list_expenses(group_id: str, include_settled: bool = False) -> str:
    """List a group's expenses, newest first.

    Args:
        group_id: The group to list.
        include_settled: Also list expenses that were already settled.
    """
    try:
        service = _ensure_service()
        expenses = service.list_expenses(
            group_id, settled=None if include_settled else False
        )

        if not expenses:
            return "No expenses found."

        lines = [f"Expenses ({len(expenses)} total):"]
        lines.extend(f"  - {_format_expense(expense)}" for expense in expenses)
        return "\n".join(lines)
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to list expenses: {e}"


@mcp_app.tool()
def preview_split(
    group_id: str,
    amount: float,
    policy: str = "equal",
    percentages: dict[str, float] | None = None,
) -> str:
    """Show how an amount would be split without recording anything.

    Args:
        group_id: The group whose members share the expense.
        amount: Expense amount.
        policy: One of equal, currentUserOwes, currentUserOwed, custom.
        percentages: Member id -> percent, required for custom.
    """
    try:
        service = _ensure_service()
        group = service.get_group(group_id)
        splits = compute_splits(
            amount=amount,
            policy=SplitPolicy(policy),
            members=group.member_ids,
            payer_id=service.identity.current_identity(),
            percentages=percentages,
        )
        lines = [f"Split of {_format_amount(amount)} ({SplitPolicy(policy).label}):"]
        lines.extend(f"  - {m}: {_format_amount(share)}" for m, share in splits.items())
        return "\n".join(lines)
    except ValueError as e:
        return f"Error: {e}"
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to preview split: {e}"


@mcp_app.tool()
def add_expense(
    group_id: str,
    amount: float,
    description: str = "",
    policy: str = "equal",
    percentages: dict[str, float] | None = None,
    category: str | None = None,
) -> str:
    """Record an expense paid by the configured member.

    Args:
        group_id: The group the expense belongs to.
        amount: Expense amount, greater than zero.
        description: What the expense was for.
        policy: One of equal, currentUserOwes, currentUserOwed, custom.
        percentages: Member id -> percent, required for custom.
        category: Optional category label.
    """
    try:
        service = _ensure_service()
        expense = service.create_expense_from_policy(
            group_id,
            amount,
            policy=SplitPolicy(policy),
            description=description,
            percentages=percentages,
            category=category,
        )
        return f"Expense recorded:\n  {_format_expense(expense)}"
    except ValueError as e:
        return f"Error: {e}"
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to add expense: {e}"


@mcp_app.tool()
def show_balances(group_id: str, include_settled: bool = False) -> str:
    """Show each member's net balance in a group.

    Args:
        group_id: The group to report on.
        include_settled: Count settled expenses too.
    """
    try:
        service = _ensure_service()
        balances = service.group_balances(group_id, include_settled=include_settled)

        lines = ["Balances (positive = owed money, negative = owes money):"]
        for member_id, balance in balances.items():
            lines.append(f"  - {member_id}: {_format_amount(balance)}")
        return "\n".join(lines)
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to compute balances: {e}"


@mcp_app.tool()
def settle_expense(expense_id: str) -> str:
    """Mark a single expense as settled.

    Args:
        expense_id: The expense to settle.
    """
    try:
        service = _ensure_service()
        expense = service.settle_expense(expense_id)
        return f"Settled:\n  {_format_expense(expense)}"
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to settle expense: {e}"


@mcp_app.tool()
def unsettle_expense(expense_id: str) -> str:
    """Reopen a settled expense.

    Args:
        expense_id: The expense to reopen.
    """
    try:
        service = _ensure_service()
        expense = service.unsettle_expense(expense_id)
        return f"Reopened:\n  {_format_expense(expense)}"
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to unsettle expense: {e}"


@mcp_app.tool()
def settle_group(group_id: str) -> str:
    """Settle every open expense in a group at once.

    Args:
        group_id: The group to settle.
    """
    try:
        service = _ensure_service()
        outcome = service.settle_group(group_id)
        return (
            f"Settled {len(outcome.expenses)} expenses totalling "
            f"{_format_amount(outcome.total_amount)} at {outcome.settled_at:%Y-%m-%d %H:%M}."
        )
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to settle group: {e}"


@mcp_app.tool()
def list_templates() -> str:
    """List expense templates available to the configured member."""
    try:
        service = _ensure_service()
        templates = service.list_templates()

        if not templates:
            return "No templates found."

        lines = ["Templates:"]
        for template in templates:
            preview = ", ".join(item.description for item in template.preview())
            lines.append(
                f"  - {template.name} (id: {template.id}) | {len(template.items)} items | "
                f"{_format_amount(template.total_amount)} | {preview}"
            )
        return "\n".join(lines)
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to list templates: {e}"


@mcp_app.tool()
def apply_template(template_id: str, group_id: str) -> str:
    """Create one expense per template item in a group.

    Args:
        template_id: The template to apply.
        group_id: The group that receives the expenses.
    """
    try:
        service = _ensure_service()
        expenses = service.apply_template(template_id, group_id)

        lines = [f"Created {len(expenses)} expenses:"]
        lines.extend(f"  - {_format_expense(expense)}" for expense in expenses)
        return "\n".join(lines)
    except FairshareError as e:
        return f"Error ({e.kind.value}): {e}"
    except Exception as e:
        return f"Failed to apply template: {e}"


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def ledger_workflow() -> str:
    """Orchestration instructions for managing a shared expense ledger."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
