"""CLI for fairshare using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum
from pathlib import Path

import typer
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console
from rich.table import Table

from .config import Settings, load_settings
from .csv_handler import export_expenses_to_csv, import_expenses_from_csv
from .db import Database
from .exceptions import FairshareError
from .identity import StaticIdentity
from .mcp_server import run_server
from .models import Expense, ExpenseTemplate, Group, SplitPolicy, TemplateItem
from .service import LedgerService
from .ui import confirm, prompt_custom_percentages, select_member_interactive

app = typer.Typer(
    name="fairshare",
    help="Split group expenses and track who owes whom",
)
group_app = typer.Typer(help="Create and manage groups")
expense_app = typer.Typer(help="Record, edit and settle expenses")
template_app = typer.Typer(help="Reusable expense templates")

app.add_typer(group_app, name="group")
app.add_typer(expense_app, name="expense")
app.add_typer(template_app, name="template")

console = Console()

AS_OPTION = typer.Option(
    None, "--as", help="Act as this member (defaults to FAIRSHARE_MEMBER_ID)"
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose output")


class PolicyChoice(StrEnum):
    """Split policy names accepted on the command line."""

    EQUAL = "equal"
    OWES_ALL = "owes-all"
    OWED_ALL = "owed-all"
    CUSTOM = "custom"

    @property
    def policy(self) -> SplitPolicy:
        return {
            PolicyChoice.EQUAL: SplitPolicy.EQUAL,
            PolicyChoice.OWES_ALL: SplitPolicy.PAYER_OWES_ALL,
            PolicyChoice.OWED_ALL: SplitPolicy.PAYER_OWED_ALL,
            PolicyChoice.CUSTOM: SplitPolicy.CUSTOM,
        }[self]


class TemplateFile(BaseModel):
    """On-disk JSON layout for `template import` and `template update`."""

    name: str
    description: str | None = None
    is_shared: bool = False
    items: list[TemplateItem] = Field(default_factory=list)


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_ledger(
    member: str | None, verbose: bool
) -> Iterator[tuple[LedgerService, Settings]]:
    """Open the database and yield a service acting as the chosen member."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(
            db,
            StaticIdentity(member or settings.member_id),
            tolerance=settings.split_tolerance,
        )
        yield service, settings
    except FairshareError as e:
        console.print(f"\n[bold red]Error ({e.kind.value}):[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_money(amount: float, symbol: str = "$", use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    abs_amount = abs(amount)
    if amount < -0.005:
        if use_color:
            return f"({symbol}[red]{abs_amount:,.2f}[/red])"
        return f"({symbol}{abs_amount:,.2f})"
    if use_color:
        return f" [green]{symbol}{abs_amount:,.2f}[/green] "
    return f" {symbol}{abs_amount:,.2f} "


def parse_percentages(values: list[str]) -> dict[str, float]:
    """Parse repeated `member=percent` options."""
    percentages: dict[str, float] = {}
    for value in values:
        member_id, sep, percent = value.partition("=")
        if not sep or not member_id.strip():
            raise typer.BadParameter(f"Expected MEMBER=PERCENT, got '{value}'")
        try:
            percentages[member_id.strip()] = float(percent)
        except ValueError:
            raise typer.BadParameter(f"'{percent}' is not a number") from None
    return percentages


def load_template_file(path: Path) -> TemplateFile:
    """Read and parse a template JSON file."""
    try:
        return TemplateFile.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        raise typer.BadParameter(f"Could not read template file {path}: {e}") from e


# ============================================================================
# Display helpers
# ============================================================================


def display_group(group: Group, balances: dict[str, float], symbol: str):
    """Display a group with member balances."""
    console.print(f"\n[bold]{group.name}[/bold] [dim]({group.id})[/dim]")
    if group.description:
        console.print(f"  {group.description}")
    console.print(f"  Created by: {group.creator_id}")
    if group.settled_at:
        console.print(f"  Last settled: {group.settled_at:%Y-%m-%d %H:%M}")
    console.print()

    table = Table(title="Open Balances", show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Balance", justify="right", width=14)
    table.add_column("Status", style="dim")

    for member_id, balance in balances.items():
        if balance > 0.005:
            status = "is owed"
        elif balance < -0.005:
            status = "owes"
        else:
            status = "settled up"
        name = member_id if group.has_member(member_id) else f"{member_id} (left)"
        table.add_row(name, format_money(balance, symbol), status)

    console.print(table)


def display_expenses(expenses: list[Expense], symbol: str, title: str = "Expenses"):
    """Display expenses in a table."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Date", width=10)
    table.add_column("Description", style="cyan")
    table.add_column("Paid by")
    table.add_column("Amount", justify="right", width=12)
    table.add_column("Split")
    table.add_column("Settled", justify="center")

    for expense in expenses:
        table.add_row(
            expense.id,
            f"{expense.created_at:%Y-%m-%d}",
            expense.description or "[dim]-[/dim]",
            expense.payer_id,
            format_money(expense.amount, symbol, use_color=False),
            expense.split_policy.label,
            "✓" if expense.settled else "",
        )

    console.print(table)


def display_expense(expense: Expense, symbol: str):
    """Display one expense with its per-member splits."""
    console.print(f"\n[bold]{expense.description or 'Expense'}[/bold] [dim]({expense.id})[/dim]")
    console.print(f"  Amount: {format_money(expense.amount, symbol)}")
    console.print(f"  Paid by: {expense.payer_id}")
    console.print(f"  Split: {expense.split_policy.label}")
    if expense.category:
        console.print(f"  Category: {expense.category}")
    if expense.settled and expense.settled_at:
        console.print(f"  [green]Settled {expense.settled_at:%Y-%m-%d %H:%M}[/green]")
    console.print()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Owes", justify="right", width=12)
    table.add_column("Paid", justify="right", width=12)
    if expense.custom_percentages:
        table.add_column("%", justify="right", width=8)

    members = list(dict.fromkeys([*expense.splits, *expense.payments]))
    for member_id in members:
        row = [
            member_id,
            format_money(expense.splits.get(member_id, 0.0), symbol, use_color=False),
            format_money(expense.payments.get(member_id, 0.0), symbol, use_color=False),
        ]
        if expense.custom_percentages:
            row.append(f"{expense.custom_percentages.get(member_id, 0.0):g}")
        table.add_row(*row)

    console.print(table)


def display_template(template: ExpenseTemplate, symbol: str):
    """Display a template and its items."""
    console.print(f"\n[bold]{template.name}[/bold] [dim]({template.id})[/dim]")
    if template.description:
        console.print(f"  {template.description}")
    console.print(f"  Total: {format_money(template.total_amount, symbol)}")
    console.print()

    table = Table(title="Items", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=3)
    table.add_column("Description", style="cyan")
    table.add_column("Amount", justify="right", width=12)
    table.add_column("Split")
    table.add_column("Category", style="yellow")

    for index, item in enumerate(template.items, start=1):
        table.add_row(
            str(index),
            item.description,
            format_money(item.amount, symbol, use_color=False),
            item.split_policy.label,
            item.category or "",
        )

    console.print(table)


# ============================================================================
# Group commands
# ============================================================================


@group_app.command("create")
def group_create(
    name: str = typer.Argument(..., help="Group name"),
    description: str | None = typer.Option(None, "--description", "-d"),
    members: list[str] = typer.Option([], "--member", "-m", help="Member to add"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Create a group with yourself as creator."""
    with open_ledger(member, verbose) as (service, _):
        group = service.create_group(name, description=description, member_ids=members)
        console.print(f"[green]✓ Created group '{group.name}'[/green] [dim]{group.id}[/dim]")
        console.print(f"  Members: {', '.join(group.member_ids)}")


@group_app.command("list")
def group_list(member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """List your groups."""
    with open_ledger(member, verbose) as (service, _):
        groups = service.list_groups()
        if not groups:
            console.print("[yellow]You are not in any groups.[/yellow]")
            return

        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Members", justify="right")
        table.add_column("Creator")
        for group in groups:
            table.add_row(group.id, group.name, str(len(group.member_ids)), group.creator_id)
        console.print(table)


@group_app.command("show")
def group_show(
    group_id: str,
    include_settled: bool = typer.Option(
        False, "--include-settled", help="Count settled expenses in balances"
    ),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Show a group, its balances and its open expenses."""
    with open_ledger(member, verbose) as (service, settings):
        group = service.get_group(group_id)
        balances = service.group_balances(group_id, include_settled=include_settled)
        display_group(group, balances, settings.currency_symbol)

        open_expenses = service.list_expenses(group_id, settled=False)
        if open_expenses:
            console.print()
            display_expenses(open_expenses, settings.currency_symbol, "Open Expenses")


@group_app.command("join")
def group_join(group_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Join a group by its id."""
    with open_ledger(member, verbose) as (service, _):
        group = service.join_group(group_id)
        console.print(f"[green]✓ You are a member of '{group.name}'[/green]")


@group_app.command("add-member")
def group_add_member(
    group_id: str,
    new_member: str = typer.Argument(..., help="Member id to add"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Add a member to a group (creator only)."""
    with open_ledger(member, verbose) as (service, _):
        group = service.add_member(group_id, new_member)
        console.print(f"[green]✓ Members: {', '.join(group.member_ids)}[/green]")


@group_app.command("remove-member")
def group_remove_member(
    group_id: str,
    old_member: str | None = typer.Argument(None, help="Member id to remove"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Remove a member from a group (creator only)."""
    with open_ledger(member, verbose) as (service, _):
        if old_member is None:
            group = service.get_group(group_id)
            candidates = [m for m in group.member_ids if m != group.creator_id]
            if not candidates:
                console.print("[yellow]No members to remove.[/yellow]")
                return
            old_member = select_member_interactive(candidates)
            if old_member is None:
                console.print("[yellow]Cancelled.[/yellow]")
                return

        group = service.remove_member(group_id, old_member)
        console.print(f"[green]✓ Members: {', '.join(group.member_ids)}[/green]")


@group_app.command("leave")
def group_leave(group_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Leave a group."""
    with open_ledger(member, verbose) as (service, _):
        group = service.leave_group(group_id)
        if group is None:
            console.print("[green]✓ You were the last member; the group was deleted.[/green]")
        else:
            console.print(f"[green]✓ You left '{group.name}'[/green]")


@group_app.command("rename")
def group_rename(
    group_id: str,
    name: str,
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Rename a group (creator only)."""
    with open_ledger(member, verbose) as (service, _):
        group = service.rename_group(group_id, name)
        console.print(f"[green]✓ Renamed to '{group.name}'[/green]")


@group_app.command("delete")
def group_delete(
    group_id: str,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Delete a group and all of its expenses (creator only)."""
    with open_ledger(member, verbose) as (service, _):
        group = service.get_group(group_id)
        if not yes and not confirm(f"Delete '{group.name}' and all its expenses?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_group(group_id)
        console.print(f"[green]✓ Deleted '{group.name}'[/green]")


@group_app.command("settle")
def group_settle(group_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Settle every open expense in a group."""
    with open_ledger(member, verbose) as (service, settings):
        outcome = service.settle_group(group_id)
        console.print(
            f"[bold green]✓ Settled {len(outcome.expenses)} expenses "
            f"({format_money(outcome.total_amount, settings.currency_symbol, use_color=False).strip()})"
            f"[/bold green]"
        )


@group_app.command("unsettle")
def group_unsettle(group_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Clear a group's settled flag."""
    with open_ledger(member, verbose) as (service, _):
        group = service.unsettle_group(group_id)
        console.print(f"[green]✓ '{group.name}' is open again[/green]")


# ============================================================================
# Expense commands
# ============================================================================


@expense_app.command("add")
def expense_add(
    group_id: str,
    amount: float,
    description: str | None = typer.Option(None, "--description", "-d"),
    policy: PolicyChoice = typer.Option(PolicyChoice.EQUAL, "--policy", "-p"),
    percent: list[str] = typer.Option(
        [], "--percent", help="MEMBER=PERCENT for custom splits (prompted if omitted)"
    ),
    category: str | None = typer.Option(None, "--category", "-c"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Record an expense you paid."""
    with open_ledger(member, verbose) as (service, settings):
        percentages = parse_percentages(percent) if percent else None
        if policy is PolicyChoice.CUSTOM and percentages is None:
            group = service.get_group(group_id)
            percentages = prompt_custom_percentages(group.member_ids)
            if percentages is None:
                return

        expense = service.create_expense_from_policy(
            group_id,
            amount,
            policy=policy.policy,
            description=description,
            percentages=percentages,
            category=category,
        )
        console.print("[bold green]✓ Expense recorded[/bold green]")
        display_expense(expense, settings.currency_symbol)


@expense_app.command("list")
def expense_list(
    group_id: str,
    show: str = typer.Option(
        "open", "--show", help="Which expenses to list: open, settled or all"
    ),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """List a group's expenses, newest first."""
    filters = {"open": False, "settled": True, "all": None}
    if show not in filters:
        raise typer.BadParameter("--show must be one of: open, settled, all")

    with open_ledger(member, verbose) as (service, settings):
        expenses = service.list_expenses(group_id, settled=filters[show])
        if not expenses:
            console.print("[yellow]No expenses found.[/yellow]")
            return
        display_expenses(expenses, settings.currency_symbol)


@expense_app.command("show")
def expense_show(expense_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Show one expense and its splits."""
    with open_ledger(member, verbose) as (service, settings):
        display_expense(service.get_expense(expense_id), settings.currency_symbol)


@expense_app.command("edit")
def expense_edit(
    expense_id: str,
    amount: float | None = typer.Option(None, "--amount", "-a"),
    policy: PolicyChoice | None = typer.Option(None, "--policy", "-p"),
    percent: list[str] = typer.Option([], "--percent", help="MEMBER=PERCENT"),
    description: str | None = typer.Option(None, "--description", "-d"),
    category: str | None = typer.Option(None, "--category", "-c"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Edit an expense (payer or group creator only)."""
    with open_ledger(member, verbose) as (service, settings):
        expense = service.update_expense(
            expense_id,
            amount=amount,
            policy=policy.policy if policy else None,
            percentages=parse_percentages(percent) if percent else None,
            description=description,
            category=category,
        )
        console.print("[bold green]✓ Expense updated[/bold green]")
        display_expense(expense, settings.currency_symbol)


@expense_app.command("delete")
def expense_delete(
    expense_id: str,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Delete an expense (payer or group creator only)."""
    with open_ledger(member, verbose) as (service, _):
        if not yes and not confirm(f"Delete expense {expense_id}?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_expense(expense_id)
        console.print("[green]✓ Expense deleted[/green]")


@expense_app.command("settle")
def expense_settle(expense_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Mark an expense settled."""
    with open_ledger(member, verbose) as (service, _):
        expense = service.settle_expense(expense_id)
        console.print(f"[green]✓ Settled at {expense.settled_at:%Y-%m-%d %H:%M}[/green]")


@expense_app.command("unsettle")
def expense_unsettle(
    expense_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION
):
    """Reopen a settled expense."""
    with open_ledger(member, verbose) as (service, _):
        service.unsettle_expense(expense_id)
        console.print("[green]✓ Expense reopened[/green]")


@expense_app.command("import")
def expense_import(
    group_id: str,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV file"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Import expenses you paid from a CSV file (all rows or none)."""
    with open_ledger(member, verbose) as (service, settings):
        records = import_expenses_from_csv(path)
        if not records:
            console.print("[yellow]No rows to import.[/yellow]")
            return

        group = service.get_group(group_id)
        console.print(f"\n[bold]{len(records)} expenses in {path.name}[/bold]")
        for record in records[:5]:
            date = f"{record.created_at:%Y-%m-%d}" if record.created_at else "today"
            status = "settled" if record.settled else "open"
            console.print(
                f"  {date}  {record.description or 'Expense'}  "
                f"{format_money(record.amount, settings.currency_symbol, use_color=False).strip()}"
                f"  [dim]{status}[/dim]"
            )
        if len(records) > 5:
            console.print(f"  [dim]...and {len(records) - 5} more[/dim]")

        if not yes and not confirm(f"Import {len(records)} expenses into '{group.name}'?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        expenses = service.import_expenses(group_id, records)
        console.print(f"[bold green]✓ Imported {len(expenses)} expenses[/bold green]")


@expense_app.command("export")
def expense_export(
    group_id: str,
    path: Path = typer.Argument(..., dir_okay=False, help="CSV file to write"),
    show: str = typer.Option(
        "all", "--show", help="Which expenses to export: open, settled or all"
    ),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Export a group's expenses to a CSV file."""
    filters = {"open": False, "settled": True, "all": None}
    if show not in filters:
        raise typer.BadParameter("--show must be one of: open, settled, all")

    with open_ledger(member, verbose) as (service, _):
        expenses = service.list_expenses(group_id, settled=filters[show])
        count = export_expenses_to_csv(expenses, path)
        console.print(f"[green]✓ Exported {count} expenses to {path}[/green]")


@expense_app.command("migrate-payments")
def expense_migrate_payments(
    group_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION
):
    """Fill in payment records for old expenses that lack them."""
    with open_ledger(member, verbose) as (service, _):
        migrated = service.migrate_group_payments(group_id)
        console.print(f"[green]✓ Migrated {len(migrated)} expenses[/green]")


# ============================================================================
# Template commands
# ============================================================================


@template_app.command("import")
def template_import(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template JSON file"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Create a template from a JSON file."""
    data = load_template_file(path)
    with open_ledger(member, verbose) as (service, settings):
        template = service.create_template(
            data.name, data.items, description=data.description, is_shared=data.is_shared
        )
        console.print("[bold green]✓ Template created[/bold green]")
        display_template(template, settings.currency_symbol)


@template_app.command("list")
def template_list(member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """List your templates and shared templates."""
    with open_ledger(member, verbose) as (service, settings):
        templates = service.list_templates()
        if not templates:
            console.print("[yellow]No templates found.[/yellow]")
            return

        table = Table(title="Templates", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Items", justify="right")
        table.add_column("Total", justify="right")
        table.add_column("Preview")
        for template in templates:
            preview = ", ".join(item.description for item in template.preview())
            if len(template.items) > 3:
                preview += ", …"
            table.add_row(
                template.id,
                template.name,
                str(len(template.items)),
                format_money(template.total_amount, settings.currency_symbol, use_color=False),
                preview,
            )
        console.print(table)


@template_app.command("show")
def template_show(template_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Show a template's items."""
    with open_ledger(member, verbose) as (service, settings):
        display_template(service.get_template(template_id), settings.currency_symbol)


@template_app.command("update")
def template_update(
    template_id: str,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template JSON file"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Replace a template's name and items from a JSON file."""
    data = load_template_file(path)
    with open_ledger(member, verbose) as (service, settings):
        template = service.update_template(
            template_id, data.items, name=data.name, description=data.description
        )
        console.print("[bold green]✓ Template updated[/bold green]")
        display_template(template, settings.currency_symbol)


@template_app.command("delete")
def template_delete(template_id: str, member: str | None = AS_OPTION, verbose: bool = VERBOSE_OPTION):
    """Delete a template."""
    with open_ledger(member, verbose) as (service, _):
        service.delete_template(template_id)
        console.print("[green]✓ Template deleted[/green]")


@template_app.command("apply")
def template_apply(
    template_id: str,
    group_id: str,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Create one expense per template item in a group."""
    with open_ledger(member, verbose) as (service, settings):
        template = service.get_template(template_id)
        group = service.get_group(group_id)
        display_template(template, settings.currency_symbol)

        if not yes and not confirm(
            f"Add {len(template.items)} expenses to '{group.name}'?"
        ):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        expenses = service.apply_template(template_id, group_id)
        console.print(f"\n[bold green]✓ Created {len(expenses)} expenses[/bold green]")
        display_expenses(expenses, settings.currency_symbol)


# ============================================================================
# Top-level commands
# ============================================================================


@app.command()
def balance(
    group_id: str,
    include_settled: bool = typer.Option(
        False, "--include-settled", help="Count settled expenses too"
    ),
    member: str | None = AS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Show what each member of a group owes or is owed."""
    with open_ledger(member, verbose) as (service, settings):
        group = service.get_group(group_id)
        balances = service.group_balances(group_id, include_settled=include_settled)
        display_group(group, balances, settings.currency_symbol)


@app.command()
def mcp():
    """Start the MCP server."""
    run_server()


if __name__ == "__main__":
    app()
