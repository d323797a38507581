"""CSV export and import of group expenses.

Columns: id, date, description, payer, amount, split_policy, splits,
percentages, payments, category, settled, settled_at. Member maps are
written as ``member:value`` pairs joined by ``;``.

Import reads date, description, amount, split_policy, percentages,
payments, category and settled; the other columns are informational and
ignored, since the importing member becomes the payer and splits are
recomputed against the group's current membership.
"""

import csv
import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .exceptions import InvalidInputError
from .models import Expense, ExpenseRecord

logger = logging.getLogger(__name__)

COLUMNS = [
    "id",
    "date",
    "description",
    "payer",
    "amount",
    "split_policy",
    "splits",
    "percentages",
    "payments",
    "category",
    "settled",
    "settled_at",
]

_TRUE = {"true", "yes", "y", "1"}
_FALSE = {"false", "no", "n", "0", ""}


def format_member_map(values: Mapping[str, float] | None) -> str:
    """Render a member map as ``alice:30.0;bob:60.0``."""
    if not values:
        return ""
    return ";".join(f"{member_id}:{value}" for member_id, value in values.items())


def parse_member_map(text: str) -> dict[str, float] | None:
    """Parse ``alice:30;bob:60`` back into a map. Empty text gives None."""
    values: dict[str, float] = {}
    for pair in text.split(";"):
        if not pair.strip():
            continue
        member_id, sep, value = pair.partition(":")
        if not sep or not member_id.strip():
            raise ValueError(f"expected MEMBER:VALUE, got '{pair.strip()}'")
        values[member_id.strip()] = float(value)
    return values or None


def _parse_date(text: str) -> datetime | None:
    if not text.strip():
        return None
    parsed = datetime.fromisoformat(text.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_bool(text: str) -> bool:
    value = text.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"expected true or false, got '{text}'")


def export_expenses_to_csv(expenses: Iterable[Expense], path: Path) -> int:
    """
    Write expenses to a CSV file.

    Returns:
        Number of rows written
    """
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(COLUMNS)
        for expense in expenses:
            writer.writerow(
                [
                    expense.id,
                    expense.created_at.isoformat(),
                    expense.description or "",
                    expense.payer_id,
                    expense.amount,
                    expense.split_policy.value,
                    format_member_map(expense.splits),
                    format_member_map(expense.custom_percentages),
                    format_member_map(expense.payments),
                    expense.category or "",
                    "true" if expense.settled else "false",
                    expense.settled_at.isoformat() if expense.settled_at else "",
                ]
            )
            count += 1

    logger.debug(f"Exported {count} expenses to {path}")
    return count


def import_expenses_from_csv(path: Path) -> list[ExpenseRecord]:
    """
    Read expense records from a CSV file.

    Only ``amount`` is required; every other column may be missing or blank.

    Raises:
        InvalidInputError: If a row cannot be parsed, naming its 1-based position
    """
    records = []
    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames or "amount" not in reader.fieldnames:
            raise InvalidInputError(f"{path} has no 'amount' column")

        for position, row in enumerate(reader, start=1):
            try:
                records.append(
                    ExpenseRecord(
                        amount=float(row.get("amount") or ""),
                        split_policy=row.get("split_policy") or "equal",
                        description=row.get("description") or None,
                        custom_percentages=parse_member_map(row.get("percentages") or ""),
                        payments=parse_member_map(row.get("payments") or ""),
                        category=row.get("category") or None,
                        settled=_parse_bool(row.get("settled") or ""),
                        created_at=_parse_date(row.get("date") or ""),
                    )
                )
            except (ValueError, ValidationError) as e:
                raise InvalidInputError(f"Row {position}: {e}") from e

    logger.debug(f"Read {len(records)} expense records from {path}")
    return records
