"""fairshare - Split group expenses and track who owes whom."""

__version__ = "0.1.0"

from .balances import compute_balance, compute_balances
from .config import Settings, load_settings
from .db import Database
from .models import (
    Expense,
    ExpenseRecord,
    ExpenseTemplate,
    Group,
    SplitPolicy,
    TemplateItem,
)
from .service import LedgerService
from .splits import compute_splits
from .templates import expand_template, validate_template

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "Expense",
    "ExpenseRecord",
    "ExpenseTemplate",
    "Group",
    "SplitPolicy",
    "TemplateItem",
    "LedgerService",
    "compute_balance",
    "compute_balances",
    "compute_splits",
    "expand_template",
    "validate_template",
]
