"""Pydantic domain models for fairshare."""

from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a fresh opaque identifier."""
    return uuid4().hex


# ============================================================================
# Split Policies
# ============================================================================


class SplitPolicy(StrEnum):
    """How an expense amount is divided among group members.

    Values match the strings stored by earlier versions of the app, so old
    records load without translation.
    """

    EQUAL = "equal"
    PAYER_OWES_ALL = "currentUserOwes"  # payer owes the full amount
    PAYER_OWED_ALL = "currentUserOwed"  # payer paid, everyone else owes
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        """Short human-readable label."""
        return {
            SplitPolicy.EQUAL: "Split equally",
            SplitPolicy.PAYER_OWES_ALL: "Payer owes all",
            SplitPolicy.PAYER_OWED_ALL: "Payer is owed all",
            SplitPolicy.CUSTOM: "Custom percentages",
        }[self]


# ============================================================================
# Ledger Models
# ============================================================================


class Group(BaseModel):
    """A set of members sharing expenses."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    member_ids: list[str]
    creator_id: str
    created_at: datetime = Field(default_factory=utcnow)
    # Legacy group-level flag; settle_group only stamps settled_at.
    settled: bool = False
    settled_at: datetime | None = None

    @model_validator(mode="after")
    def _check_members(self) -> "Group":
        if len(set(self.member_ids)) != len(self.member_ids):
            raise ValueError("member_ids must not contain duplicates")
        if self.creator_id not in self.member_ids:
            raise ValueError("creator_id must be one of member_ids")
        return self

    def has_member(self, member_id: str) -> bool:
        """Check whether a member belongs to this group."""
        return member_id in self.member_ids


class Expense(BaseModel):
    """A recorded expense and its per-member split."""

    id: str = Field(default_factory=new_id)
    amount: float = Field(gt=0, allow_inf_nan=False)
    description: str | None = None
    group_id: str
    payer_id: str
    created_at: datetime = Field(default_factory=utcnow)
    split_policy: SplitPolicy = SplitPolicy.EQUAL
    splits: dict[str, float]
    payments: dict[str, float] = Field(default_factory=dict)
    custom_percentages: dict[str, float] | None = None
    category: str | None = None
    settled: bool = False
    settled_at: datetime | None = None

    @model_validator(mode="after")
    def _check_settlement_fields(self) -> "Expense":
        if self.settled and self.settled_at is None:
            raise ValueError("settled expense requires settled_at")
        if not self.settled and self.settled_at is not None:
            raise ValueError("unsettled expense must not carry settled_at")
        return self

    @property
    def split_total(self) -> float:
        """Sum of all split values."""
        return sum(self.splits.values())


class ExpenseRecord(BaseModel):
    """A new expense as entered by hand or read from an import file.

    The acting member becomes the payer. Without ``payments`` the payer is
    recorded as having paid the full amount; without ``created_at`` the
    expense is stamped when it is recorded.
    """

    amount: float
    split_policy: SplitPolicy = SplitPolicy.EQUAL
    description: str | None = None
    custom_percentages: dict[str, float] | None = None
    payments: dict[str, float] | None = None
    category: str | None = None
    settled: bool = False
    created_at: datetime | None = None


# ============================================================================
# Template Models
# ============================================================================


class TemplateItem(BaseModel):
    """A single expense blueprint inside a template."""

    id: str = Field(default_factory=new_id)
    amount: float
    description: str
    split_policy: SplitPolicy = SplitPolicy.EQUAL
    custom_percentages: dict[str, float] | None = None
    category: str | None = None


class ExpenseTemplate(BaseModel):
    """A reusable, ordered list of expense blueprints.

    Amounts and descriptions are checked by ``validate_template`` rather than
    by field constraints, so a malformed template can be loaded, inspected and
    reported on item by item.
    """

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    creator_id: str
    created_at: datetime = Field(default_factory=utcnow)
    items: list[TemplateItem] = Field(default_factory=list)
    is_shared: bool = False

    @property
    def total_amount(self) -> float:
        """Total of all item amounts."""
        return sum(item.amount for item in self.items)

    def preview(self, limit: int = 3) -> list[TemplateItem]:
        """First few items, for list displays."""
        return self.items[:limit]
