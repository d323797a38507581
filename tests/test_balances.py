"""Tests for balance aggregation."""

from datetime import UTC, datetime

import pytest

from fairshare.balances import (
    compute_balance,
    compute_balances,
    legacy_payments,
    paid_by,
)
from fairshare.models import Expense, SplitPolicy
from fairshare.splits import compute_splits

MEMBERS = ["alice", "bob", "carol"]
SETTLED_AT = datetime(2025, 3, 2, tzinfo=UTC)


def make_expense(
    amount: float,
    payer_id: str = "alice",
    policy: SplitPolicy = SplitPolicy.EQUAL,
    members: list[str] = MEMBERS,
    payments: dict[str, float] | None = None,
    settled: bool = False,
    percentages: dict[str, float] | None = None,
) -> Expense:
    """Build an expense the way the service would, with an explicit ledger."""
    return Expense(
        amount=amount,
        group_id="g1",
        payer_id=payer_id,
        split_policy=policy,
        splits=compute_splits(amount, policy, members, payer_id, percentages),
        payments={payer_id: amount} if payments is None else payments,
        settled=settled,
        settled_at=SETTLED_AT if settled else None,
    )


class TestComputeBalance:
    """Tests for a single member's balance."""

    def test_equal_split_three_members(self):
        """Alice pays 90 split three ways: she is owed 60, the others owe 30."""
        expenses = [make_expense(90.0)]

        assert compute_balance(expenses, "alice") == pytest.approx(60.0)
        assert compute_balance(expenses, "bob") == pytest.approx(-30.0)
        assert compute_balance(expenses, "carol") == pytest.approx(-30.0)

    def test_no_expenses(self):
        """A member with no history has a zero balance."""
        assert compute_balance([], "alice") == 0.0

    def test_outsider_has_zero_balance(self):
        """A member absent from every expense neither paid nor owes."""
        assert compute_balance([make_expense(90.0)], "mallory") == 0.0

    def test_payer_owed_all(self):
        """Payer is owed the full amount when the others split it."""
        expenses = [make_expense(100.0, policy=SplitPolicy.PAYER_OWED_ALL)]

        assert compute_balance(expenses, "alice") == pytest.approx(100.0)
        assert compute_balance(expenses, "bob") == pytest.approx(-50.0)

    def test_settled_expenses_can_be_excluded(self):
        """include_settled=False skips settled expenses entirely."""
        expenses = [make_expense(90.0), make_expense(30.0, settled=True)]

        assert compute_balance(expenses, "alice") == pytest.approx(80.0)
        assert compute_balance(expenses, "alice", include_settled=False) == (
            pytest.approx(60.0)
        )

    def test_multiple_payers_offset(self):
        """Balances accumulate across expenses with different payers."""
        expenses = [
            make_expense(90.0, payer_id="alice"),
            make_expense(60.0, payer_id="bob"),
        ]

        assert compute_balance(expenses, "alice") == pytest.approx(40.0)
        assert compute_balance(expenses, "bob") == pytest.approx(10.0)
        assert compute_balance(expenses, "carol") == pytest.approx(-50.0)

    def test_shared_payment_ledger(self):
        """When two members paid, each gets credit for their own part."""
        expense = make_expense(90.0, payments={"alice": 60.0, "bob": 30.0})

        assert compute_balance([expense], "alice") == pytest.approx(30.0)
        assert compute_balance([expense], "bob") == pytest.approx(0.0)
        assert compute_balance([expense], "carol") == pytest.approx(-30.0)


class TestConservation:
    """Balances across a group net to zero when every expense conserves."""

    @pytest.mark.parametrize(
        "policy,percentages",
        [
            (SplitPolicy.EQUAL, None),
            (SplitPolicy.PAYER_OWED_ALL, None),
            (SplitPolicy.CUSTOM, {"alice": 20.0, "bob": 30.0, "carol": 50.0}),
        ],
    )
    def test_balances_sum_to_zero(self, policy, percentages):
        """Sum of balances stays within tolerance of zero."""
        expenses = [
            make_expense(100.0, "alice", policy, percentages=percentages),
            make_expense(33.33, "bob", policy, percentages=percentages),
            make_expense(12.5, "carol", policy, percentages=percentages),
        ]

        balances = compute_balances(expenses, MEMBERS)

        assert abs(sum(balances.values())) < 0.01

    def test_former_member_still_reconciles(self):
        """Someone who left still shows up so the totals add up."""
        expenses = [make_expense(90.0, members=["alice", "bob", "dave"])]

        balances = compute_balances(expenses, MEMBERS)

        assert balances["dave"] == pytest.approx(-30.0)
        assert balances["carol"] == 0.0
        assert abs(sum(balances.values())) < 0.01


class TestLegacyPayments:
    """Tests for expenses recorded without a payment ledger."""

    def test_equal_split_falls_back_to_payer(self):
        """Without payments the payer is assumed to have paid everything."""
        expense = make_expense(90.0, payments={})

        assert legacy_payments(expense) == {"alice": 90.0}
        assert paid_by(expense, "alice") == 90.0
        assert paid_by(expense, "bob") == 0.0
        assert compute_balance([expense], "alice") == pytest.approx(60.0)

    def test_payer_owes_all_has_no_payment(self):
        """Under PAYER_OWES_ALL the legacy payer owes instead of paying."""
        expense = make_expense(50.0, policy=SplitPolicy.PAYER_OWES_ALL, payments={})

        assert legacy_payments(expense) == {}
        assert compute_balance([expense], "alice") == pytest.approx(-50.0)

    def test_payer_owes_all_with_ledger_nets_zero(self):
        """A recorded payment cancels the payer's own debt."""
        expense = make_expense(50.0, policy=SplitPolicy.PAYER_OWES_ALL)

        assert compute_balance([expense], "alice") == pytest.approx(0.0)
        assert compute_balance([expense], "bob") == 0.0
