"""Tests for MCP server tools."""

import pytest

from fairshare import mcp_server
from fairshare.mcp_server import SessionState


@pytest.fixture
def session(monkeypatch, alice, flat):
    """Install a ready service so tools skip settings loading."""
    state = SessionState(service=alice)
    monkeypatch.setattr(mcp_server, "_state", state)
    return state


class TestTools:
    """Tool functions return readable text and never raise."""

    def test_preview_split_writes_nothing(self, session, flat, db):
        """Previewing shows the shares without recording an expense."""
        result = mcp_server.preview_split(flat.id, 100.0, policy="currentUserOwed")

        assert "bob: $50.00" in result
        assert "alice: $0.00" in result
        assert db.list_expenses(flat.id) == []

    def test_add_expense_and_balances(self, session, flat):
        """Recorded expenses show up in balances."""
        result = mcp_server.add_expense(flat.id, 90.0, description="Dinner")
        assert result.startswith("Expense recorded")

        balances = mcp_server.show_balances(flat.id)
        assert "alice: $60.00" in balances
        assert "bob: ($30.00)" in balances

    def test_errors_are_reported_with_kind(self, session, flat):
        """Domain failures come back as tagged error strings."""
        result = mcp_server.add_expense(flat.id, -5.0)

        assert result.startswith("Error (invalid_amount)")

    def test_unknown_policy(self, session, flat):
        """A policy name outside the enum is reported, not raised."""
        result = mcp_server.add_expense(flat.id, 10.0, policy="half")

        assert result.startswith("Error:")

    def test_settle_group_summary(self, session, flat):
        """Group settlement reports count and total."""
        mcp_server.add_expense(flat.id, 30.0)
        mcp_server.add_expense(flat.id, 12.5)

        result = mcp_server.settle_group(flat.id)

        assert result.startswith("Settled 2 expenses totalling $42.50")
        assert "No expenses found." == mcp_server.list_expenses(flat.id)
