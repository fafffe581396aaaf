"""Tests for the household-split CLI."""

from decimal import Decimal

import pytest
import typer
from typer.testing import CliRunner

from household_split.cli import app, format_money, parse_amount

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point the CLI at a temporary database with no backend configured."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "cli.db"))
    for name in ("BACKEND_URL", "BACKEND_API_KEY", "HOUSEHOLD_ID"):
        monkeypatch.delenv(name, raising=False)


class TestFormatMoney:
    """Tests for accounting-style money formatting."""

    def test_positive(self):
        """Positive amounts are padded for alignment."""
        assert format_money(Decimal("85.02"), use_color=False) == " $85.02 "

    def test_negative(self):
        """Negative amounts use parentheses."""
        assert format_money(Decimal("-1234.5"), use_color=False) == "($1,234.50)"

    def test_currency_symbol(self):
        """The currency symbol is configurable."""
        assert format_money(Decimal("3"), use_color=False, symbol="€") == " €3.00 "


class TestParseAmount:
    """Tests for parsing amounts from the command line."""

    def test_plain_and_formatted(self):
        """Dollar signs and thousands separators are accepted."""
        assert parse_amount("42.50") == Decimal("42.50")
        assert parse_amount("$1,200") == Decimal("1200")

    def test_fractional_cents(self):
        """Amounts finer than a cent are rejected."""
        with pytest.raises(typer.BadParameter, match="fractions of a cent"):
            parse_amount("10.005")


class TestCommands:
    """End-to-end command tests against a temporary database."""

    def test_expense_and_balances(self):
        """Recording an expense shows up in balances and settle-up."""
        assert runner.invoke(app, ["member", "add", "Alice"]).exit_code == 0
        assert runner.invoke(app, ["member", "add", "Bob"]).exit_code == 0

        result = runner.invoke(app, ["expense", "30", "Pizza", "--paid-by", "Alice"])
        assert result.exit_code == 0, result.output
        assert "Expense recorded" in result.output

        result = runner.invoke(app, ["balances"])
        assert result.exit_code == 0, result.output
        assert "Alice" in result.output
        assert "15.00" in result.output

        result = runner.invoke(app, ["settle-up"])
        assert result.exit_code == 0, result.output
        assert "Bob" in result.output

    def test_custom_split_that_doesnt_add_up(self):
        """A bad custom split is reported and exits non-zero."""
        runner.invoke(app, ["member", "add", "Alice"])
        runner.invoke(app, ["member", "add", "Bob"])

        result = runner.invoke(
            app,
            [
                "expense",
                "100",
                "Utilities",
                "--paid-by",
                "Alice",
                "--owed",
                "Alice=40",
                "--owed",
                "Bob=55",
            ],
        )

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_unknown_member(self):
        """Naming a member who doesn't exist fails."""
        result = runner.invoke(app, ["settle", "5", "--from", "Zed", "--to", "Amy"])
        assert result.exit_code == 1
        assert "No member matching" in result.output

    def test_health_on_empty_ledger(self):
        """An empty ledger is healthy."""
        result = runner.invoke(app, ["health"])
        assert result.exit_code == 0, result.output
        assert "Balances sum to zero" in result.output

    def test_cross_check_needs_backend(self):
        """Backend commands explain what configuration is missing."""
        result = runner.invoke(app, ["cross-check"])
        assert result.exit_code == 1
        assert "BACKEND_URL" in result.output

    def test_fractional_cent_amount_is_rejected(self):
        """Amounts finer than a cent are refused before anything is saved."""
        runner.invoke(app, ["member", "add", "Alice"])
        runner.invoke(app, ["member", "add", "Bob"])

        result = runner.invoke(
            app, ["expense", "10.005", "Pizza", "--paid-by", "Alice"]
        )

        assert result.exit_code == 1
        assert "fractions of a cent" in result.output
        assert "Pizza" not in runner.invoke(app, ["history"]).output

    def test_income_shows_who_received_it(self):
        """Income lists the receiver under "Received by"."""
        runner.invoke(app, ["member", "add", "Alice"])

        result = runner.invoke(
            app, ["income", "500", "Bonus", "--received-by", "Alice"]
        )

        assert result.exit_code == 0, result.output
        assert "Received by: Alice" in result.output
        assert "From:" not in result.output

    def test_totals_for_a_member(self):
        """Totals can be narrowed to one member's portion."""
        runner.invoke(app, ["member", "add", "Alice"])
        runner.invoke(app, ["member", "add", "Bob"])
        runner.invoke(app, ["expense", "30", "Pizza", "--paid-by", "Alice"])

        result = runner.invoke(app, ["totals", "--member", "Bob"])

        assert result.exit_code == 0, result.output
        assert "Totals for Bob" in result.output
        assert "15.00" in result.output
