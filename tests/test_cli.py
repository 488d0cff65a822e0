"""Tests for the Typer CLI."""

from datetime import date
from decimal import Decimal

import pytest
from typer.testing import CliRunner

from finunify.cli import app, format_money
from finunify.db import Database
from finunify.models import Transaction

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point the CLI at a temporary database."""
    path = tmp_path / "cli.db"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_PATH", str(path))
    return path


@pytest.fixture
def dinner(db_path):
    """Store one unsplit transaction."""
    db = Database(db_path)
    db.apply_batch(
        upserts=[
            Transaction(
                id="tx-dinner",
                date=date(2024, 3, 1),
                amount=Decimal("90.00"),
                original_description="OSTERIA",
                enhanced_description="Osteria Dinner",
            )
        ]
    )
    db.close()
    return "tx-dinner"


class TestFormatMoney:
    """Tests for accounting-style money formatting."""

    def test_positive_and_negative(self):
        """Negatives get parentheses, positives get padding."""
        assert format_money(Decimal("85.02"), use_color=False) == " $85.02 "
        assert format_money(Decimal("-1234.5"), use_color=False) == "($1,234.50)"


class TestCommands:
    """Tests for CLI commands against a temporary ledger."""

    def test_split_then_settle(self, dinner):
        """Split a bill three ways and record a payment."""
        result = runner.invoke(
            app, ["split", dinner, "--with", "Alex", "--with", "Sam", "--exclude-me"]
        )
        assert result.exit_code == 0, result.output
        assert "Alex" in result.output

        result = runner.invoke(app, ["settle", "Alex", "45"])
        assert result.exit_code == 0, result.output
        assert "Applied" in result.output

        result = runner.invoke(app, ["balances"])
        assert result.exit_code == 0, result.output
        assert "Sam" in result.output

    def test_settle_unknown_person(self, db_path):
        """Nothing to settle is reported, not an error."""
        result = runner.invoke(app, ["settle", "Nobody", "10", "--yes"])
        assert result.exit_code == 0, result.output
        assert "No bills found" in result.output

    def test_invalid_payment(self, dinner):
        """Non-positive payments exit with an error."""
        runner.invoke(app, ["split", dinner, "--with", "Alex"])
        result = runner.invoke(app, ["settle", "Alex", "0", "--yes"])
        assert result.exit_code == 1

    def test_unknown_transaction(self, db_path):
        """Missing transactions exit with status 1."""
        result = runner.invoke(app, ["toggle", "tx-missing", "item"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_transactions_empty(self, db_path):
        """An empty ledger says so."""
        result = runner.invoke(app, ["transactions"])
        assert result.exit_code == 0
        assert "empty" in result.output

    def test_balances_open_bills_only(self, dinner):
        """--open hides bills a person has fully paid."""
        runner.invoke(app, ["split", dinner, "--with", "Alex", "--with", "Sam", "--exclude-me"])
        runner.invoke(app, ["settle", "Alex", "45", "--yes"])

        result = runner.invoke(app, ["balances", "Alex"])
        assert result.exit_code == 0, result.output
        assert "settled" in result.output

        result = runner.invoke(app, ["balances", "Alex", "--open"])
        assert result.exit_code == 0, result.output
        assert "settled" not in result.output

        result = runner.invoke(app, ["balances", "Sam", "--open"])
        assert result.exit_code == 0, result.output
        assert "Osteria Dinner" in result.output

    def test_balances_open_needs_person(self, db_path):
        """--open without a person is a usage error."""
        result = runner.invoke(app, ["balances", "--open"])
        assert result.exit_code == 2
