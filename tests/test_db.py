"""Tests for the SQLite ledger store."""

from datetime import date
from decimal import Decimal

import pytest

from finunify.db import Database
from finunify.models import (
    Account,
    DuplicatePair,
    SplitDetails,
    SplitItem,
    Transaction,
)


@pytest.fixture
def db(tmp_path):
    """Create a temporary database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


def make_transaction(tx_id: str, amount: str = "10.00") -> Transaction:
    """Create a transaction for storage tests."""
    return Transaction(
        id=tx_id,
        date=date(2024, 2, 1),
        amount=Decimal(amount),
        original_description=f"ITEM {tx_id}",
        enhanced_description=f"Item {tx_id}",
        tags=["a"],
    )


class TestTransactions:
    """Tests for transaction storage."""

    def test_round_trip_with_split(self, db):
        """A split transaction comes back with its decimals intact."""
        tx = make_transaction("tx-1", "33.34")
        tx.split_details = SplitDetails(
            total_lent=Decimal("16.67"),
            date_lent=date(2024, 2, 1),
            items=[SplitItem(id="i-1", name="Alex", amount=Decimal("16.67"), paid_amount=Decimal("0.01"))],
        )

        db.apply_batch(upserts=[tx])

        stored = db.get_transaction("tx-1")
        assert stored == tx
        assert stored.split_details.items[0].paid_amount == Decimal("0.01")

    def test_insertion_order_survives_updates(self, db):
        """Updating a transaction keeps its place in the ledger."""
        db.apply_batch(upserts=[make_transaction("tx-1"), make_transaction("tx-2")])
        db.apply_batch(upserts=[make_transaction("tx-1", "99.00")])

        ledger = db.list_transactions()

        assert [tx.id for tx in ledger] == ["tx-1", "tx-2"]
        assert ledger[0].amount == Decimal("99.00")

    def test_batch_is_atomic(self, db):
        """A failure mid-batch writes nothing."""
        db.apply_batch(upserts=[make_transaction("tx-0")])

        def failing_batch():
            yield make_transaction("tx-1")
            raise RuntimeError("disk on fire")

        with pytest.raises(RuntimeError):
            db.apply_batch(upserts=failing_batch(), deletes=["tx-0"])

        assert [tx.id for tx in db.list_transactions()] == ["tx-0"]

    def test_batch_deletes(self, db):
        """Deletes in a batch remove rows."""
        db.apply_batch(upserts=[make_transaction("tx-1"), make_transaction("tx-2")])
        db.apply_batch(deletes=["tx-1"])
        assert [tx.id for tx in db.list_transactions()] == ["tx-2"]

    def test_delete_transactions_counts(self, db):
        """delete_transactions reports how many rows went away."""
        db.apply_batch(upserts=[make_transaction("tx-1")])
        assert db.delete_transactions(["tx-1", "missing"]) == 1

    def test_missing_transaction(self, db):
        """Unknown ids return None."""
        assert db.get_transaction("nope") is None


class TestDuplicatePairs:
    """Tests for the duplicate review queue."""

    def test_record_import_and_resolve(self, db):
        """Imports queue pairs; accepting one adds it and clears the pair."""
        existing = make_transaction("tx-1")
        incoming = make_transaction("tx-2")
        pair = DuplicatePair(existing=existing, incoming=incoming, confidence=0.9)

        db.record_import([existing], [pair])
        assert [p.id for p in db.list_duplicate_pairs()] == [pair.id]

        db.resolve_duplicate_pair(pair.id, accept=incoming)

        assert db.list_duplicate_pairs() == []
        assert [tx.id for tx in db.list_transactions()] == ["tx-1", "tx-2"]

    def test_resolve_without_accepting(self, db):
        """Discarding only removes the pair."""
        pair = DuplicatePair(
            existing=make_transaction("tx-1"), incoming=make_transaction("tx-2"), confidence=0.9
        )
        db.record_import([], [pair])

        db.resolve_duplicate_pair(pair.id)

        assert db.get_duplicate_pair(pair.id) is None
        assert db.list_transactions() == []


class TestReferenceData:
    """Tests for defaults, accounts and config."""

    def test_seed_defaults_once(self, db):
        """Defaults are inserted on first use only."""
        assert db.seed_defaults() is True
        db.delete_category("8")
        assert db.seed_defaults() is False

        names = [cat.name for cat in db.list_categories()]
        assert "Groceries" in names
        assert "Other" not in names
        assert [rule.id for rule in db.list_rules()] == ["rule-1", "rule-2"]
        assert db.get_account("acc-1").name == "Chase Sapphire"

    def test_delete_account_saves_unlinked_transactions(self, db):
        """Deleting an account and unlinking its transactions is one write."""
        db.save_account(Account(id="acc-9", name="Wallet", type="wallet"))
        tx = make_transaction("tx-1")
        tx.account_id = "acc-9"
        db.apply_batch(upserts=[tx])

        unlinked = tx.model_copy(update={"account_id": None, "source": "Wallet (Deleted)"})
        assert db.delete_account("acc-9", [unlinked]) is True

        assert db.get_account("acc-9") is None
        assert db.get_transaction("tx-1").source == "Wallet (Deleted)"

    def test_config_values(self, db):
        """Config values can be set and overwritten."""
        assert db.get_config("k") is None
        db.set_config("k", "1")
        db.set_config("k", "2")
        assert db.get_config("k") == "2"
