"""Tests for bulk settlement allocation and lending views."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from finunify.exceptions import InvalidPaymentError
from finunify.integrity import paid_total
from finunify.models import SplitDetails, SplitItem, Transaction
from finunify.settlement import (
    allocate,
    lending_summary,
    open_bills,
    outstanding_for_person,
    payment_history,
    person_history,
)

NOW = datetime(2024, 5, 1, 12, 0)


def make_bill(tx_id: str, day: int, shares: dict[str, tuple[str, str]]) -> Transaction:
    """Create a split bill; shares maps name -> (owed, paid)."""
    items = []
    for name, (owed, paid) in shares.items():
        owed_amount, paid_amount = Decimal(owed), Decimal(paid)
        items.append(
            SplitItem(
                id=f"{tx_id}-{name.lower()}",
                name=name,
                amount=owed_amount,
                paid_amount=paid_amount,
                is_settled=paid_amount >= owed_amount,
                date_settled=date(2024, 1, day) if paid_amount >= owed_amount else None,
            )
        )
    details = SplitDetails(items=items, date_lent=date(2024, 1, day))
    details.recompute_total()
    return Transaction(
        id=tx_id,
        date=date(2024, 1, day),
        amount=details.total_lent * 2,
        original_description=f"BILL {tx_id}",
        enhanced_description=f"Bill {tx_id}",
        split_details=details,
    )


class TestAllocate:
    """Tests for the waterfall allocation."""

    def test_oldest_bill_is_paid_first(self):
        """$10 older and $15 newer bills with a $12 payment: 10 then 2."""
        older = make_bill("older", 1, {"Alex": ("10.00", "0")})
        newer = make_bill("newer", 5, {"Alex": ("15.00", "0")})

        updated = allocate("Alex", Decimal("12.00"), [newer, older], now=NOW)

        by_id = {tx.id: tx.split_item_for("Alex") for tx in updated}
        assert by_id["older"].paid_amount == Decimal("10.00")
        assert by_id["older"].is_settled is True
        assert by_id["older"].date_settled == NOW.date()
        assert by_id["newer"].paid_amount == Decimal("2.00")
        assert by_id["newer"].is_settled is False
        assert [p.amount for p in by_id["newer"].payments] == [Decimal("2.00")]

    def test_overflow_goes_to_newest_bill(self):
        """A $30 payment on $10 + $15 leaves $5 credit on the newest bill."""
        older = make_bill("older", 1, {"Alex": ("10.00", "0")})
        newer = make_bill("newer", 5, {"Alex": ("15.00", "0")})

        updated = allocate("Alex", "30", [older, newer], now=NOW)

        by_id = {tx.id: tx.split_item_for("Alex") for tx in updated}
        assert by_id["older"].paid_amount == Decimal("10.00")
        assert by_id["newer"].paid_amount == Decimal("20.00")
        assert by_id["newer"].is_settled is True
        assert by_id["newer"].surplus == Decimal("5.00")

    def test_overflow_lands_on_settled_newest_bill(self):
        """Credit is parked on the newest bill even when it is already paid."""
        older = make_bill("older", 1, {"Alex": ("10.00", "0")})
        newer = make_bill("newer", 5, {"Alex": ("15.00", "15.00")})

        updated = allocate("Alex", Decimal("12.00"), [older, newer], now=NOW)

        by_id = {tx.id: tx.split_item_for("Alex") for tx in updated}
        assert by_id["older"].paid_amount == Decimal("10.00")
        assert by_id["newer"].paid_amount == Decimal("17.00")
        assert by_id["newer"].date_settled == date(2024, 1, 5)

    def test_only_touched_bills_are_returned(self):
        """Bills the payment never reached are not part of the batch."""
        bills = [
            make_bill("a", 1, {"Alex": ("10.00", "0")}),
            make_bill("b", 2, {"Alex": ("10.00", "0")}),
            make_bill("c", 3, {"Alex": ("10.00", "0")}),
        ]
        updated = allocate("Alex", Decimal("10.00"), bills, now=NOW)
        assert [tx.id for tx in updated] == ["a"]

    def test_paid_delta_equals_payment(self):
        """The batch adds exactly the payment to the person's paid total."""
        bills = [
            make_bill("a", 1, {"Alex": ("7.33", "1.00"), "Sam": ("7.33", "0")}),
            make_bill("b", 3, {"Alex": ("12.10", "0")}),
        ]
        updated = allocate("Alex", Decimal("25.55"), bills, now=NOW)
        assert paid_total(updated, "Alex") - paid_total(bills, "Alex") == Decimal("25.55")
        assert paid_total(updated, "Sam") == 0

    def test_inputs_not_mutated(self):
        """Allocation works on copies."""
        bill = make_bill("a", 1, {"Alex": ("10.00", "0")})
        allocate("Alex", Decimal("5"), [bill], now=NOW)
        assert bill.split_item_for("Alex").paid_amount == 0

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00"), "0.001"])
    def test_non_positive_payment_rejected(self, amount):
        """Zero, negative and sub-cent payments are invalid."""
        bill = make_bill("a", 1, {"Alex": ("10.00", "0")})
        with pytest.raises(InvalidPaymentError):
            allocate("Alex", amount, [bill], now=NOW)

    def test_unknown_person(self):
        """Nobody to allocate to means nothing changes."""
        bill = make_bill("a", 1, {"Alex": ("10.00", "0")})
        assert allocate("Taylor", Decimal("5"), [bill], now=NOW) == []


class TestLendingViews:
    """Tests for summaries and per-person history."""

    @pytest.fixture
    def ledger(self):
        """Alex owes on two bills and overpaid on a third; Sam is settled."""
        return [
            make_bill("t1", 1, {"Alex": ("10.00", "0"), "Sam": ("10.00", "10.00")}),
            make_bill("t2", 4, {"Alex": ("20.00", "5.00")}),
            make_bill("t3", 2, {"Alex": ("8.00", "10.00")}),
            Transaction(
                id="plain",
                date=date(2024, 1, 3),
                amount=Decimal("4.00"),
                original_description="COFFEE",
                enhanced_description="Coffee",
            ),
        ]

    def test_lending_summary(self, ledger):
        """Totals and balances cover every split item."""
        summary = lending_summary(ledger)

        assert summary.total_owed == Decimal("23.00")
        assert summary.total_settled == Decimal("25.00")
        assert [(b.name, b.balance) for b in summary.balances] == [
            ("Alex", Decimal("23.00")),
            ("Sam", Decimal("0.00")),
        ]

    def test_person_history_newest_first(self, ledger):
        """History lists the person's bills newest first."""
        assert [e.transaction.id for e in person_history(ledger, "Alex")] == ["t2", "t3", "t1"]

    def test_open_bills_include_credit(self, ledger):
        """Unpaid bills and bills holding credit are both open."""
        assert [e.transaction.id for e in open_bills(ledger, "Alex")] == ["t2", "t3", "t1"]
        assert open_bills(ledger, "Sam") == []

    def test_outstanding_for_person(self, ledger):
        """Net balance nets credit against debt."""
        assert outstanding_for_person(ledger, "Alex") == Decimal("23.00")
        assert outstanding_for_person(ledger, "Nobody") == 0

    def test_payment_history(self, ledger):
        """Payments from allocations show up newest first."""
        first = allocate("Alex", Decimal("5"), ledger, now=datetime(2024, 2, 1))
        merged = {tx.id: tx for tx in ledger} | {tx.id: tx for tx in first}
        second = allocate("Alex", Decimal("3"), list(merged.values()), now=datetime(2024, 3, 1))
        merged |= {tx.id: tx for tx in second}

        records = payment_history(list(merged.values()), "Alex")

        assert [r.payment.amount for r in records] == [Decimal("3"), Decimal("5")]
        assert records[0].transaction_id == "t1"
