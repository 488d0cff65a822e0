"""Tests for import reconciliation."""

from datetime import date
from decimal import Decimal

from finunify.models import (
    CandidateRecord,
    Rule,
    RuleActions,
    RuleCriteria,
    Transaction,
)
from finunify.reconciler import build_transaction, process_candidates


def candidate(**overrides) -> dict:
    """Raw extractor output in camelCase, as the model returns it."""
    row = {
        "date": "2024-03-05",
        "amount": 23.5,
        "originalDescription": "TRADER JOES #552",
        "enhancedDescription": "Trader Joe's",
        "category": "Groceries",
        "isExpense": True,
        "tags": ["food"],
        "confidence": 95,
    }
    row.update(overrides)
    return row


def existing_transaction(day: int = 5, amount: str = "23.50") -> Transaction:
    """A transaction already in the ledger."""
    return Transaction(
        id="tx-existing",
        date=date(2024, 3, day),
        amount=Decimal(amount),
        original_description="TJ'S",
        enhanced_description="Trader Joe's",
    )


class TestBuildTransaction:
    """Tests for turning one candidate into a transaction."""

    def test_confidence_threshold_sets_status(self):
        """80 and above is verified, below is flagged for review."""
        verified = build_transaction(CandidateRecord.model_validate(candidate(confidence=80)))
        flagged = build_transaction(CandidateRecord.model_validate(candidate(confidence=79)))

        assert verified.status == "verified"
        assert flagged.status == "needs_review"
        assert verified.is_reviewed is False
        assert flagged.is_reviewed is False

    def test_custom_threshold(self):
        """The review threshold is configurable."""
        tx = build_transaction(
            CandidateRecord.model_validate(candidate(confidence=85)), review_threshold=90
        )
        assert tx.status == "needs_review"

    def test_defaults_for_optional_fields(self):
        """Missing optional fields fall back to sensible defaults."""
        tx = build_transaction(
            CandidateRecord(
                date=date(2024, 3, 5),
                amount=Decimal("-12.00"),
                original_description="ATM FEE",
            )
        )
        assert tx.amount == Decimal("12.00")
        assert tx.enhanced_description == "ATM FEE"
        assert tx.category == "Other"
        assert tx.source == "Manual"
        assert tx.is_expense is True
        assert tx.confidence == 0
        assert tx.status == "needs_review"

    def test_fresh_unique_ids(self):
        """Every built transaction gets its own id."""
        record = CandidateRecord.model_validate(candidate())
        assert build_transaction(record).id != build_transaction(record).id


class TestProcessCandidates:
    """Tests for process_candidates."""

    def test_accepts_clean_records(self):
        """Records with no duplicates are accepted."""
        result = process_candidates([candidate()], ledger=[], rules=[])

        assert len(result.accepted) == 1
        assert result.duplicate_pairs == []
        assert result.dropped == 0
        tx = result.accepted[0]
        assert tx.amount == Decimal("23.5")
        assert tx.category == "Groceries"
        assert result.next_view == "transactions"

    def test_drops_records_missing_required_fields(self):
        """Records without date, amount or description are counted and skipped."""
        rows = [
            candidate(),
            candidate(date=None),
            candidate(amount=None),
            candidate(originalDescription=""),
            candidate(amount="not a number"),
        ]

        result = process_candidates(rows, ledger=[], rules=[])

        assert len(result.accepted) == 1
        assert result.dropped == 4

    def test_duplicate_goes_to_pairs_not_ledger(self):
        """A record matching the ledger is held as a duplicate pair."""
        ledger = [existing_transaction(day=4)]

        result = process_candidates([candidate()], ledger=ledger, rules=[])

        assert result.accepted == []
        assert len(result.duplicate_pairs) == 1
        pair = result.duplicate_pairs[0]
        assert pair.existing.id == "tx-existing"
        assert pair.incoming.original_description == "TRADER JOES #552"
        assert pair.confidence == 0.9
        assert result.next_view == "review"

    def test_batch_is_only_compared_with_prior_ledger(self):
        """Two identical records in one upload do not flag each other."""
        result = process_candidates([candidate(), candidate()], ledger=[], rules=[])

        assert len(result.accepted) == 2
        assert result.duplicate_pairs == []

    def test_ledger_is_not_modified(self):
        """The caller's ledger list is left alone."""
        ledger = [existing_transaction(day=20)]
        process_candidates([candidate()], ledger=ledger, rules=[])
        assert len(ledger) == 1

    def test_rules_run_before_status_is_final(self):
        """A matching rule verifies a low-confidence import."""
        rule = Rule(
            id="rule-1",
            name="Trader Joe's",
            criteria=RuleCriteria(field="originalDescription", operator="contains", value="trader joe"),
            actions=RuleActions(set_category="Groceries", add_tags=["weekly"]),
        )

        result = process_candidates([candidate(confidence=30)], ledger=[], rules=[rule])

        tx = result.accepted[0]
        assert tx.status == "verified"
        assert tx.confidence == 100
        assert tx.is_reviewed is True
        assert tx.tags == ["food", "weekly"]
        assert result.next_view == "transactions"

    def test_low_confidence_routes_to_review(self):
        """Any record needing review sends the user to the review surface."""
        result = process_candidates([candidate(confidence=50)], ledger=[], rules=[])
        assert result.needs_review is True
        assert result.next_view == "review"
