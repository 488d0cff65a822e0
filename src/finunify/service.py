"""Service layer that composes the ledger store with the reconciliation engines.

Every operation that touches more than one transaction builds the full set
of updated copies first and hands them to the database as one batch.
"""

import logging
from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Any, Literal

from .clients.openai_client import DocumentExtractor
from .config import Settings
from .db import Database
from .exceptions import (
    DuplicatePairNotFoundError,
    TransactionNotFoundError,
)
from .models import (
    Account,
    CandidateRecord,
    Category,
    ImportResult,
    LendingSummary,
    PaymentRecord,
    PersonLedgerEntry,
    Rule,
    SplitParticipant,
    SplitResult,
    SplitType,
    Transaction,
    new_id,
)
from .reconciler import process_candidates
from .rules import apply_rules
from .settlement import (
    allocate,
    lending_summary,
    open_bills,
    outstanding_for_person,
    payment_history,
    person_history,
)
from .splits import (
    clear_split,
    compute_split,
    rename_participant,
    toggle_item_settlement,
)

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for importing, reviewing, splitting and settling transactions."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database
        if settings.seed_defaults and self.db.seed_defaults():
            logger.info("Seeded default categories, accounts and rules")

    # ========================================================================
    # Ledger access
    # ========================================================================

    def ledger(self) -> list[Transaction]:
        """All transactions in ledger order."""
        return self.db.list_transactions()

    def get_transaction(self, transaction_id: str) -> Transaction:
        """Get a transaction or raise TransactionNotFoundError."""
        transaction = self.db.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def update_transactions(self, transactions: list[Transaction]) -> None:
        """Replace a set of transactions in one commit."""
        if not transactions:
            return
        self.db.apply_batch(upserts=transactions)

    # ========================================================================
    # Import
    # ========================================================================

    def extract_document(
        self,
        content: str | bytes,
        mime_type: str,
        account_id: str | None = None,
        filename: str = "document",
    ) -> list[CandidateRecord]:
        """
        Run document extraction for an upload.

        Raises:
            ExtractionError: If the extraction service fails
        """
        account = self.db.get_account(account_id) if account_id else None
        if account_id and account is None:
            logger.warning(f"Unknown account {account_id}; importing unlinked")

        with DocumentExtractor(
            api_key=self.settings.require_openai_key(),
            model=self.settings.openai_model,
            timeout=self.settings.extraction_timeout,
        ) as extractor:
            return extractor.extract(
                content,
                mime_type,
                categories=self.db.list_categories(),
                account=account,
                filename=filename,
            )

    def suggest_category(self, description: str) -> str:
        """Ask the extraction model for a single category suggestion."""
        with DocumentExtractor(
            api_key=self.settings.require_openai_key(),
            model=self.settings.openai_model,
            timeout=self.settings.extraction_timeout,
        ) as extractor:
            return extractor.suggest_category(description, self.db.list_categories())

    def import_candidates(
        self, candidates: list[CandidateRecord | dict[str, Any]]
    ) -> ImportResult:
        """
        Reconcile extracted candidates and store the outcome.

        Accepted transactions are appended to the ledger and duplicate
        pairs are queued for review in the same commit.
        """
        result = process_candidates(
            candidates,
            ledger=self.db.list_transactions(),
            rules=self.db.list_rules(),
            review_threshold=self.settings.review_confidence_threshold,
        )
        self.db.record_import(result.accepted, result.duplicate_pairs)
        return result

    def import_document(
        self,
        content: str | bytes,
        mime_type: str,
        account_id: str | None = None,
        filename: str = "document",
    ) -> ImportResult:
        """Extract and reconcile a document. Nothing is stored if extraction fails."""
        candidates = self.extract_document(content, mime_type, account_id, filename)
        return self.import_candidates(list(candidates))

    # ========================================================================
    # Review
    # ========================================================================

    def pending_duplicates(self):
        """Duplicate pairs waiting for a decision."""
        return self.db.list_duplicate_pairs()

    def review_queue(self) -> list[Transaction]:
        """Transactions flagged as needing review."""
        return [tx for tx in self.ledger() if tx.status == "needs_review"]

    def review_count(self) -> int:
        """Pending duplicates plus transactions needing review."""
        return len(self.pending_duplicates()) + len(self.review_queue())

    def resolve_duplicate(
        self, pair_id: str, action: Literal["keep_both", "discard_incoming"]
    ) -> Transaction | None:
        """
        Resolve a pending duplicate pair.

        Args:
            pair_id: The pair to resolve
            action: keep_both accepts the incoming record as verified;
                discard_incoming drops it

        Returns:
            The accepted transaction for keep_both, otherwise None
        """
        pair = self.db.get_duplicate_pair(pair_id)
        if pair is None:
            raise DuplicatePairNotFoundError(f"Duplicate pair {pair_id} not found")

        if action == "keep_both":
            accepted = pair.incoming.model_copy(update={"status": "verified"})
            self.db.resolve_duplicate_pair(pair_id, accept=accepted)
            logger.info(f"Kept both: added {accepted.id}")
            return accepted
        if action == "discard_incoming":
            self.db.resolve_duplicate_pair(pair_id)
            logger.info(f"Discarded incoming record of pair {pair_id}")
            return None
        raise ValueError(f"Unknown duplicate resolution: {action}")

    def review_transaction(
        self,
        transaction_id: str,
        action: Literal["approve", "delete"],
        updated: Transaction | None = None,
    ) -> Transaction | None:
        """Approve (optionally with edits) or delete a transaction from the review queue."""
        current = self.get_transaction(transaction_id)

        if action == "delete":
            self.db.apply_batch(deletes=[transaction_id])
            logger.info(f"Deleted {transaction_id} from review")
            return None
        if action == "approve":
            base = updated if updated is not None else current
            approved = base.model_copy(
                update={"id": current.id, "status": "verified", "is_reviewed": True}
            )
            self.db.apply_batch(upserts=[approved])
            return approved
        raise ValueError(f"Unknown review action: {action}")

    def edit_transaction(self, transaction: Transaction) -> Transaction:
        """Save a manual edit; edited transactions count as verified and reviewed."""
        self.get_transaction(transaction.id)
        edited = transaction.model_copy(
            update={"status": "verified", "confidence": 100, "is_reviewed": True}
        )
        self.db.apply_batch(upserts=[edited])
        return edited

    def bulk_review(self, transaction_ids: list[str], is_reviewed: bool) -> int:
        """Set the reviewed flag on many transactions."""
        wanted = set(transaction_ids)
        changed = [
            tx.model_copy(update={"is_reviewed": is_reviewed})
            for tx in self.ledger()
            if tx.id in wanted
        ]
        self.update_transactions(changed)
        return len(changed)

    def bulk_delete(self, transaction_ids: list[str]) -> int:
        """Delete many transactions."""
        return self.db.delete_transactions(transaction_ids)

    # ========================================================================
    # Rules
    # ========================================================================

    def run_rules_on_all(self) -> int:
        """
        Re-apply the current rules to the whole ledger.

        Returns:
            Number of transactions that changed
        """
        rules = self.db.list_rules()
        changed = []
        for tx in self.ledger():
            enriched = apply_rules(tx, rules)
            if enriched != tx:
                changed.append(enriched)
        self.update_transactions(changed)
        logger.info(f"Rules updated {len(changed)} transaction(s)")
        return len(changed)

    def list_rules(self) -> list[Rule]:
        """Rules in evaluation order."""
        return self.db.list_rules()

    def save_rule(self, rule: Rule) -> Rule:
        """Add or update a rule."""
        self.db.save_rule(rule)
        return rule

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule."""
        return self.db.delete_rule(rule_id)

    # ========================================================================
    # Splits and settlement
    # ========================================================================

    def save_split(
        self,
        transaction_id: str,
        mode: SplitType,
        participants: list[SplitParticipant],
        today: date | None = None,
    ) -> SplitResult:
        """
        Split a transaction and commit it with every credit-sweep source.

        Raises:
            OverAllocationError: If exact amounts exceed the bill; nothing is saved
        """
        transaction = self.get_transaction(transaction_id)
        result = compute_split(
            transaction, mode, participants, ledger=self.ledger(), today=today
        )
        self.db.apply_batch(upserts=result.batch)
        return result

    def clear_split(self, transaction_id: str) -> Transaction:
        """Remove a transaction's split."""
        updated = clear_split(self.get_transaction(transaction_id))
        self.db.apply_batch(upserts=[updated])
        return updated

    def toggle_item_settlement(self, transaction_id: str, item_id: str) -> Transaction:
        """Mark a split item settled, or unpaid if it already is."""
        updated = toggle_item_settlement(self.get_transaction(transaction_id), item_id)
        self.db.apply_batch(upserts=[updated])
        return updated

    def settle_bulk(self, person: str, amount: Decimal | float | str) -> list[Transaction]:
        """Allocate a lump payment from a person across their bills."""
        updated = allocate(person, amount, self.ledger())
        self.update_transactions(updated)
        return updated

    def rename_participant(self, old_name: str, new_name: str) -> int:
        """Rename a person across every bill they appear on."""
        changed = rename_participant(self.ledger(), old_name, new_name)
        self.update_transactions(changed)
        return len(changed)

    def lending_summary(self) -> LendingSummary:
        """Owed/settled totals and per-person balances."""
        return lending_summary(self.ledger())

    def person_history(self, person: str) -> list[PersonLedgerEntry]:
        """A person's bills, newest first."""
        return person_history(self.ledger(), person)

    def open_bills(self, person: str) -> list[PersonLedgerEntry]:
        """A person's unpaid or credit-carrying bills, newest first."""
        return open_bills(self.ledger(), person)

    def payment_history(self, person: str) -> list[PaymentRecord]:
        """A person's payments, newest first."""
        return payment_history(self.ledger(), person)

    def outstanding_for(self, person: str) -> Decimal:
        """What a person owes in total (negative = credit)."""
        return outstanding_for_person(self.ledger(), person)

    # ========================================================================
    # Tags
    # ========================================================================

    def list_tags(self) -> dict[str, int]:
        """Tags in use with the number of transactions carrying each."""
        counts: Counter[str] = Counter()
        for tx in self.ledger():
            counts.update(tx.tags)
        return dict(counts.most_common())

    def rename_tag(self, old_tag: str, new_tag: str) -> int:
        """Rename a tag on every transaction."""
        new_tag = new_tag.strip()
        if not new_tag:
            raise ValueError("New tag name must not be empty")

        changed = []
        for tx in self.ledger():
            if old_tag in tx.tags:
                tags = list(dict.fromkeys(new_tag if t == old_tag else t for t in tx.tags))
                changed.append(tx.model_copy(update={"tags": tags}))
        self.update_transactions(changed)
        logger.info(f"Renamed tag {old_tag!r} to {new_tag!r} on {len(changed)} transaction(s)")
        return len(changed)

    def delete_tag(self, tag: str) -> int:
        """Remove a tag from every transaction."""
        changed = [
            tx.model_copy(update={"tags": [t for t in tx.tags if t != tag]})
            for tx in self.ledger()
            if tag in tx.tags
        ]
        self.update_transactions(changed)
        logger.info(f"Deleted tag {tag!r} from {len(changed)} transaction(s)")
        return len(changed)

    # ========================================================================
    # Accounts and categories
    # ========================================================================

    def list_accounts(self) -> list[Account]:
        """Accounts in display order."""
        return self.db.list_accounts()

    def add_account(self, **fields: Any) -> Account:
        """Create an account with a fresh id."""
        account = Account(id=new_id("acc"), **fields)
        self.db.save_account(account)
        return account

    def update_account(self, account: Account) -> int:
        """
        Save an account; linked transactions take the new account name as source.

        Returns:
            Number of transactions relabelled
        """
        relabelled = [
            tx.model_copy(update={"source": account.name})
            for tx in self.ledger()
            if tx.account_id == account.id
        ]
        self.db.save_account_with_transactions(account, relabelled)
        return len(relabelled)

    def delete_account(self, account_id: str) -> int:
        """
        Delete an account and unlink its transactions.

        Returns:
            Number of transactions unlinked
        """
        unlinked = [
            tx.model_copy(update={"account_id": None, "source": f"{tx.source} (Deleted)"})
            for tx in self.ledger()
            if tx.account_id == account_id
        ]
        self.db.delete_account(account_id, unlinked)
        logger.info(f"Deleted account {account_id}, unlinked {len(unlinked)} transaction(s)")
        return len(unlinked)

    def list_categories(self) -> list[Category]:
        """Categories in display order."""
        return self.db.list_categories()

    def add_category(self, name: str, color: str) -> Category:
        """Create a category."""
        category = Category(id=new_id("cat"), name=name, color=color)
        self.db.save_category(category)
        return category

    def delete_category(self, category_id: str) -> bool:
        """Delete a category. Transactions keep their category label."""
        return self.db.delete_category(category_id)
