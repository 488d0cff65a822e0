"""Import reconciliation: turn extracted candidates into ledger transactions."""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from .duplicates import find_duplicate, make_duplicate_pair
from .exceptions import CandidateValidationError
from .models import (
    CandidateRecord,
    ImportResult,
    Rule,
    Transaction,
    new_id,
)
from .rules import apply_rules

logger = logging.getLogger(__name__)

DEFAULT_REVIEW_THRESHOLD = 80


def validate_candidate(candidate: CandidateRecord) -> None:
    """
    Check that a candidate carries the fields every transaction needs.

    Raises:
        CandidateValidationError: If date, amount or original description is missing
    """
    missing = []
    if candidate.date is None:
        missing.append("date")
    if candidate.amount is None:
        missing.append("amount")
    if not candidate.original_description:
        missing.append("originalDescription")
    if missing:
        raise CandidateValidationError(missing)


def build_transaction(
    candidate: CandidateRecord, review_threshold: int = DEFAULT_REVIEW_THRESHOLD
) -> Transaction:
    """
    Create a fresh transaction from a validated candidate.

    Status is derived from the extraction confidence; nothing is reviewed yet.

    Args:
        candidate: A candidate that passed validate_candidate
        review_threshold: Confidence at or above which the record is verified

    Returns:
        New transaction with a unique id
    """
    validate_candidate(candidate)
    assert candidate.date is not None and candidate.amount is not None
    assert candidate.original_description is not None

    confidence = int(round(candidate.confidence or 0))
    confidence = max(0, min(100, confidence))

    return Transaction(
        id=new_id("tx"),
        date=candidate.date,
        amount=abs(candidate.amount),
        original_description=candidate.original_description,
        enhanced_description=(
            candidate.enhanced_description or candidate.original_description
        ),
        category=candidate.category or "Other",
        tags=list(dict.fromkeys(candidate.tags or [])),
        source=candidate.source or "Manual",
        account_id=candidate.account_id,
        is_expense=True if candidate.is_expense is None else candidate.is_expense,
        status="verified" if confidence >= review_threshold else "needs_review",
        confidence=confidence,
        is_reviewed=False,
    )


def _coerce_candidate(raw: CandidateRecord | dict[str, Any]) -> CandidateRecord:
    if isinstance(raw, CandidateRecord):
        return raw
    return CandidateRecord.model_validate(raw)


def process_candidates(
    candidates: Iterable[CandidateRecord | dict[str, Any]],
    ledger: list[Transaction],
    rules: list[Rule],
    review_threshold: int = DEFAULT_REVIEW_THRESHOLD,
) -> ImportResult:
    """
    Reconcile a batch of extracted candidates against the ledger.

    Steps per candidate:
    1. Drop it when a required field is missing (counted, never fatal)
    2. Build a transaction with a fresh id and confidence-derived status
    3. Apply automation rules
    4. Compare with the ledger as it was before this batch
    5. Emit a duplicate pair on a match, otherwise accept it

    Args:
        candidates: Extracted records (models or raw dicts)
        ledger: Current transactions; not modified
        rules: Automation rules in stored order
        review_threshold: Confidence at or above which imports are verified

    Returns:
        Accepted transactions, duplicate pairs and the dropped count
    """
    # Candidates are only compared with what existed before the batch
    existing = list(ledger)
    result = ImportResult()

    for index, raw in enumerate(candidates):
        try:
            candidate = _coerce_candidate(raw)
            transaction = build_transaction(candidate, review_threshold)
        except (CandidateValidationError, ValidationError) as e:
            result.dropped += 1
            logger.warning(f"Dropping candidate #{index}: {e}")
            continue

        transaction = apply_rules(transaction, rules)

        match = find_duplicate(transaction, existing)
        if match is not None:
            result.duplicate_pairs.append(make_duplicate_pair(match, transaction))
        else:
            result.accepted.append(transaction)

    logger.info(
        f"Import reconciled: {len(result.accepted)} accepted, "
        f"{len(result.duplicate_pairs)} possible duplicates, "
        f"{result.dropped} dropped"
    )

    return result
