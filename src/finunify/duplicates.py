"""Duplicate detection for imported transactions."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from .models import DuplicatePair, Transaction

logger = logging.getLogger(__name__)

# Fixed confidence reported for every detected pair.
DUPLICATE_CONFIDENCE = 0.9

AMOUNT_TOLERANCE = Decimal("0.01")

# Bank feeds can disagree on the posting date by a day.
MAX_DAY_DISTANCE = 1


def is_probable_duplicate(existing: Transaction, incoming: Transaction) -> bool:
    """Same amount (within a cent) and dates at most one day apart."""
    amount_match = abs(existing.amount - incoming.amount) < AMOUNT_TOLERANCE
    date_match = abs((existing.date - incoming.date).days) <= MAX_DAY_DISTANCE
    return amount_match and date_match


def find_duplicate(
    incoming: Transaction, ledger: Iterable[Transaction]
) -> Transaction | None:
    """
    Find the first ledger transaction the incoming record probably duplicates.

    No ranking is done between several candidates: ledger order decides.

    Args:
        incoming: The record being imported
        ledger: Existing transactions

    Returns:
        The first matching existing transaction, or None
    """
    for existing in ledger:
        if is_probable_duplicate(existing, incoming):
            logger.debug(
                f"Incoming {incoming.original_description!r} looks like {existing.id}"
            )
            return existing
    return None


def make_duplicate_pair(existing: Transaction, incoming: Transaction) -> DuplicatePair:
    """Build a duplicate pair for review."""
    return DuplicatePair(
        existing=existing,
        incoming=incoming,
        confidence=DUPLICATE_CONFIDENCE,
    )
