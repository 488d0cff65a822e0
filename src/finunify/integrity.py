"""Money-conservation checks for multi-transaction batches."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from .exceptions import LedgerIntegrityError
from .models import Transaction
from .money import EPSILON

logger = logging.getLogger(__name__)


def paid_total(transactions: Iterable[Transaction], name: str | None = None) -> Decimal:
    """Sum paid_amount over every split item, optionally for one participant."""
    total = Decimal("0")
    for tx in transactions:
        if tx.split_details is None:
            continue
        for item in tx.split_details.items:
            if name is None or item.name == name:
                total += item.paid_amount
    return total


def ensure_conserved(
    before: Decimal, after: Decimal, expected_delta: Decimal, context: str
) -> None:
    """
    Verify that a batch moved exactly the expected amount of money.

    Args:
        before: Paid total over the affected items before the batch
        after: Paid total over the same items after the batch
        expected_delta: Money that entered from outside (0 for internal moves)
        context: Description used in the error message

    Raises:
        LedgerIntegrityError: If the delta differs by a cent or more
    """
    delta = after - before
    if abs(delta - expected_delta) >= EPSILON:
        raise LedgerIntegrityError(
            f"{context}: paid amounts changed by {delta}, "
            f"expected {expected_delta}. Batch rejected."
        )
    logger.debug(f"{context}: conserved (delta {delta})")
