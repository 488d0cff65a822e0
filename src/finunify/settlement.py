"""Bulk settlement allocation and per-person lending views."""

import logging
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from .exceptions import InvalidPaymentError
from .integrity import ensure_conserved, paid_total
from .models import (
    LendingSummary,
    Payment,
    PaymentRecord,
    PersonBalance,
    PersonLedgerEntry,
    SplitItem,
    Transaction,
)
from .money import EPSILON, is_paid_off, to_cents

logger = logging.getLogger(__name__)


def record_payment(item: SplitItem, amount: Decimal, now: datetime) -> None:
    """Credit a payment to a split item and refresh its settlement state."""
    item.payments.append(Payment(date=now, amount=amount))
    item.paid_amount += amount

    if is_paid_off(item.paid_amount, item.amount):
        if not item.is_settled or item.date_settled is None:
            item.date_settled = now.date()
        item.is_settled = True
    else:
        item.is_settled = False
        item.date_settled = None


def allocate(
    person: str,
    payment_amount: Decimal | float | str,
    transactions: Iterable[Transaction],
    now: datetime | None = None,
) -> list[Transaction]:
    """
    Spread a lump payment from one person across their bills, oldest first.

    Steps:
    1. Order the person's bills by transaction date, oldest first
    2. Pay each outstanding balance in turn, recording a payment receipt
    3. Stop once the payment is used up
    4. Whatever is left when the newest bill is reached goes onto it as
       credit, even if that bill is already settled

    Args:
        person: Participant name
        payment_amount: Amount received
        transactions: Ledger transactions (others are ignored)
        now: Timestamp for the payment receipts

    Returns:
        Updated copies of every transaction that received money

    Raises:
        InvalidPaymentError: If the payment is not positive
        LedgerIntegrityError: If the allocation did not add exactly the payment
    """
    payment = to_cents(payment_amount)
    if payment <= 0:
        raise InvalidPaymentError(f"Payment amount must be positive, got {payment}")

    now = now or datetime.now()
    bills = [tx for tx in transactions if tx.split_item_for(person) is not None]
    if not bills:
        logger.warning(f"No bills found for {person}; nothing to allocate")
        return []

    # sorted() is stable, so bills on the same day keep ledger order
    working = [tx.model_copy(deep=True) for tx in sorted(bills, key=lambda t: t.date)]
    newest = working[-1]

    remaining = payment
    updated: dict[str, Transaction] = {}
    for tx in working:
        if remaining < EPSILON:
            break

        item = tx.split_item_for(person)
        assert item is not None
        owed = max(Decimal("0"), item.outstanding)
        pay = min(remaining, owed)

        if tx is newest and remaining > pay:
            pay = remaining  # overflow becomes credit on the newest bill

        if pay > 0:
            record_payment(item, pay, now)
            updated[tx.id] = tx
            remaining -= pay
            logger.debug(f"Applied {pay} from {person} to {tx.id}")

    ensure_conserved(
        before=paid_total(bills, person),
        after=paid_total(working, person),
        expected_delta=payment,
        context=f"Settlement of {payment} from {person}",
    )

    logger.info(
        f"Allocated {payment} from {person} across {len(updated)} bill(s)"
    )
    return list(updated.values())


# ============================================================================
# Lending views
# ============================================================================


def lending_summary(transactions: Iterable[Transaction]) -> LendingSummary:
    """
    Totals across every split: what is owed, what was paid, and by whom.

    Balances are positive when the person owes money and negative when
    they hold credit. People are sorted by balance, largest debt first.
    """
    summary = LendingSummary()
    by_person: dict[str, Decimal] = {}

    for tx in transactions:
        if tx.split_details is None:
            continue
        for item in tx.split_details.items:
            summary.total_owed += item.outstanding
            summary.total_settled += item.paid_amount
            by_person[item.name] = by_person.get(item.name, Decimal("0")) + item.outstanding

    summary.balances = [
        PersonBalance(name=name, balance=balance)
        for name, balance in sorted(by_person.items(), key=lambda kv: kv[1], reverse=True)
    ]
    return summary


def person_history(
    transactions: Iterable[Transaction], person: str
) -> list[PersonLedgerEntry]:
    """A person's bills, newest first."""
    entries = []
    for tx in transactions:
        item = tx.split_item_for(person)
        if item is not None:
            entries.append(PersonLedgerEntry(transaction=tx, item=item))
    return sorted(entries, key=lambda e: e.transaction.date, reverse=True)


def open_bills(
    transactions: Iterable[Transaction], person: str
) -> list[PersonLedgerEntry]:
    """Bills that are unpaid or carry credit, newest first."""
    return [
        entry
        for entry in person_history(transactions, person)
        if not entry.item.is_settled or entry.item.paid_amount > entry.item.amount
    ]


def payment_history(
    transactions: Iterable[Transaction], person: str
) -> list[PaymentRecord]:
    """Every payment a person made, newest first."""
    records = [
        PaymentRecord(
            payment=payment,
            transaction_id=entry.transaction.id,
            description=entry.transaction.enhanced_description,
        )
        for entry in person_history(transactions, person)
        for payment in entry.item.payments
    ]
    return sorted(records, key=lambda r: r.payment.date, reverse=True)


def outstanding_for_person(transactions: Iterable[Transaction], person: str) -> Decimal:
    """Net amount a person owes; negative when they hold credit."""
    return sum(
        (entry.item.outstanding for entry in person_history(transactions, person)),
        Decimal("0"),
    )
