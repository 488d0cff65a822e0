"""Split computation, credit sweeping and item settlement.

A person is identified by the ``name`` on their split items; the same name
on two transactions is the same person. When a split is (re)computed, any
overpayment that person holds on another bill is swept onto the new item.
Every transaction touched by a sweep must be committed in the same batch as
the edited transaction.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from .exceptions import OverAllocationError, SplitItemNotFoundError
from .integrity import ensure_conserved, paid_total
from .models import (
    Payment,
    SplitDetails,
    SplitItem,
    SplitParticipant,
    SplitResult,
    SplitType,
    Transaction,
)
from .money import EPSILON, is_paid_off, to_cents

logger = logging.getLogger(__name__)


# ============================================================================
# Amount computation
# ============================================================================


def owner_remainder(
    transaction: Transaction, participants: list[SplitParticipant]
) -> Decimal:
    """Share the owner keeps in exact mode; negative means over-allocated."""
    allocated = sum(
        (p.amount for p in participants if not p.is_owner), Decimal("0")
    )
    return transaction.amount - allocated


def split_amounts(
    total: Decimal, mode: SplitType, participants: list[SplitParticipant]
) -> list[tuple[SplitParticipant, Decimal]]:
    """
    Compute each non-owner participant's owed amount.

    - equal: total divided by the number of selected participants (the
      owner counts when selected); unselected participants get nothing
    - shares: total divided by all shares (owner included), times each
      participant's shares; zero amounts are left out
    - exact: the entered amounts; positive amounts only

    Args:
        total: The bill amount
        mode: Split mode
        participants: Everyone at the table, owner included

    Returns:
        (participant, amount in cents) pairs in participant order

    Raises:
        OverAllocationError: If exact amounts exceed the bill
    """
    results: list[tuple[SplitParticipant, Decimal]] = []

    if mode == "equal":
        selected = [p for p in participants if p.is_selected]
        if not selected:
            return results
        share = total / len(selected)
        for p in selected:
            if not p.is_owner:
                results.append((p, to_cents(share)))

    elif mode == "shares":
        total_shares = sum(p.shares for p in participants)
        if total_shares <= 0:
            return results
        unit = total / total_shares
        for p in participants:
            if p.is_owner:
                continue
            amount = to_cents(p.shares * unit)
            if amount > 0:
                results.append((p, amount))

    elif mode == "exact":
        allocated = sum(
            (p.amount for p in participants if not p.is_owner), Decimal("0")
        )
        if allocated - total > EPSILON:
            raise OverAllocationError(total=total, allocated=allocated)
        for p in participants:
            if not p.is_owner and p.amount > 0:
                results.append((p, to_cents(p.amount)))

    else:
        raise ValueError(f"Unknown split mode: {mode}")

    return results


# ============================================================================
# Credit sweep
# ============================================================================


def sweep_credit(
    name: str,
    others: dict[str, Transaction],
    touched: dict[str, Transaction],
    today: date,
) -> Decimal:
    """
    Withdraw every surplus a person holds on the given transactions.

    Each source item is capped back to its own amount and marked settled.
    The sources are mutated in place and recorded in ``touched``.

    Args:
        name: Participant name
        others: Working copies of the other transactions, keyed by id
        touched: Collects transactions modified by the sweep
        today: Date used if a capped item was never stamped as settled

    Returns:
        Total credit withdrawn
    """
    credit = Decimal("0")
    for tx in others.values():
        item = tx.split_item_for(name)
        if item is None or item.surplus <= EPSILON:
            continue

        surplus = item.surplus
        credit += surplus
        item.paid_amount = item.amount
        item.is_settled = True
        if item.date_settled is None:
            item.date_settled = today
        touched[tx.id] = tx

        logger.info(f"Swept {surplus} credit for {name} from transaction {tx.id}")

    return credit


def _build_item(
    participant: SplitParticipant,
    amount: Decimal,
    existing: SplitItem | None,
    credit: Decimal,
    today: date,
) -> SplitItem:
    paid = (existing.paid_amount if existing else Decimal("0")) + credit
    settled = is_paid_off(paid, amount)

    date_settled = None
    if settled:
        if existing is not None and existing.is_settled:
            date_settled = existing.date_settled
        date_settled = date_settled or today

    return SplitItem(
        id=existing.id if existing else participant.id,
        name=participant.name,
        amount=amount,
        paid_amount=paid,
        is_settled=settled,
        date_settled=date_settled,
        payments=list(existing.payments) if existing else [],
    )


def compute_split(
    transaction: Transaction,
    mode: SplitType,
    participants: list[SplitParticipant],
    ledger: list[Transaction],
    today: date | None = None,
) -> SplitResult:
    """
    Recompute a transaction's split, sweeping credit from other bills.

    Participants that already have an item on this transaction (matched by
    id, then by name) keep the item id and its payment history.
    Nothing in ``ledger`` or ``transaction`` is mutated; the result holds
    copies to commit as one batch.

    Args:
        transaction: The bill being split
        mode: equal, shares or exact
        participants: Everyone at the table, owner included
        ledger: All transactions, used to find credit to sweep
        today: Date stamp for settlement and lending dates

    Returns:
        The updated transaction and every sweep source

    Raises:
        OverAllocationError: If exact amounts exceed the bill
        LedgerIntegrityError: If the sweep did not conserve money
    """
    today = today or date.today()
    amounts = split_amounts(transaction.amount, mode, participants)

    current = transaction.split_details
    others = {
        tx.id: tx.model_copy(deep=True)
        for tx in ledger
        if tx.id != transaction.id and tx.split_details is not None
    }
    sources_before = paid_total(others.values())
    touched: dict[str, Transaction] = {}

    items: list[SplitItem] = []
    kept_paid = Decimal("0")
    swept_total = Decimal("0")
    for participant, amount in amounts:
        existing = None
        if current is not None:
            existing = current.find_item(participant.id) or current.find_person(
                participant.name
            )
        if existing is not None:
            kept_paid += existing.paid_amount
        credit = sweep_credit(participant.name, others, touched, today)
        swept_total += credit
        items.append(_build_item(participant, amount, existing, credit, today))

    if current is not None:
        kept_ids = {item.id for item in items}
        for dropped in current.items:
            if dropped.id not in kept_ids and dropped.paid_amount > 0:
                logger.warning(
                    f"Removing {dropped.name} from {transaction.id} discards "
                    f"{dropped.paid_amount} of recorded payments"
                )

    updated = transaction.model_copy(deep=True)
    updated.status = "verified"
    updated.is_reviewed = True
    if items:
        details = SplitDetails(
            items=items,
            date_lent=current.date_lent if current else today,
            split_type=mode,
        )
        details.recompute_total()
        updated.split_details = details
    else:
        updated.split_details = None

    # Sweeps move money between bills; none may appear or vanish
    ensure_conserved(
        before=sources_before + kept_paid,
        after=paid_total(others.values()) + paid_total([updated]),
        expected_delta=Decimal("0"),
        context=f"Split of {transaction.id}",
    )

    if swept_total > 0:
        logger.info(
            f"Split of {transaction.id} absorbed {swept_total} credit "
            f"from {len(touched)} other transaction(s)"
        )

    return SplitResult(transaction=updated, swept=list(touched.values()))


def clear_split(transaction: Transaction) -> Transaction:
    """Return a copy of the transaction with its split removed."""
    updated = transaction.model_copy(deep=True)
    updated.split_details = None
    return updated


# ============================================================================
# Item settlement
# ============================================================================


def toggle_item_settlement(
    transaction: Transaction, item_id: str, now: datetime | None = None
) -> Transaction:
    """
    Flip one split item between settled and unsettled.

    Settling records the remaining balance as a payment and stamps the
    settlement date. Un-settling wipes the payment history.

    Args:
        transaction: Transaction holding the item
        item_id: Split item id
        now: Timestamp for the payment receipt

    Returns:
        Updated copy of the transaction

    Raises:
        SplitItemNotFoundError: If the item is not on this transaction
    """
    now = now or datetime.now()
    updated = transaction.model_copy(deep=True)
    details = updated.split_details
    item = details.find_item(item_id) if details else None
    if item is None:
        raise SplitItemNotFoundError(transaction.id, item_id)

    if not item.is_settled:
        remaining = item.amount - item.paid_amount
        if remaining > 0:
            item.payments.append(Payment(date=now, amount=remaining))
        item.paid_amount = item.amount
        item.is_settled = True
        item.date_settled = now.date()
        logger.info(f"Settled {item.name} on {transaction.id} ({remaining} paid)")
    else:
        item.paid_amount = Decimal("0")
        item.payments = []
        item.is_settled = False
        item.date_settled = None
        logger.info(f"Marked {item.name} unpaid on {transaction.id}")

    return updated


def rename_participant(
    ledger: list[Transaction], old_name: str, new_name: str
) -> list[Transaction]:
    """
    Rename a person on every transaction they appear on.

    Participants are identified by name, so a rename has to touch every bill.

    Args:
        ledger: All transactions
        old_name: Current participant name
        new_name: New participant name

    Returns:
        Updated copies of the transactions that changed

    Raises:
        ValueError: If a transaction already has a participant called new_name
    """
    new_name = new_name.strip()
    if not new_name:
        raise ValueError("New participant name must not be empty")

    changed = []
    for tx in ledger:
        if tx.split_item_for(old_name) is None:
            continue
        if tx.split_item_for(new_name) is not None:
            raise ValueError(
                f"Transaction {tx.id} already has a participant named {new_name!r}"
            )
        updated = tx.model_copy(deep=True)
        assert updated.split_details is not None
        for item in updated.split_details.items:
            if item.name == old_name:
                item.name = new_name
        changed.append(updated)

    logger.info(f"Renamed {old_name!r} to {new_name!r} on {len(changed)} transaction(s)")
    return changed
