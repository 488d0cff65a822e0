"""MCP server for FinUnify: exposes the ledger and lending workflow as tools."""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .exceptions import FinUnifyError
from .models import SplitParticipant
from .service import LedgerService

logger = logging.getLogger(__name__)

mcp_app = FastMCP("finunify")

# ---------------------------------------------------------------------------
# Session state: one MCP server process = one assistant conversation
# ---------------------------------------------------------------------------

WORKFLOW_INSTRUCTIONS = """\
You help the user keep their shared-expense ledger up to date.

1. REVIEW: Call list_duplicates and list_review_queue. For each duplicate,
   show both records and ask the user whether to keep both or discard the
   incoming one, then call resolve_duplicate. Approve or delete flagged
   transactions with review_transaction.

2. SPLIT: When the user says they shared a bill, call list_transactions to
   find it and split_transaction with the people involved.

3. SETTLE: When someone pays the user back, call person_history first to
   show what they owe, then settle_payment. Payments go to the oldest bills
   first; anything left over becomes credit on the newest bill.

4. REPORT: lending_summary shows who owes what.

Positive balances mean the person owes the user; negative balances are credit.\
"""


@dataclass
class SessionState:
    """Holds the service between MCP tool calls."""

    service: LedgerService | None = None
    db: Database | None = None


_state = SessionState()


def _ensure_service() -> LedgerService:
    """Lazily initialize the LedgerService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.db = Database(settings.database_path)
        _state.service = LedgerService(settings, _state.db)
    return _state.service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_amount(amount: Decimal) -> str:
    """Format an amount as an accounting-style dollar string."""
    if amount < 0:
        return f"(${abs(amount):,.2f})"
    return f"${amount:,.2f}"


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_transactions(limit: int = 20) -> str:
    """List the newest ledger transactions.

    Args:
        limit: Maximum number of transactions to return.
    """
    try:
        service = _ensure_service()
        ledger = sorted(service.ledger(), key=lambda t: t.date, reverse=True)[:limit]
        if not ledger:
            return "The ledger is empty."

        lines = [f"Transactions ({len(ledger)} shown):"]
        for tx in ledger:
            split = ""
            if tx.split_details:
                names = ", ".join(item.name for item in tx.split_details.items)
                split = f" | split with {names}"
            lines.append(
                f"  [{tx.id}] {tx.date} | {tx.enhanced_description} | "
                f"{_format_amount(tx.amount)} | {tx.category} | {tx.status}{split}"
            )
        return "\n".join(lines)
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list transactions: {e}"


@mcp_app.tool()
def list_duplicates() -> str:
    """List imported records held back as possible duplicates."""
    try:
        service = _ensure_service()
        pairs = service.pending_duplicates()
        if not pairs:
            return "No pending duplicates."

        lines = ["Possible duplicates:"]
        for pair in pairs:
            lines.append(
                f"  [{pair.id}] existing {pair.existing.date} "
                f"{pair.existing.enhanced_description} {_format_amount(pair.existing.amount)}"
                f" <-> incoming {pair.incoming.date} "
                f"{pair.incoming.enhanced_description} {_format_amount(pair.incoming.amount)}"
            )
        return "\n".join(lines)
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list duplicates: {e}"


@mcp_app.tool()
def resolve_duplicate(pair_id: str, keep_both: bool) -> str:
    """Resolve a possible duplicate.

    Args:
        pair_id: Pair id from list_duplicates.
        keep_both: True to add the incoming record anyway, False to discard it.
    """
    try:
        service = _ensure_service()
        accepted = service.resolve_duplicate(
            pair_id, "keep_both" if keep_both else "discard_incoming"
        )
        if accepted is not None:
            return f"Kept both. Added {accepted.id}."
        return "Discarded the incoming record."
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to resolve duplicate: {e}"


@mcp_app.tool()
def list_review_queue() -> str:
    """List low-confidence transactions waiting for review."""
    try:
        service = _ensure_service()
        queue = service.review_queue()
        if not queue:
            return "Nothing needs review."

        lines = [f"Needs review ({len(queue)}):"]
        for tx in queue:
            lines.append(
                f"  [{tx.id}] {tx.date} | {tx.original_description} -> "
                f"{tx.enhanced_description} | {_format_amount(tx.amount)} | "
                f"{tx.category} | confidence {tx.confidence}"
            )
        return "\n".join(lines)
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list review queue: {e}"


@mcp_app.tool()
def review_transaction(
    transaction_id: str, approve: bool, category: str | None = None
) -> str:
    """Approve or delete a transaction from the review queue.

    Args:
        transaction_id: Transaction id from list_review_queue.
        approve: True to approve, False to delete.
        category: Optional corrected category when approving.
    """
    try:
        service = _ensure_service()
        if not approve:
            service.review_transaction(transaction_id, "delete")
            return f"Deleted {transaction_id}."

        updated = None
        if category:
            updated = service.get_transaction(transaction_id).model_copy(
                update={"category": category}
            )
        tx = service.review_transaction(transaction_id, "approve", updated=updated)
        assert tx is not None
        return f"Approved {tx.id} as {tx.category}."
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to review transaction: {e}"


@mcp_app.tool()
def split_transaction(
    transaction_id: str, people: list[str], include_me: bool = True
) -> str:
    """Split a transaction equally between the user and other people.

    Args:
        transaction_id: Transaction to split.
        people: Names of the other participants.
        include_me: Whether the user pays a share too.
    """
    try:
        service = _ensure_service()
        participants = [SplitParticipant(name=name) for name in people]
        participants.append(
            SplitParticipant(name="Me", is_owner=True, is_selected=include_me)
        )
        result = service.save_split(transaction_id, "equal", participants)

        details = result.transaction.split_details
        lines = [f"Split {result.transaction.enhanced_description}:"]
        for item in details.items if details else []:
            state = "settled" if item.is_settled else "open"
            lines.append(
                f"  {item.name}: owes {_format_amount(item.amount)}, "
                f"paid {_format_amount(item.paid_amount)} ({state})"
            )
        if result.swept:
            lines.append(f"Applied credit from {len(result.swept)} other bill(s).")
        return "\n".join(lines)
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to split transaction: {e}"


@mcp_app.tool()
def lending_summary() -> str:
    """Show total outstanding and settled amounts and each person's balance."""
    try:
        service = _ensure_service()
        summary = service.lending_summary()

        lines = [
            "Lending Summary:",
            f"  Outstanding: {_format_amount(summary.total_owed)}",
            f"  Settled: {_format_amount(summary.total_settled)}",
        ]
        for balance in summary.balances:
            lines.append(f"  - {balance.name}: {_format_amount(balance.balance)}")
        return "\n".join(lines)
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to build lending summary: {e}"


@mcp_app.tool()
def person_history(person: str) -> str:
    """Show one person's bills and payments, newest first.

    Args:
        person: Participant name.
    """
    try:
        service = _ensure_service()
        entries = service.person_history(person)
        if not entries:
            return f"No bills found for {person}."

        lines = [f"Bills shared with {person}:"]
        for entry in entries:
            item = entry.item
            lines.append(
                f"  {entry.transaction.date} | {entry.transaction.enhanced_description} | "
                f"share {_format_amount(item.amount)} | paid {_format_amount(item.paid_amount)}"
                f"{' | settled' if item.is_settled else ''}"
            )

        payments = service.payment_history(person)
        if payments:
            lines.append("Payments:")
            for record in payments:
                lines.append(
                    f"  {record.payment.date:%Y-%m-%d} | "
                    f"{_format_amount(record.payment.amount)} | {record.description}"
                )
        lines.append(f"Net balance: {_format_amount(service.outstanding_for(person))}")
        return "\n".join(lines)
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to load history: {e}"


@mcp_app.tool()
def settle_payment(person: str, amount: str) -> str:
    """Record a lump payment from a person, applied to their oldest bills first.

    Args:
        person: Participant name.
        amount: Amount received, e.g. "42.50".
    """
    try:
        service = _ensure_service()
        try:
            payment = Decimal(amount)
        except InvalidOperation:
            return f"Error: Invalid amount {amount!r}."

        updated = service.settle_bulk(person, payment)
        if not updated:
            return f"No bills found for {person}."
        return (
            f"Applied {_format_amount(payment)} from {person} across {len(updated)} bill(s).\n"
            f"Remaining balance: {_format_amount(service.outstanding_for(person))}"
        )
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to record payment: {e}"


@mcp_app.tool()
def run_rules() -> str:
    """Re-apply every active automation rule to the whole ledger."""
    try:
        service = _ensure_service()
        changed = service.run_rules_on_all()
        return f"Rules updated {changed} transaction(s)."
    except FinUnifyError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to run rules: {e}"


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def ledger_workflow() -> str:
    """Orchestration instructions for reviewing, splitting and settling."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
