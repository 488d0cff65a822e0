"""Interactive UI components for the review queue."""

import logging
from typing import Any, Literal

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import Category, DuplicatePair, Transaction

logger = logging.getLogger(__name__)


class CategoryCompleter(Completer):
    """Fuzzy search completer for ledger categories."""

    def __init__(self, categories: list[Category]):
        """Initialize the completer with available categories."""
        self.names = [cat.name for cat in categories]

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for name in self.names:
            if not query or self._fuzzy_match(query, name.lower()):
                yield Completion(
                    text=name,
                    start_position=-len(document.text),
                    display=name,
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="gro" matches "Groceries"
            query="dno" matches "Dining Out"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


def select_category_interactive(
    categories: list[Category], description: str, current: str | None = None
) -> str | None:
    """
    Interactive category selection with fuzzy search.

    Args:
        categories: Available categories
        description: Description of the transaction being reviewed
        current: Category to pre-fill

    Returns:
        Selected category name, or None to keep the current one
    """
    print(f"\n📝 Categorize: {description}")
    print("   Type to search, press Enter to confirm, Ctrl+C to skip\n")

    completer = CategoryCompleter(categories)
    session: PromptSession[str] = PromptSession(completer=completer)
    default_text = current or ""

    try:
        while True:
            result = session.prompt(
                "Category: ", default=default_text, complete_while_typing=True
            )
            if not result:
                return None
            if result in completer.names:
                logger.info(f"User selected category: {result}")
                return result

            print("❌ Invalid category. Please select from the list or press Tab to complete.")
            default_text = ""
    except KeyboardInterrupt:
        print("\n⏭️  Skipped")
        return None
    except EOFError:
        return None


def resolve_duplicate_interactive(
    pair: DuplicatePair,
) -> Literal["keep_both", "discard_incoming"] | None:
    """
    Ask whether an incoming record duplicates the existing one.

    Returns:
        The chosen resolution, or None to leave the pair pending
    """
    existing, incoming = pair.existing, pair.incoming
    print(f"\n⚠️  Possible duplicate ({pair.confidence:.0%} match)")
    print(f"   Existing: {existing.date}  {existing.amount:>10}  {existing.enhanced_description}")
    print(f"   Incoming: {incoming.date}  {incoming.amount:>10}  {incoming.enhanced_description}")

    while True:
        try:
            response = input("   [k]eep both, [d]iscard incoming, [s]kip: ").strip().lower()
        except (KeyboardInterrupt, EOFError):
            print("\n⏭️  Skipped")
            return None

        if response in ("k", "keep"):
            return "keep_both"
        if response in ("d", "discard"):
            return "discard_incoming"
        if response in ("", "s", "skip"):
            return None
        print("   Please enter k, d, or s")


def review_transaction_interactive(
    transaction: Transaction,
) -> Literal["approve", "edit", "delete"] | None:
    """Ask what to do with a low-confidence transaction."""
    print(
        f"\n🔍 {transaction.date}  {transaction.amount}  {transaction.enhanced_description}"
        f"  [{transaction.category}, confidence {transaction.confidence}]"
    )
    print(f"   Original: {transaction.original_description}")

    while True:
        try:
            response = input("   [a]pprove, [e]dit category, [d]elete, [s]kip: ").strip().lower()
        except (KeyboardInterrupt, EOFError):
            print("\n⏭️  Skipped")
            return None

        if response in ("a", "approve"):
            return "approve"
        if response in ("e", "edit"):
            return "edit"
        if response in ("d", "delete"):
            return "delete"
        if response in ("", "s", "skip"):
            return None
        print("   Please enter a, e, d, or s")


def confirm(message: str) -> bool:
    """Simple yes/no confirmation, defaulting to no."""
    response = input(f"{message} [y/N] ").strip().lower()
    return response in ("y", "yes")
