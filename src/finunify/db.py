"""SQLite database operations for FinUnify."""

import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from .models import (
    DEFAULT_ACCOUNTS,
    DEFAULT_CATEGORIES,
    DEFAULT_RULES,
    Account,
    Category,
    DuplicatePair,
    Rule,
    Transaction,
)

RecordT = TypeVar("RecordT", bound=BaseModel)

# Tables that store one ordered JSON document per row
_DOCUMENT_TABLES = ("transactions", "rules", "categories", "accounts", "duplicate_pairs")


class Database:
    """SQLite ledger store.

    Every record is stored as the JSON of its pydantic model, keyed by id and
    kept in insertion order. Multi-record writes go through ``apply_batch``
    so they commit together or not at all.
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        for table in _DOCUMENT_TABLES:
            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )

        # Config table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Generic document helpers
    # ========================================================================

    def _list(self, table: str, model: type[RecordT]) -> list[RecordT]:
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT payload FROM {table} ORDER BY position, rowid")
        return [model.model_validate_json(row["payload"]) for row in cursor.fetchall()]

    def _get(self, table: str, model: type[RecordT], record_id: str) -> RecordT | None:
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT payload FROM {table} WHERE id = ?", (record_id,))
        row = cursor.fetchone()
        return model.model_validate_json(row["payload"]) if row else None

    def _upsert(self, cursor: sqlite3.Cursor, table: str, record_id: str, payload: str):
        cursor.execute(
            f"""
            INSERT INTO {table} (id, position, payload, updated_at)
            VALUES (?, (SELECT COALESCE(MAX(position), -1) + 1 FROM {table}), ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                payload = excluded.payload,
                updated_at = excluded.updated_at
            """,
            (record_id, payload, datetime.now().isoformat()),
        )

    def _save(self, table: str, records: Iterable[BaseModel]) -> None:
        with self.conn:
            cursor = self.conn.cursor()
            for record in records:
                self._upsert(cursor, table, record.id, record.model_dump_json())  # type: ignore[attr-defined]

    def _delete(self, table: str, record_ids: Iterable[str]) -> int:
        with self.conn:
            cursor = self.conn.cursor()
            deleted = 0
            for record_id in record_ids:
                cursor.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
                deleted += cursor.rowcount
        return deleted

    # ========================================================================
    # Config operations
    # ========================================================================

    def get_config(self, key: str) -> str | None:
        """Get a config value by key."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return str(row["value"]) if row else None

    def set_config(self, key: str, value: str):
        """Set a config value."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO config (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now().isoformat()),
        )
        self.conn.commit()

    def seed_defaults(self) -> bool:
        """Insert default categories, accounts and rules once per database.

        Returns:
            True if defaults were inserted by this call
        """
        if self.get_config("defaults_seeded"):
            return False

        with self.conn:
            cursor = self.conn.cursor()
            for category in DEFAULT_CATEGORIES:
                self._upsert(cursor, "categories", category.id, category.model_dump_json())
            for account in DEFAULT_ACCOUNTS:
                self._upsert(cursor, "accounts", account.id, account.model_dump_json())
            for rule in DEFAULT_RULES:
                self._upsert(cursor, "rules", rule.id, rule.model_dump_json())

        self.set_config("defaults_seeded", "1")
        return True

    # ========================================================================
    # Transaction operations
    # ========================================================================

    def list_transactions(self) -> list[Transaction]:
        """Get the whole ledger in insertion order."""
        return self._list("transactions", Transaction)

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        """Get a transaction by id."""
        return self._get("transactions", Transaction, transaction_id)

    def apply_batch(
        self,
        upserts: Iterable[Transaction] = (),
        deletes: Iterable[str] = (),
    ) -> None:
        """
        Write a set of transaction changes atomically.

        New transactions are appended to the ledger; existing ones are
        replaced in place. If any statement fails, nothing is written.

        Args:
            upserts: Transactions to insert or replace
            deletes: Transaction ids to remove
        """
        with self.conn:
            cursor = self.conn.cursor()
            for transaction in upserts:
                self._upsert(
                    cursor, "transactions", transaction.id, transaction.model_dump_json()
                )
            for transaction_id in deletes:
                cursor.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))

    def record_import(
        self, accepted: Iterable[Transaction], pairs: Iterable[DuplicatePair]
    ) -> None:
        """Append imported transactions and queue duplicate pairs in one commit."""
        with self.conn:
            cursor = self.conn.cursor()
            for transaction in accepted:
                self._upsert(
                    cursor, "transactions", transaction.id, transaction.model_dump_json()
                )
            for pair in pairs:
                self._upsert(cursor, "duplicate_pairs", pair.id, pair.model_dump_json())

    def delete_transactions(self, transaction_ids: Iterable[str]) -> int:
        """Delete transactions by id. Returns the number removed."""
        return self._delete("transactions", transaction_ids)

    # ========================================================================
    # Duplicate pair operations
    # ========================================================================

    def list_duplicate_pairs(self) -> list[DuplicatePair]:
        """Get pending duplicate pairs, oldest first."""
        return self._list("duplicate_pairs", DuplicatePair)

    def get_duplicate_pair(self, pair_id: str) -> DuplicatePair | None:
        """Get a pending duplicate pair by id."""
        return self._get("duplicate_pairs", DuplicatePair, pair_id)

    def resolve_duplicate_pair(
        self, pair_id: str, accept: Transaction | None = None
    ) -> None:
        """Remove a pending pair, optionally accepting its incoming record in the same commit."""
        with self.conn:
            cursor = self.conn.cursor()
            if accept is not None:
                self._upsert(cursor, "transactions", accept.id, accept.model_dump_json())
            cursor.execute("DELETE FROM duplicate_pairs WHERE id = ?", (pair_id,))

    # ========================================================================
    # Reference data operations
    # ========================================================================

    def list_rules(self) -> list[Rule]:
        """Get automation rules in evaluation order."""
        return self._list("rules", Rule)

    def save_rule(self, rule: Rule) -> None:
        """Insert or replace a rule (new rules go last)."""
        self._save("rules", [rule])

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule."""
        return self._delete("rules", [rule_id]) > 0

    def list_categories(self) -> list[Category]:
        """Get categories in display order."""
        return self._list("categories", Category)

    def save_category(self, category: Category) -> None:
        """Insert or replace a category."""
        self._save("categories", [category])

    def delete_category(self, category_id: str) -> bool:
        """Delete a category."""
        return self._delete("categories", [category_id]) > 0

    def list_accounts(self) -> list[Account]:
        """Get accounts in display order."""
        return self._list("accounts", Account)

    def get_account(self, account_id: str) -> Account | None:
        """Get an account by id."""
        return self._get("accounts", Account, account_id)

    def save_account(self, account: Account) -> None:
        """Insert or replace an account."""
        self._save("accounts", [account])

    def save_account_with_transactions(
        self, account: Account, transactions: Iterable[Transaction]
    ) -> None:
        """Save an account and the transactions it relabels in one commit."""
        with self.conn:
            cursor = self.conn.cursor()
            self._upsert(cursor, "accounts", account.id, account.model_dump_json())
            for transaction in transactions:
                self._upsert(
                    cursor, "transactions", transaction.id, transaction.model_dump_json()
                )

    def delete_account(
        self, account_id: str, transactions: Iterable[Transaction] = ()
    ) -> bool:
        """Delete an account, saving the unlinked transactions in the same commit."""
        with self.conn:
            cursor = self.conn.cursor()
            for transaction in transactions:
                self._upsert(
                    cursor, "transactions", transaction.id, transaction.model_dump_json()
                )
            cursor.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
            return cursor.rowcount > 0
