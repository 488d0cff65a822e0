"""Pydantic domain models for FinUnify."""

import datetime as dt
from decimal import Decimal
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TransactionStatus = Literal["verified", "potential_duplicate", "needs_review"]
SplitType = Literal["equal", "exact", "shares"]
RuleField = Literal["originalDescription", "enhancedDescription", "amount"]
RuleOperator = Literal["contains", "equals", "starts_with", "greater_than", "less_than"]
AccountType = Literal["bank", "credit_card", "wallet", "other"]


def new_id(prefix: str) -> str:
    """Generate a fresh random identifier such as ``tx-1a2b3c4d5e6f``."""
    return f"{prefix}-{uuid4().hex[:12]}"


class LedgerModel(BaseModel):
    """Base model: snake_case attributes, camelCase accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Lending Models
# ============================================================================


class Payment(LedgerModel):
    """An immutable receipt for money paid back against a split item."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str = Field(default_factory=lambda: new_id("pay"))
    date: dt.datetime
    amount: Decimal


class SplitItem(LedgerModel):
    """One participant's share of one transaction's split."""

    id: str
    name: str  # participant identity key across transactions
    amount: Decimal
    paid_amount: Decimal = Decimal("0")  # can exceed amount (credit)
    is_settled: bool = False
    date_settled: dt.date | None = None
    payments: list[Payment] = Field(default_factory=list)

    @property
    def outstanding(self) -> Decimal:
        """Amount still owed; negative when the participant holds credit."""
        return self.amount - self.paid_amount

    @property
    def surplus(self) -> Decimal:
        """Overpayment held on this item, never negative."""
        return max(Decimal("0"), self.paid_amount - self.amount)


class SplitDetails(LedgerModel):
    """How a transaction's bill is divided among participants."""

    total_lent: Decimal = Decimal("0")
    items: list[SplitItem] = Field(default_factory=list)
    date_lent: dt.date
    split_type: SplitType = "equal"

    def recompute_total(self) -> None:
        """Recompute total_lent from the item amounts."""
        self.total_lent = sum((item.amount for item in self.items), Decimal("0"))

    def find_item(self, item_id: str) -> SplitItem | None:
        """Find an item by id."""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_person(self, name: str) -> SplitItem | None:
        """Find the item belonging to a participant name."""
        for item in self.items:
            if item.name == name:
                return item
        return None


# ============================================================================
# Ledger Models
# ============================================================================


class Transaction(LedgerModel):
    """A ledger entry."""

    id: str
    date: dt.date
    amount: Decimal = Field(ge=0)
    original_description: str
    enhanced_description: str
    category: str = "Other"
    tags: list[str] = Field(default_factory=list)
    source: str = "Manual"
    account_id: str | None = None
    is_expense: bool = True
    status: TransactionStatus = "verified"
    confidence: int = Field(default=100, ge=0, le=100)
    is_reviewed: bool = False
    split_details: SplitDetails | None = None

    def split_item_for(self, name: str) -> SplitItem | None:
        """Return this transaction's split item for a participant, if any."""
        if self.split_details is None:
            return None
        return self.split_details.find_person(name)


class Category(LedgerModel):
    """A spending category."""

    id: str
    name: str
    color: str
    budget: Decimal | None = None


class Account(LedgerModel):
    """A bank account, card or wallet transactions can be linked to."""

    id: str
    name: str
    type: AccountType = "other"
    last4_digits: str | None = None
    color: str = "#94a3b8"
    institution: str | None = None


class RuleCriteria(LedgerModel):
    """The match half of an automation rule."""

    field: RuleField
    operator: RuleOperator
    value: str


class RuleActions(LedgerModel):
    """The action half of an automation rule."""

    rename_to: str | None = None
    set_category: str | None = None
    add_tags: list[str] | None = None


class Rule(LedgerModel):
    """A declarative automation rule."""

    id: str
    name: str
    is_active: bool = True
    criteria: RuleCriteria
    actions: RuleActions = Field(default_factory=RuleActions)


# ============================================================================
# Import Models
# ============================================================================


class CandidateRecord(LedgerModel):
    """A record produced by document extraction, before reconciliation.

    Every field is optional; the reconciler drops records missing
    date, amount or original description.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    date: dt.date | None = None
    amount: Decimal | None = None
    original_description: str | None = None
    enhanced_description: str | None = None
    category: str | None = None
    is_expense: bool | None = None
    tags: list[str] | None = None
    confidence: float | None = None  # 0-100
    source: str | None = None
    account_id: str | None = None


class DuplicatePair(LedgerModel):
    """An incoming record suspected to duplicate an existing one."""

    id: str = Field(default_factory=lambda: new_id("dup"))
    existing: Transaction
    incoming: Transaction
    confidence: float = Field(ge=0.0, le=1.0)


class ImportResult(BaseModel):
    """Outcome of reconciling one import batch."""

    accepted: list[Transaction] = Field(default_factory=list)
    duplicate_pairs: list[DuplicatePair] = Field(default_factory=list)
    dropped: int = 0

    @property
    def needs_review(self) -> bool:
        """True when the user should be sent to the review surface."""
        return bool(self.duplicate_pairs) or any(
            tx.status == "needs_review" for tx in self.accepted
        )

    @property
    def next_view(self) -> Literal["review", "transactions"]:
        """Where the caller should navigate after the import."""
        return "review" if self.needs_review else "transactions"


# ============================================================================
# Split Models
# ============================================================================


class SplitParticipant(LedgerModel):
    """A participant as entered when splitting a bill."""

    id: str = Field(default_factory=lambda: new_id("p"))
    name: str
    amount: Decimal = Decimal("0")  # exact mode
    shares: int = Field(default=1, ge=0)  # shares mode
    is_selected: bool = True  # equal mode
    is_owner: bool = False


class SplitResult(BaseModel):
    """A recomputed split plus every transaction its credit sweep touched."""

    transaction: Transaction
    swept: list[Transaction] = Field(default_factory=list)

    @property
    def batch(self) -> list[Transaction]:
        """All transactions to commit together."""
        return [*self.swept, self.transaction]


class PersonBalance(BaseModel):
    """Net balance of one participant; negative means they hold credit."""

    name: str
    balance: Decimal


class LendingSummary(BaseModel):
    """Totals across every split in the ledger."""

    total_owed: Decimal = Decimal("0")
    total_settled: Decimal = Decimal("0")
    balances: list[PersonBalance] = Field(default_factory=list)


class PersonLedgerEntry(BaseModel):
    """One of a participant's bills."""

    transaction: Transaction
    item: SplitItem


class PaymentRecord(BaseModel):
    """A payment together with the bill it was applied to."""

    payment: Payment
    transaction_id: str
    description: str


# ============================================================================
# Defaults
# ============================================================================

DEFAULT_CATEGORIES: list[Category] = [
    Category(id="1", name="Groceries", color="#10b981"),
    Category(id="2", name="Dining Out", color="#f59e0b"),
    Category(id="3", name="Utilities", color="#3b82f6"),
    Category(id="4", name="Rent/Mortgage", color="#6366f1"),
    Category(id="5", name="Shopping", color="#ec4899"),
    Category(id="6", name="Travel", color="#8b5cf6"),
    Category(id="7", name="Income", color="#84cc16"),
    Category(id="8", name="Other", color="#94a3b8"),
]

DEFAULT_ACCOUNTS: list[Account] = [
    Account(
        id="acc-1",
        name="Chase Sapphire",
        type="credit_card",
        last4_digits="4242",
        color="#1e40af",
        institution="Chase",
    ),
    Account(
        id="acc-2",
        name="Wells Fargo Checking",
        type="bank",
        last4_digits="8899",
        color="#dc2626",
        institution="Wells Fargo",
    ),
]

DEFAULT_RULES: list[Rule] = [
    Rule(
        id="rule-1",
        name="Auto-tag Uber",
        criteria=RuleCriteria(
            field="originalDescription", operator="contains", value="UBER"
        ),
        actions=RuleActions(set_category="Travel", add_tags=["Rideshare"]),
    ),
    Rule(
        id="rule-2",
        name="Clean up Starbucks",
        criteria=RuleCriteria(
            field="originalDescription", operator="contains", value="STARBUCKS"
        ),
        actions=RuleActions(
            rename_to="Starbucks", set_category="Dining Out", add_tags=["Coffee"]
        ),
    ),
]
