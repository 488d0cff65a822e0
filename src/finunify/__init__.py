"""FinUnify - Reconcile imported statements and track shared expenses."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .models import (
    DuplicatePair,
    ImportResult,
    Rule,
    SplitDetails,
    SplitItem,
    SplitParticipant,
    Transaction,
)
from .reconciler import process_candidates
from .rules import apply_rules
from .service import LedgerService
from .settlement import allocate
from .splits import compute_split

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "DuplicatePair",
    "ImportResult",
    "Rule",
    "SplitDetails",
    "SplitItem",
    "SplitParticipant",
    "Transaction",
    "process_candidates",
    "apply_rules",
    "LedgerService",
    "allocate",
    "compute_split",
]
