"""Custom exceptions for FinUnify."""


class FinUnifyError(Exception):
    """Base exception for all FinUnify errors."""

    pass


class ConfigurationError(FinUnifyError):
    """Raised when configuration is invalid or missing."""

    pass


class CandidateValidationError(FinUnifyError):
    """Raised when an imported candidate record is missing a required field."""

    def __init__(self, missing: list[str], message: str | None = None):
        self.missing = missing
        super().__init__(
            message or f"Candidate record is missing required fields: {', '.join(missing)}"
        )


class OverAllocationError(FinUnifyError):
    """Raised when exact split amounts exceed the transaction total."""

    def __init__(self, total: object, allocated: object, message: str | None = None):
        self.total = total
        self.allocated = allocated
        super().__init__(
            message
            or f"Split amounts ({allocated}) exceed the transaction total ({total})"
        )


class InvalidPaymentError(FinUnifyError):
    """Raised when a settlement payment amount is not positive."""

    pass


class LedgerIntegrityError(FinUnifyError):
    """Raised when a batch would create or destroy money."""

    pass


class NotFoundError(FinUnifyError):
    """Base class for lookups that found nothing."""

    pass


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction id is not in the ledger."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class SplitItemNotFoundError(NotFoundError):
    """Raised when a split item id is not part of a transaction's split."""

    def __init__(self, transaction_id: str, item_id: str):
        self.transaction_id = transaction_id
        self.item_id = item_id
        super().__init__(f"Split item {item_id} not found on transaction {transaction_id}")


class DuplicatePairNotFoundError(NotFoundError):
    """Raised when a pending duplicate pair id is unknown."""

    pass


class ExternalServiceError(FinUnifyError):
    """Base class for failures of external collaborators."""

    pass


class ExtractionError(ExternalServiceError):
    """Raised when document extraction fails or returns unparseable output."""

    pass
