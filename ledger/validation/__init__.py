"""Entry validation package."""

from ledger.validation.validator import (
    EntryValidationError,
    EntryValidator,
    SubscriptionDraft,
    TransactionDraft,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "EntryValidationError",
    "EntryValidator",
    "SubscriptionDraft",
    "TransactionDraft",
    "ValidationIssue",
    "ValidationResult",
]
