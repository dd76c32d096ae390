"""
Data Models Package

This package contains all Pydantic models used in the Culture Crunch ledger.
All data flowing through the system must conform to these schemas.
"""

from ledger.models.ledger import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    PROJECTION_CHOICES,
    SUBSCRIPTION_CATEGORIES,
    BillingFrequency,
    ExpenseCategory,
    IncomeCategory,
    Subscription,
    Transaction,
    TransactionType,
    categories_for,
    seed_transactions,
)
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "PROJECTION_CHOICES",
    "SUBSCRIPTION_CATEGORIES",
    "BillingFrequency",
    "ExpenseCategory",
    "IncomeCategory",
    "Subscription",
    "Transaction",
    "TransactionType",
    "categories_for",
    "seed_transactions",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
