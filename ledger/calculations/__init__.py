"""Financial calculations package."""

from ledger.calculations.financials import (
    GST_RATE,
    CashFlowMonth,
    SubscriptionSummary,
    TransactionSummary,
    compute_gst,
    monthly_cash_flow,
    monthly_equivalent,
    summarize_subscriptions,
    summarize_transactions,
)

__all__ = [
    "GST_RATE",
    "CashFlowMonth",
    "SubscriptionSummary",
    "TransactionSummary",
    "compute_gst",
    "monthly_cash_flow",
    "monthly_equivalent",
    "summarize_subscriptions",
    "summarize_transactions",
]
