"""
Financial Calculator

Pure functions deriving GST splits, monthly-equivalent costs and cash-flow
figures from collections of ledger records.

DESIGN DECISION: Every figure is an exact Decimal.
Nothing is rounded here; rounding is a display concern. annual_total is
always monthly_total * 12 rather than an independent sum, so the two
figures can never drift apart.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from ledger.models.ledger import (
    BillingFrequency,
    Subscription,
    Transaction,
    TransactionType,
)


GST_RATE = Decimal("0.10")  # 10% GST in Australia

ZERO = Decimal("0")
MONTHS_PER_YEAR = Decimal("12")


def gst_divisor() -> Decimal:
    """Divisor recovering the tax from an inclusive total: (1 + r) / r = 11."""
    return (1 + GST_RATE) / GST_RATE


def compute_gst(amount: Decimal, has_gst: bool) -> Decimal:
    """
    GST contained in a tax-inclusive amount.

    Call this once, when a record is created, with the amount the user
    entered. Stored records keep the result; it is never re-derived.
    """
    if not has_gst:
        return ZERO
    return Decimal(amount) / gst_divisor()


@dataclass(frozen=True)
class TransactionSummary:
    """Totals over a set of transactions."""
    revenue: Decimal = ZERO
    expenses: Decimal = ZERO
    gst_collected: Decimal = ZERO
    gst_paid: Decimal = ZERO

    @property
    def net_position(self) -> Decimal:
        return self.revenue - self.expenses

    @property
    def gst_payable(self) -> Decimal:
        """BAS payable figure. Negative means a refund position."""
        return self.gst_collected - self.gst_paid


@dataclass(frozen=True)
class SubscriptionSummary:
    """Normalized cost of the active subscriptions."""
    monthly_total: Decimal = ZERO
    annual_total: Decimal = ZERO
    monthly_gst: Decimal = ZERO
    projected_total: Decimal = ZERO
    active_count: int = 0


@dataclass(frozen=True)
class CashFlowMonth:
    """Income and expense for one calendar month."""
    month_label: str
    year: int
    month: int
    income: Decimal = ZERO
    expense: Decimal = ZERO


def summarize_transactions(transactions: Iterable[Transaction]) -> TransactionSummary:
    revenue = expenses = gst_collected = gst_paid = ZERO

    for t in transactions:
        if t.type == TransactionType.INCOME:
            revenue += t.amount
            gst_collected += t.gst_amount
        else:
            expenses += t.amount
            gst_paid += t.gst_amount

    return TransactionSummary(
        revenue=revenue,
        expenses=expenses,
        gst_collected=gst_collected,
        gst_paid=gst_paid,
    )


def monthly_equivalent(subscription: Subscription) -> Decimal:
    """Amount per month: as billed if monthly, a twelfth if annual."""
    if subscription.frequency == BillingFrequency.MONTHLY:
        return subscription.amount
    return subscription.amount / MONTHS_PER_YEAR


def monthly_gst_equivalent(subscription: Subscription) -> Decimal:
    if subscription.frequency == BillingFrequency.MONTHLY:
        return subscription.gst_amount
    return subscription.gst_amount / MONTHS_PER_YEAR


def summarize_subscriptions(subscriptions: Iterable[Subscription]) -> SubscriptionSummary:
    """
    Totals over active subscriptions only.

    Paused subscriptions are skipped entirely.
    """
    monthly_total = monthly_gst = projected_total = ZERO
    active_count = 0

    for s in subscriptions:
        if not s.is_active:
            continue
        monthly = monthly_equivalent(s)
        monthly_total += monthly
        monthly_gst += monthly_gst_equivalent(s)
        projected_total += monthly * s.projection_months
        active_count += 1

    return SubscriptionSummary(
        monthly_total=monthly_total,
        annual_total=monthly_total * MONTHS_PER_YEAR,
        monthly_gst=monthly_gst,
        projected_total=projected_total,
        active_count=active_count,
    )


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def monthly_cash_flow(
    transactions: Iterable[Transaction],
    month_count: int,
    reference_date: date,
) -> list[CashFlowMonth]:
    """
    Income and expense per calendar month, oldest first.

    Returns exactly month_count entries for the months ending at
    reference_date's month. A month is (calendar month, calendar year),
    not a rolling 30-day window.
    """
    if month_count < 1:
        raise ValueError("month_count must be at least 1")

    buckets: dict[tuple[int, int], list[Decimal]] = {}
    for offset in range(month_count - 1, -1, -1):
        key = _shift_month(reference_date.year, reference_date.month, -offset)
        buckets[key] = [ZERO, ZERO]

    for t in transactions:
        key = (t.transaction_date.year, t.transaction_date.month)
        bucket = buckets.get(key)
        if bucket is None:
            continue
        if t.type == TransactionType.INCOME:
            bucket[0] += t.amount
        else:
            bucket[1] += t.amount

    return [
        CashFlowMonth(
            month_label=calendar.month_abbr[month],
            year=year,
            month=month,
            income=income,
            expense=expense,
        )
        for (year, month), (income, expense) in buckets.items()
    ]
