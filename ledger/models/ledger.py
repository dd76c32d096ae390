"""
Core Ledger Models for Culture Crunch

These models define the two record shapes the ledger keeps:
1. Transaction - a single income or expense line
2. Subscription - a recurring cost billed monthly or annually

DESIGN DECISION: Records are frozen.
A mutation always produces a new record (model_copy) that replaces the old
one by id, so the cache and the remote store only ever hold copies.

DESIGN DECISION: gst_amount is STORED, not derived.
It is computed once by create() from the amount the user entered and never
recomputed on read. Editing hasGST after creation is not supported.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class BillingFrequency(str, Enum):
    """How often a subscription is billed."""
    MONTHLY = "MONTHLY"
    ANNUAL = "ANNUAL"


class ExpenseCategory(str, Enum):
    """Expense categories for an Australian pre-seed startup."""
    WAGES = "Wages & Superannuation"
    SOFTWARE = "Software & Subscriptions"
    RENT = "Rent & Utilities"
    MARKETING = "Marketing & Advertising"
    OFFICE_SUPPLIES = "Office Supplies"
    TRAVEL = "Travel & Meals"
    LEGAL = "Legal & Accounting"
    CONTRACTORS = "Contractors"
    EQUIPMENT = "Equipment"
    TRAINING = "Training & Development"
    TEAM_CULTURE = "Team Culture"
    OTHER = "Other"


class IncomeCategory(str, Enum):
    """Income categories."""
    SALES = "Sales"
    SERVICES = "Services"
    GRANTS = "Grants (R&D / EMDG)"
    INTEREST = "Interest"
    OTHER = "Other"


EXPENSE_CATEGORIES: list[str] = [c.value for c in ExpenseCategory]
INCOME_CATEGORIES: list[str] = [c.value for c in IncomeCategory]

# Subscriptions are recurring expenses and share the expense list
SUBSCRIPTION_CATEGORIES: list[str] = EXPENSE_CATEGORIES

PROJECTION_CHOICES: tuple[int, ...] = (3, 6, 12, 24, 36)


def categories_for(transaction_type: TransactionType) -> list[str]:
    """Get the closed category list for a transaction type."""
    if transaction_type == TransactionType.INCOME:
        return INCOME_CATEGORIES
    return EXPENSE_CATEGORIES


def new_record_id() -> str:
    return str(uuid4())


def _coerce_calendar_date(v):
    # Sheets and Apps Script hand dates back as full ISO timestamps
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, str) and "T" in v:
        return v.split("T", 1)[0]
    return v


# =============================================================================
# RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense line.

    amount is the GST-inclusive total. If has_gst is true, gst_amount
    holds amount / 11 as computed at creation time, otherwise 0.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(
        default_factory=new_record_id,
        min_length=1,
        description="Opaque unique id, immutable"
    )
    transaction_date: date = Field(
        ...,
        alias="date",
        description="Calendar date of the transaction"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="GST-inclusive total"
    )
    type: TransactionType
    category: str
    has_gst: bool = Field(default=False, alias="hasGST")
    gst_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        alias="gstAmount",
    )

    @field_validator('transaction_date', mode='before')
    @classmethod
    def normalize_date(cls, v):
        return _coerce_calendar_date(v)

    @model_validator(mode='after')
    def validate_category(self) -> 'Transaction':
        """Category must belong to the list of the transaction's type."""
        if self.category not in categories_for(self.type):
            raise ValueError(
                f"Category {self.category!r} is not valid for {self.type.value}"
            )
        return self

    @classmethod
    def create(
        cls,
        transaction_date: date,
        description: str,
        amount: Decimal,
        type: TransactionType,
        category: str,
        has_gst: bool = False,
    ) -> 'Transaction':
        """Create a new transaction with a fresh id and its GST fixed."""
        from ledger.calculations.financials import compute_gst

        return cls(
            id=new_record_id(),
            transaction_date=transaction_date,
            description=description,
            amount=amount,
            type=type,
            category=category,
            has_gst=has_gst,
            gst_amount=compute_gst(amount, has_gst),
        )

    def to_storage_dict(self) -> dict:
        """Serialize with wire field names; decimals kept exact as strings."""
        return self.model_dump(mode="json", by_alias=True)


class Subscription(BaseModel):
    """
    A recurring cost.

    Paused subscriptions (is_active false) stay in storage and in listings
    but are excluded from every total.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(default_factory=new_record_id, min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Service name"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount billed per frequency period"
    )
    frequency: BillingFrequency
    category: str
    start_date: date = Field(..., alias="startDate")
    projection_months: int = Field(
        default=12,
        gt=0,
        alias="projectionMonths",
        description="Horizon for forward cost projection"
    )
    has_gst: bool = Field(default=False, alias="hasGST")
    gst_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        alias="gstAmount",
    )
    is_active: bool = Field(default=True, alias="isActive")

    @field_validator('start_date', mode='before')
    @classmethod
    def normalize_date(cls, v):
        return _coerce_calendar_date(v)

    @field_validator('category')
    @classmethod
    def validate_category(cls, v: str) -> str:
        if v not in SUBSCRIPTION_CATEGORIES:
            raise ValueError(f"Category {v!r} is not a subscription category")
        return v

    @classmethod
    def create(
        cls,
        name: str,
        amount: Decimal,
        frequency: BillingFrequency,
        category: str,
        start_date: date,
        projection_months: int = 12,
        has_gst: bool = False,
    ) -> 'Subscription':
        """Create a new, active subscription with its GST fixed."""
        from ledger.calculations.financials import compute_gst

        return cls(
            id=new_record_id(),
            name=name,
            amount=amount,
            frequency=frequency,
            category=category,
            start_date=start_date,
            projection_months=projection_months,
            has_gst=has_gst,
            gst_amount=compute_gst(amount, has_gst),
            is_active=True,
        )

    def with_changes(self, **fields) -> 'Subscription':
        """
        Return a copy with snake_case fields replaced.

        The result is re-validated, unlike a bare model_copy.
        """
        data = self.model_dump()
        data.update(fields)
        return Subscription.model_validate(data)

    def to_storage_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# Field name on the wire for each patchable subscription field
SUBSCRIPTION_WIRE_FIELDS: dict[str, str] = {
    name: (info.alias or name)
    for name, info in Subscription.model_fields.items()
}


def subscription_patch_to_wire(fields: dict) -> dict:
    """Convert a snake_case partial update into wire field names and values."""
    wire: dict = {}
    for name, value in fields.items():
        key = SUBSCRIPTION_WIRE_FIELDS.get(name, name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, date):
            value = value.isoformat()
        wire[key] = value
    return wire


def subscription_patch_from_wire(wire: dict) -> dict:
    """Inverse of subscription_patch_to_wire, for stores receiving patches."""
    by_alias = {alias: name for name, alias in SUBSCRIPTION_WIRE_FIELDS.items()}
    return {by_alias.get(key, key): value for key, value in wire.items()}


def seed_transactions() -> list[Transaction]:
    """Illustrative records shown on a first, never-authenticated run."""
    return [
        Transaction.create(
            transaction_date=date(2023, 10, 20),
            description="MacBook Pro",
            amount=Decimal("3500"),
            type=TransactionType.EXPENSE,
            category=ExpenseCategory.EQUIPMENT.value,
            has_gst=True,
        ),
        Transaction.create(
            transaction_date=date(2023, 10, 15),
            description="Seed Funding",
            amount=Decimal("50000"),
            type=TransactionType.INCOME,
            category=IncomeCategory.GRANTS.value,
            has_gst=False,
        ),
    ]


def find_by_id(records: list, record_id: str) -> Optional[int]:
    """Index of the record with this id, or None."""
    for idx, record in enumerate(records):
        if record.id == record_id:
            return idx
    return None
