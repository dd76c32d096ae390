"""
Entry Validation

Raw form input (strings, as typed) is validated BEFORE any record is
built. A draft either becomes a complete record with its GST fixed, or it
is rejected with the list of issues; no partial record is ever created.

IMPORTANT: Validation NEVER silently fixes issues.
The only defaults applied are the ones the entry form itself shows: the
first category of the list, today's date and a 12-month projection.
"""

from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Union

from pydantic import BaseModel, Field

from ledger.models.ledger import (
    SUBSCRIPTION_CATEGORIES,
    BillingFrequency,
    Subscription,
    Transaction,
    TransactionType,
    categories_for,
)


# How far ahead a transaction may be dated before we warn
FUTURE_DATE_TOLERANCE_DAYS = 7


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'invalid_value')"
    )
    message: str
    severity: str = Field(..., pattern="^(error|warning)$")


class ValidationResult(BaseModel):
    """Outcome of validating one draft."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]


class EntryValidationError(ValueError):
    """Raised when a draft cannot become a record."""

    def __init__(self, result: ValidationResult):
        messages = "; ".join(i.message for i in result.issues if i.severity == "error")
        super().__init__(f"Invalid entry: {messages}")
        self.result = result


class TransactionDraft(BaseModel):
    """Transaction form input, as entered."""

    description: str = ""
    amount: str = ""
    type: TransactionType = TransactionType.EXPENSE
    category: Optional[str] = None
    transaction_date: Optional[Union[date, str]] = None
    has_gst: bool = False


class SubscriptionDraft(BaseModel):
    """Subscription form input, as entered."""

    name: str = ""
    amount: str = ""
    frequency: BillingFrequency = BillingFrequency.MONTHLY
    category: Optional[str] = None
    start_date: Optional[Union[date, str]] = None
    projection_months: str = ""
    has_gst: bool = True


def _parse_amount(raw: str, issues: list[ValidationIssue]) -> Optional[Decimal]:
    text = (raw or "").strip().replace(",", "").lstrip("$")
    if not text:
        issues.append(ValidationIssue(
            field="amount",
            issue_type="missing",
            message="Amount is required",
            severity="error",
        ))
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        issues.append(ValidationIssue(
            field="amount",
            issue_type="invalid_format",
            message=f"Amount {raw!r} is not a number",
            severity="error",
        ))
        return None
    if amount < 0:
        issues.append(ValidationIssue(
            field="amount",
            issue_type="invalid_value",
            message="Amount cannot be negative",
            severity="error",
        ))
        return None
    return amount


def _parse_date(
    raw: Optional[Union[date, str]],
    field: str,
    today: date,
    issues: list[ValidationIssue],
) -> Optional[date]:
    if raw is None or raw == "":
        return today
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(raw.strip().split("T", 1)[0])
    except ValueError:
        issues.append(ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message=f"Date {raw!r} is not a valid YYYY-MM-DD date",
            severity="error",
        ))
        return None


class EntryValidator:
    """
    Validates transaction and subscription drafts.
    """

    def __init__(
        self,
        today: Callable[[], date] = date.today,
        default_projection_months: int = 12,
    ):
        self._today = today
        self._default_projection_months = default_projection_months

    def _check_transaction(
        self,
        draft: TransactionDraft,
    ) -> tuple[ValidationResult, Optional[dict]]:
        issues: list[ValidationIssue] = []
        today = self._today()

        description = draft.description.strip()
        if not description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
            ))

        amount = _parse_amount(draft.amount, issues)

        allowed = categories_for(draft.type)
        category = draft.category or allowed[0]
        if category not in allowed:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=f"{category!r} is not a {draft.type.value.lower()} category",
                severity="error",
            ))

        when = _parse_date(draft.transaction_date, "transaction_date", today, issues)
        if when and when > today + timedelta(days=FUTURE_DATE_TOLERANCE_DAYS):
            issues.append(ValidationIssue(
                field="transaction_date",
                issue_type="future_date",
                message=f"Transaction date ({when}) is in the future",
                severity="warning",
            ))

        result = ValidationResult(issues=issues)
        if result.has_errors:
            return result, None
        return result, {
            "transaction_date": when,
            "description": description,
            "amount": amount,
            "type": draft.type,
            "category": category,
            "has_gst": draft.has_gst,
        }

    def _check_subscription(
        self,
        draft: SubscriptionDraft,
    ) -> tuple[ValidationResult, Optional[dict]]:
        issues: list[ValidationIssue] = []

        name = draft.name.strip()
        if not name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Service name is required",
                severity="error",
            ))

        amount = _parse_amount(draft.amount, issues)

        category = draft.category or SUBSCRIPTION_CATEGORIES[0]
        if category not in SUBSCRIPTION_CATEGORIES:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=f"{category!r} is not a subscription category",
                severity="error",
            ))

        start = _parse_date(draft.start_date, "start_date", self._today(), issues)

        # Blank or zero falls back to the default horizon, as the form does
        projection_months = self._default_projection_months
        raw_months = draft.projection_months.strip()
        if raw_months:
            try:
                projection_months = int(raw_months) or self._default_projection_months
            except ValueError:
                issues.append(ValidationIssue(
                    field="projection_months",
                    issue_type="invalid_format",
                    message=f"Projection months {raw_months!r} is not a whole number",
                    severity="error",
                ))
            else:
                if projection_months < 0:
                    issues.append(ValidationIssue(
                        field="projection_months",
                        issue_type="invalid_value",
                        message="Projection months must be positive",
                        severity="error",
                    ))

        result = ValidationResult(issues=issues)
        if result.has_errors:
            return result, None
        return result, {
            "name": name,
            "amount": amount,
            "frequency": draft.frequency,
            "category": category,
            "start_date": start,
            "projection_months": projection_months,
            "has_gst": draft.has_gst,
        }

    def validate_transaction(self, draft: TransactionDraft) -> ValidationResult:
        return self._check_transaction(draft)[0]

    def validate_subscription(self, draft: SubscriptionDraft) -> ValidationResult:
        return self._check_subscription(draft)[0]

    def build_transaction(self, draft: TransactionDraft) -> Transaction:
        """
        Validate a draft and create the transaction.

        Raises:
            EntryValidationError: The draft has error-level issues
        """
        result, fields = self._check_transaction(draft)
        if fields is None:
            raise EntryValidationError(result)
        return Transaction.create(**fields)

    def build_subscription(self, draft: SubscriptionDraft) -> Subscription:
        """
        Validate a draft and create an active subscription.

        Raises:
            EntryValidationError: The draft has error-level issues
        """
        result, fields = self._check_subscription(draft)
        if fields is None:
            raise EntryValidationError(result)
        return Subscription.create(**fields)
