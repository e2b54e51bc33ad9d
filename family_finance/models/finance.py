"""
Core Data Models for Family Finance

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Replace loosely shaped records with explicit, tagged types
2. Provide clear validation error messages
3. Round-trip through the persistence client as plain dicts
4. Carry the derived figures the dashboard displays

DESIGN DECISION: Every record read from storage is validated into one of
these models. A record that does not fit is rejected at the boundary,
never patched up downstream.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional

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
    """Direction of a money movement."""
    INCOME = "income"
    EXPENSE = "expense"


class Currency(str, Enum):
    """
    Supported currency tags.

    Amounts are never converted; the tag is informational.
    """
    IDR = "IDR"
    USD = "USD"


class MemberRole(str, Enum):
    """Family member role. Advisory only, nothing enforces it."""
    ADMIN = "Admin"
    MEMBER = "Member"
    VIEWER = "Viewer"


class MemberStatus(str, Enum):
    """Presence shown next to a family member."""
    ONLINE = "online"
    OFFLINE = "offline"


class Collection(str, Enum):
    """Named collections exposed by the persistence client."""
    TRANSACTIONS = "transactions"
    BUDGET_CATEGORIES = "budget_categories"
    SAVINGS_GOALS = "savings_goals"
    PROFILES = "profiles"


class OperationStatus(str, Enum):
    """State of the most recent user-initiated operation."""
    IDLE = "idle"
    PENDING = "pending"
    ERROR = "error"


# =============================================================================
# DATE PARSING
# =============================================================================

def parse_record_date(value: Any) -> Any:
    """
    Normalise the date shapes found in stored and submitted records.

    Accepts date, datetime, ISO strings (with or without a time part)
    and dd/mm/yyyy form input. Anything else is left for pydantic to reject.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Date is required")
        if "/" in text:
            try:
                return datetime.strptime(text, "%d/%m/%Y").date()
            except ValueError:
                raise ValueError(f"Unrecognised date: {value!r} (expected dd/mm/yyyy)")
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise ValueError(f"Unrecognised date: {value!r} (expected YYYY-MM-DD)")
    return value


# =============================================================================
# STORED RECORDS
# =============================================================================

class Record(BaseModel):
    """
    Base for everything stored through the persistence client.

    The id is None until the persistence client assigns one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Opaque identifier assigned by storage"
    )

    @field_validator("id", mode="before")
    @classmethod
    def blank_id_is_none(cls, v: Any) -> Any:
        return v or None

    def to_record(self, exclude_id: bool = False) -> dict[str, Any]:
        """Convert to a JSON-safe dict for the persistence client."""
        data = self.model_dump(mode="json")
        if exclude_id:
            data.pop("id", None)
        return data

    @classmethod
    def from_record(cls, record: dict[str, Any]):
        """Validate a raw stored record into this model."""
        return cls.model_validate(record)


class OwnedRecord(Record):
    """A record scoped to exactly one owning user."""

    user_id: Optional[str] = Field(
        default=None,
        description="Identity the record belongs to"
    )


class Transaction(OwnedRecord):
    """
    A single dated money movement.

    Mutated only by full replacement; deleted by id.
    """

    date: Annotated[
        date,
        Field(description="Calendar date of the movement (time of day ignored)")
    ]
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount, always positive; type carries the sign"
    )
    type: TransactionType
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Budget category name or free text"
    )
    description: str = Field(
        default="",
        max_length=500,
    )
    currency: Currency = Field(
        default=Currency.IDR,
        description="Currency tag, never converted"
    )
    goal_id: Optional[str] = Field(
        default=None,
        description="Explicit savings goal this transaction contributes to"
    )

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> Any:
        return parse_record_date(v)

    @field_validator("description", mode="before")
    @classmethod
    def none_description_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("goal_id", mode="before")
    @classmethod
    def blank_goal_id_is_none(cls, v: Any) -> Any:
        return v or None

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def signed_amount(self) -> Decimal:
        """Amount with income positive and expense negative."""
        return self.amount if self.is_income else -self.amount

    @property
    def month_key(self) -> tuple[int, int]:
        return (self.date.year, self.date.month)


class BudgetCategory(OwnedRecord):
    """
    A named spending bucket with a monthly ceiling.

    The spent amount is derived from transactions and never stored.
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display label, unique per user, joins Transaction.category"
    )
    budget: Decimal = Field(
        ...,
        ge=0,
        description="Monthly ceiling"
    )
    color: str = Field(
        default="#3b82f6",
        pattern=r"^#[0-9a-fA-F]{3,8}$",
        description="Display hint only"
    )


class SavingsGoal(OwnedRecord):
    """
    A named target amount.

    current_amount may exceed target_amount; it is never clamped.
    """

    title: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Goal name, also the token matched against descriptions"
    )
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: Optional[date] = None
    updated_at: Optional[datetime] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        return parse_record_date(v)


class Profile(Record):
    """
    A family member visible to a household account.

    id equals the member's identity id; owner_id is the household
    account that added them (equal to id for the account holder).
    """

    owner_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=200)
    role: MemberRole = MemberRole.MEMBER
    status: MemberStatus = MemberStatus.OFFLINE
    avatar_url: Optional[str] = None

    @property
    def initials(self) -> str:
        return "".join(part[0] for part in self.name.split() if part).upper()


class UserIdentity(BaseModel):
    """The signed-in identity returned by the identity provider."""

    id: str
    email: str


# =============================================================================
# DERIVED VIEW STATE
# =============================================================================

class FinancialSummary(BaseModel):
    """Headline dashboard figures."""

    total_balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed sum over every transaction, regardless of month"
    )
    income: Decimal = Field(
        default=Decimal("0"),
        description="Income inside the reference month"
    )
    expenses: Decimal = Field(
        default=Decimal("0"),
        description="Expenses inside the reference month"
    )
    reference_month: date = Field(
        ...,
        description="First day of the month income/expenses cover"
    )
    currencies: list[Currency] = Field(
        default_factory=list,
        description="Currency tags seen while summing"
    )

    @property
    def mixed_currency(self) -> bool:
        """True when amounts in different currencies were added together."""
        return len(self.currencies) > 1


class CategorySpend(BaseModel):
    """Total expense booked against one budget category."""

    category: str
    total_spent: Decimal = Field(default=Decimal("0"), ge=0)


class BudgetStatus(BaseModel):
    """
    Budget-vs-spend for one category.

    percentage is clamped for progress bars; is_over_budget always
    compares the unclamped amounts.
    """

    name: str
    budget: Decimal
    spent: Decimal
    is_over_budget: bool
    percentage: int = Field(
        ...,
        ge=0,
        le=100,
        description="Display percentage, clamped to 100"
    )
    raw_percentage: Optional[int] = Field(
        default=None,
        description="Unclamped percentage; None when budget is 0 but money was spent"
    )
    color: Optional[str] = None

    @property
    def remaining(self) -> Decimal:
        return max(self.budget - self.spent, Decimal("0"))

    @property
    def overage(self) -> Decimal:
        return max(self.spent - self.budget, Decimal("0"))


class MonthlyTotals(BaseModel):
    """Income and expenses for one month bucket."""

    month: str
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class GoalProgress(BaseModel):
    """Progress of one savings goal."""

    goal_id: Optional[str] = None
    title: str
    current_amount: Decimal
    target_amount: Decimal
    percentage: int = Field(..., ge=0, description="Unclamped progress")
    display_percentage: int = Field(..., ge=0, le=100)
    remaining: Decimal
    is_complete: bool
    due_date: Optional[date] = None


class DashboardState(BaseModel):
    """Everything the dashboard renders, derived in one pass."""

    summary: FinancialSummary
    savings_rate: float
    category_breakdown: list[CategorySpend] = Field(default_factory=list)
    budget_status: list[BudgetStatus] = Field(default_factory=list)
    monthly_series: list[MonthlyTotals] = Field(default_factory=list)
    goals: list[GoalProgress] = Field(default_factory=list)
    recent_transactions: list[Transaction] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, types, ranges)
    Stage 2: Semantic validation (plausibility checks, warnings only)
    """

    subject: str = Field(
        ...,
        description="What was validated (e.g., 'transaction', 'savings_goal')"
    )
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    # Warnings don't block but should be shown
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]


# =============================================================================
# MUTATION RESULTS
# =============================================================================

class GoalSyncFailure(BaseModel):
    """A savings goal whose automatic update could not be written."""

    goal_id: Optional[str] = None
    title: str
    error_message: str


class GoalSyncResult(BaseModel):
    """
    Outcome of pushing one transaction into the savings goals.

    Updates are written one by one; failures never undo earlier writes.
    """

    updated: list[SavingsGoal] = Field(default_factory=list)
    failed: list[GoalSyncFailure] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return len(self.failed) > 0

    @property
    def touched_any(self) -> bool:
        return bool(self.updated or self.failed)


class MutationResult(BaseModel):
    """What a flow reports back after a create, update or delete."""

    success: bool
    message: str
    record: Optional[Record] = None
    notices: list[str] = Field(
        default_factory=list,
        description="Follow-up successes, e.g. savings goals that were updated"
    )
    warnings: list[str] = Field(default_factory=list)
    goal_sync: Optional[GoalSyncResult] = None

    @model_validator(mode='after')
    def failed_mutation_has_no_record(self) -> 'MutationResult':
        if not self.success and self.record is not None:
            raise ValueError("A failed mutation cannot carry a stored record")
        return self
