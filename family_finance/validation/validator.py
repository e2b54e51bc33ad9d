"""
Two-Stage Validation Pipeline

DESIGN DECISION: Form input is validated in two distinct stages before
anything reaches the persistence client:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Type and format checks (numbers, dates, enum values)
- Ranges (amount > 0, budget >= 0)
- Errors here block the save

STAGE 2 - SEMANTIC VALIDATION:
- Dates too far in the future
- Implausibly large amounts
- Expense categories with no budget
- Savings transactions no goal can match
- These are warnings; the save still goes ahead

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the user can correct the form.
"""

import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ValidationError

from family_finance.config import AppSettings, get_settings
from family_finance.models.finance import (
    BudgetCategory,
    Currency,
    MemberRole,
    Profile,
    SavingsGoal,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    parse_record_date,
)
from family_finance.savings import is_savings_transaction


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# bcrypt only reads the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


class ValidationFailedError(Exception):
    """Raised when submitted data fails schema validation. Nothing was saved."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__("; ".join(result.error_messages) or "Validation failed")


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Read a form number; None when it isn't one."""
    if isinstance(value, bool) or _is_blank(value):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _to_date(value: Any) -> Optional[date]:
    try:
        parsed = parse_record_date(value)
    except ValueError:
        return None
    return parsed if isinstance(parsed, date) else None


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _model_issues(model: type[BaseModel], data: dict[str, Any]) -> list[ValidationIssue]:
    """Anything the model itself rejects that the explicit checks missed."""
    try:
        model.model_validate(data)
    except ValidationError as e:
        return [
            _error(
                field=str(err["loc"][0]) if err["loc"] else "record",
                issue_type="invalid_value",
                message=err["msg"],
            )
            for err in e.errors()
        ]
    return []


def _build_result(
    subject: str,
    schema_issues: list[ValidationIssue],
    semantic_issues: Optional[list[ValidationIssue]] = None,
) -> ValidationResult:
    schema_valid = not any(issue.severity == "error" for issue in schema_issues)
    semantic_valid = False
    all_issues = list(schema_issues)

    if schema_valid:
        semantic_issues = semantic_issues or []
        semantic_valid = not any(issue.severity == "error" for issue in semantic_issues)
        all_issues.extend(semantic_issues)

    return ValidationResult(
        subject=subject,
        schema_valid=schema_valid,
        semantic_valid=semantic_valid,
        is_valid=schema_valid and semantic_valid,
        issues=all_issues,
        warnings=[issue.message for issue in all_issues if issue.severity == "warning"],
    )


def get_user_friendly_summary(result: ValidationResult) -> str:
    """
    Generate a user-friendly summary of validation results.

    This is what we show next to the form.
    """
    if result.is_valid and not result.warnings:
        return "✅ All checks passed!"

    lines = []

    if not result.schema_valid:
        lines.append("❌ Please fix the following:")
        for issue in result.issues:
            if issue.severity == "error":
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

    if result.warnings:
        if lines:
            lines.append("")
        lines.append("⚠️ Please double-check:")
        for warning in result.warnings:
            lines.append(f"   • {warning}")

    return "\n".join(lines)


# =============================================================================
# VALIDATORS
# =============================================================================

class TransactionValidator:
    """
    Validates a submitted transaction form.

    Stage 1 checks the form can become a Transaction at all.
    Stage 2 looks for values that are legal but probably mistakes.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_schema(self, data: dict[str, Any]) -> list[ValidationIssue]:
        issues = []

        amount = _to_decimal(data.get("amount"))
        if _is_blank(data.get("amount")):
            issues.append(_error("amount", "missing", "Amount is required"))
        elif amount is None:
            issues.append(_error("amount", "invalid_value", "Amount must be a number"))
        elif amount <= 0:
            issues.append(_error(
                "amount",
                "invalid_value",
                "Amount must be greater than zero",
                "Choose expense instead of entering a negative amount",
            ))

        if _is_blank(data.get("category")):
            issues.append(_error("category", "missing", "Category is required"))

        tx_type = data.get("type")
        if tx_type not in [t.value for t in TransactionType] and not isinstance(tx_type, TransactionType):
            issues.append(_error(
                "type",
                "invalid_value",
                f"Type must be income or expense, got {tx_type!r}",
            ))

        if _is_blank(data.get("date")):
            issues.append(_error("date", "missing", "Date is required"))
        elif _to_date(data.get("date")) is None:
            issues.append(_error(
                "date",
                "invalid_value",
                f"Unrecognised date: {data.get('date')!r}",
                "Use YYYY-MM-DD or dd/mm/yyyy",
            ))

        currency = data.get("currency")
        if not _is_blank(currency) and currency not in [c.value for c in Currency] \
                and not isinstance(currency, Currency):
            issues.append(_error(
                "currency",
                "invalid_value",
                f"Unsupported currency: {currency!r}",
            ))

        if not issues:
            issues.extend(_model_issues(Transaction, data))

        return issues

    def _validate_semantic(
        self,
        data: dict[str, Any],
        categories: Optional[Sequence[BudgetCategory]],
    ) -> list[ValidationIssue]:
        issues = []
        transaction = Transaction.model_validate(data)

        max_future_date = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        if transaction.date > max_future_date:
            issues.append(_warning(
                "date",
                "future_date",
                f"Transaction date ({transaction.date}) is in the future",
                "Please verify the date is correct",
            ))

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if transaction.amount > max_amount:
            issues.append(_warning(
                "amount",
                "suspicious_value",
                f"Amount ({transaction.amount:,}) seems unusually high",
                "Please verify this amount is correct",
            ))

        if (
            categories is not None
            and transaction.is_expense
            and transaction.category not in {c.name for c in categories}
        ):
            issues.append(_warning(
                "category",
                "unknown_category",
                f"No budget category named '{transaction.category}'",
                "This expense won't count toward any budget",
            ))

        keyword = self._settings.savings_category_keyword
        if (
            is_savings_transaction(transaction, keyword)
            and not transaction.description
            and not transaction.goal_id
        ):
            issues.append(_warning(
                "description",
                "no_goal_match",
                "Savings transaction has no description, so no goal will be updated",
                "Mention the goal name in the description",
            ))

        return issues

    def validate(
        self,
        data: dict[str, Any],
        categories: Optional[Sequence[BudgetCategory]] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation.

        Args:
            data: Submitted form fields
            categories: The user's budget categories, for the unknown-category check.
                        If None, that check is skipped.
        """
        schema_issues = self._validate_schema(data)
        semantic_issues = None
        if not any(issue.severity == "error" for issue in schema_issues):
            semantic_issues = self._validate_semantic(data, categories)
        return _build_result("transaction", schema_issues, semantic_issues)


class BudgetCategoryValidator:
    """Validates a budget category form. Names must be unique per user."""

    def validate(
        self,
        data: dict[str, Any],
        existing: Sequence[BudgetCategory] = (),
    ) -> ValidationResult:
        issues = []

        name = data.get("name")
        if _is_blank(name):
            issues.append(_error("name", "missing", "Category name is required"))
        else:
            name = str(name).strip()
            if any(c.name == name and c.id != data.get("id") for c in existing):
                issues.append(_error(
                    "name",
                    "duplicate",
                    f"A category named '{name}' already exists",
                    "Edit the existing category instead",
                ))

        budget = _to_decimal(data.get("budget"))
        if _is_blank(data.get("budget")):
            issues.append(_error("budget", "missing", "Budget amount is required"))
        elif budget is None:
            issues.append(_error("budget", "invalid_value", "Budget must be a number"))
        elif budget < 0:
            issues.append(_error("budget", "invalid_value", "Budget cannot be negative"))

        if not issues:
            issues.extend(_model_issues(BudgetCategory, data))

        semantic = []
        if budget == 0:
            semantic.append(_warning(
                "budget",
                "zero_budget",
                "A budget of 0 shows any spending as over budget",
            ))

        return _build_result("budget_category", issues, semantic)


class SavingsGoalValidator:
    """Validates a savings goal form."""

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        issues = []

        if _is_blank(data.get("title")):
            issues.append(_error("title", "missing", "Goal title is required"))

        target = _to_decimal(data.get("target_amount"))
        if _is_blank(data.get("target_amount")):
            issues.append(_error("target_amount", "missing", "Target amount is required"))
        elif target is None or target <= 0:
            issues.append(_error(
                "target_amount",
                "invalid_value",
                "Target amount must be a number greater than zero",
            ))

        current = Decimal("0")
        if not _is_blank(data.get("current_amount")):
            current = _to_decimal(data.get("current_amount"))
            if current is None or current < 0:
                issues.append(_error(
                    "current_amount",
                    "invalid_value",
                    "Current amount must be a number, zero or more",
                ))

        due = None
        if not _is_blank(data.get("due_date")):
            due = _to_date(data.get("due_date"))
            if due is None:
                issues.append(_error(
                    "due_date",
                    "invalid_value",
                    f"Unrecognised date: {data.get('due_date')!r}",
                    "Use YYYY-MM-DD or dd/mm/yyyy",
                ))

        if not issues:
            issues.extend(_model_issues(SavingsGoal, data))

        semantic = []
        if target and current is not None and current > target:
            semantic.append(_warning(
                "current_amount",
                "already_reached",
                "Current amount already exceeds the target",
            ))
        if due and due < date.today():
            semantic.append(_warning(
                "due_date",
                "past_date",
                f"Due date ({due}) has already passed",
            ))

        return _build_result("savings_goal", issues, semantic)


class ProfileValidator:
    """Validates a family member form."""

    def validate(
        self,
        data: dict[str, Any],
        require_email: bool = False,
    ) -> ValidationResult:
        issues = []

        if _is_blank(data.get("name")):
            issues.append(_error("name", "missing", "Name is required"))

        email = data.get("email")
        if require_email and _is_blank(email):
            issues.append(_error("email", "missing", "Email is required"))
        elif not _is_blank(email) and not EMAIL_PATTERN.match(str(email).strip()):
            issues.append(_error("email", "invalid_value", f"'{email}' is not a valid email address"))

        role = data.get("role")
        if not _is_blank(role) and role not in [r.value for r in MemberRole] \
                and not isinstance(role, MemberRole):
            issues.append(_error(
                "role",
                "invalid_value",
                f"Role must be one of {', '.join(r.value for r in MemberRole)}",
            ))

        if not issues:
            issues.extend(_model_issues(Profile, data))

        return _build_result("profile", issues)


def validate_new_password(
    password: str,
    confirm_password: Optional[str] = None,
    min_length: Optional[int] = None,
) -> ValidationResult:
    """Check a password chosen at sign-up."""
    if min_length is None:
        min_length = get_settings().app.min_password_length

    issues = []
    if len(password or "") < min_length:
        issues.append(_error(
            "password",
            "too_short",
            f"Password must be at least {min_length} characters",
        ))
    elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        issues.append(_error(
            "password",
            "too_long",
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
        ))
    if confirm_password is not None and password != confirm_password:
        issues.append(_error("confirm_password", "mismatch", "Passwords do not match"))

    return _build_result("password", issues)


def validate_password_change(
    current_password: str,
    new_password: str,
    confirm_password: str,
    min_length: Optional[int] = None,
) -> ValidationResult:
    """Check a password change form. Does not verify the current password."""
    result = validate_new_password(new_password, confirm_password, min_length)
    issues = list(result.issues)

    if _is_blank(current_password):
        issues.append(_error("current_password", "missing", "Current password is required"))
    elif new_password == current_password:
        issues.append(_error(
            "new_password",
            "unchanged",
            "New password must be different from the current one",
        ))

    return _build_result("password", issues)
