"""Input validation package."""

from family_finance.validation.validator import (
    BudgetCategoryValidator,
    ProfileValidator,
    SavingsGoalValidator,
    TransactionValidator,
    ValidationFailedError,
    get_user_friendly_summary,
    validate_new_password,
    validate_password_change,
)

__all__ = [
    "BudgetCategoryValidator",
    "ProfileValidator",
    "SavingsGoalValidator",
    "TransactionValidator",
    "ValidationFailedError",
    "get_user_friendly_summary",
    "validate_new_password",
    "validate_password_change",
]
