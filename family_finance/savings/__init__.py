"""Savings goal matching package."""

from family_finance.savings.matcher import (
    DEFAULT_SAVINGS_KEYWORD,
    SavingsGoalSynchronizer,
    apply_transaction_to_goals,
    is_savings_transaction,
    match_goals,
)

__all__ = [
    "DEFAULT_SAVINGS_KEYWORD",
    "SavingsGoalSynchronizer",
    "apply_transaction_to_goals",
    "is_savings_transaction",
    "match_goals",
]
