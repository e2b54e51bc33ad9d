"""Dashboard aggregation package."""

from family_finance.aggregation.engine import (
    MONTH_LABELS,
    budget_status_for,
    build_dashboard,
    compute_budget_status,
    compute_category_breakdown,
    compute_financial_summary,
    compute_goal_progress,
    compute_savings_rate,
    generate_monthly_series,
    recent_transactions,
)

__all__ = [
    "MONTH_LABELS",
    "budget_status_for",
    "build_dashboard",
    "compute_budget_status",
    "compute_category_breakdown",
    "compute_financial_summary",
    "compute_goal_progress",
    "compute_savings_rate",
    "generate_monthly_series",
    "recent_transactions",
]
