"""
Dashboard Aggregation Engine

DESIGN DECISION: Aggregation is DETERMINISTIC and side-effect free.
Every figure on the dashboard is recomputed from the raw transaction,
category and goal records after each fetch. Nothing derived is stored,
so there is nothing to keep in sync.

Money is summed as Decimal. Percentages use half-up rounding so that
82.5% shows as 83%, matching what users expect from a calculator.

KNOWN LIMITATION: amounts in different currencies are added as raw
numbers. The summary reports which currencies were mixed so the caller
can warn about it.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

import structlog

from family_finance.models.finance import (
    BudgetCategory,
    BudgetStatus,
    CategorySpend,
    DashboardState,
    FinancialSummary,
    GoalProgress,
    MonthlyTotals,
    SavingsGoal,
    Transaction,
)


logger = structlog.get_logger(__name__)

MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _round_half_up(value: Decimal, step: str = "1") -> Decimal:
    return value.quantize(Decimal(step), rounding=ROUND_HALF_UP)


def _month_start(reference_month: Optional[date]) -> date:
    return (reference_month or date.today()).replace(day=1)


def compute_financial_summary(
    transactions: Iterable[Transaction],
    reference_month: Optional[date] = None,
) -> FinancialSummary:
    """
    Compute balance plus the reference month's income and expenses.

    The balance covers every transaction ever recorded; there is no
    opening balance. Income and expenses cover only the calendar month
    (year and month) containing reference_month, which defaults to today.
    """
    month = _month_start(reference_month)
    month_key = (month.year, month.month)

    total_balance = ZERO
    income = ZERO
    expenses = ZERO
    currencies = []

    for tx in transactions:
        total_balance += tx.signed_amount
        if tx.currency not in currencies:
            currencies.append(tx.currency)

        if tx.month_key != month_key:
            continue
        if tx.is_income:
            income += tx.amount
        else:
            expenses += tx.amount

    if len(currencies) > 1:
        logger.warning(
            "mixed_currency_sum",
            currencies=[c.value for c in currencies],
        )

    return FinancialSummary(
        total_balance=total_balance,
        income=income,
        expenses=expenses,
        reference_month=month,
        currencies=currencies,
    )


def compute_savings_rate(income, expenses) -> float:
    """
    Share of income left after expenses, as a percentage.

    Returns 0.0 when there is no income. Can be negative when expenses
    exceed income. Rounded to one decimal place.
    """
    income = Decimal(str(income))
    expenses = Decimal(str(expenses))
    if income == 0:
        return 0.0
    rate = (income - expenses) / income * HUNDRED
    return float(_round_half_up(rate, "0.1"))


def compute_category_breakdown(
    transactions: Iterable[Transaction],
    categories: Sequence[BudgetCategory],
    reference_month: Optional[date] = None,
) -> list[CategorySpend]:
    """
    Sum expenses per budget category.

    A transaction counts toward a category when it is an expense and its
    category equals the category name exactly (case-sensitive). Every
    category gets a row, zero when nothing matched. When reference_month
    is given only that calendar month is summed.
    """
    totals = {category.name: ZERO for category in categories}
    month_key = None
    if reference_month is not None:
        month_key = (reference_month.year, reference_month.month)

    for tx in transactions:
        if not tx.is_expense or tx.category not in totals:
            continue
        if month_key and tx.month_key != month_key:
            continue
        totals[tx.category] += tx.amount

    return [
        CategorySpend(category=category.name, total_spent=totals[category.name])
        for category in categories
    ]


def budget_status_for(
    name: str,
    budget: Decimal,
    spent: Decimal,
    color: Optional[str] = None,
) -> BudgetStatus:
    """
    Budget-vs-spend for a single category.

    A zero budget has no meaningful percentage: nothing spent reads as 0%,
    anything spent reads as a full bar with raw_percentage left undefined.
    """
    if budget == 0:
        raw_percentage = 0 if spent == 0 else None
        percentage = 0 if spent == 0 else 100
    else:
        raw_percentage = int(_round_half_up(spent / budget * HUNDRED))
        percentage = min(raw_percentage, 100)

    return BudgetStatus(
        name=name,
        budget=budget,
        spent=spent,
        is_over_budget=spent > budget,
        percentage=percentage,
        raw_percentage=raw_percentage,
        color=color,
    )


def compute_budget_status(
    categories: Sequence[BudgetCategory],
    breakdown: Sequence[CategorySpend],
) -> list[BudgetStatus]:
    """Pair each category's ceiling with its spend from the breakdown."""
    spent_by_name = {row.category: row.total_spent for row in breakdown}
    return [
        budget_status_for(
            category.name,
            category.budget,
            spent_by_name.get(category.name, ZERO),
            color=category.color,
        )
        for category in categories
    ]


def generate_monthly_series(
    transactions: Iterable[Transaction],
    month_labels: Sequence[str] = MONTH_LABELS,
    *,
    year: Optional[int] = None,
) -> list[MonthlyTotals]:
    """
    Income and expenses per calendar month, always twelve buckets.

    With a year, only that year's transactions are counted. Without one,
    transactions are bucketed by month alone, so different years fold
    into the same bucket (a seasonal view).
    """
    if len(month_labels) != 12:
        raise ValueError(f"Expected 12 month labels, got {len(month_labels)}")

    income = [ZERO] * 12
    expenses = [ZERO] * 12

    for tx in transactions:
        if year is not None and tx.date.year != year:
            continue
        index = tx.date.month - 1
        if tx.is_income:
            income[index] += tx.amount
        else:
            expenses[index] += tx.amount

    return [
        MonthlyTotals(month=label, income=income[i], expenses=expenses[i])
        for i, label in enumerate(month_labels)
    ]


def compute_goal_progress(goal: SavingsGoal) -> GoalProgress:
    """Progress toward one savings goal; the raw percentage may pass 100."""
    percentage = int(_round_half_up(goal.current_amount / goal.target_amount * HUNDRED))
    return GoalProgress(
        goal_id=goal.id,
        title=goal.title,
        current_amount=goal.current_amount,
        target_amount=goal.target_amount,
        percentage=percentage,
        display_percentage=min(percentage, 100),
        remaining=max(goal.target_amount - goal.current_amount, ZERO),
        is_complete=goal.current_amount >= goal.target_amount,
        due_date=goal.due_date,
    )


def recent_transactions(
    transactions: Iterable[Transaction],
    limit: int = 5,
) -> list[Transaction]:
    """Newest first by date; ties keep their input order."""
    return sorted(transactions, key=lambda tx: tx.date, reverse=True)[:limit]


def build_dashboard(
    transactions: Iterable[Transaction],
    categories: Sequence[BudgetCategory],
    goals: Sequence[SavingsGoal] = (),
    reference_month: Optional[date] = None,
    recent_count: int = 5,
) -> DashboardState:
    """
    Derive the complete dashboard in one pass over the fetched records.

    Category spend and budget status cover the reference month, since
    budgets are monthly ceilings. The monthly series covers the reference
    year.
    """
    transactions = list(transactions)
    month = _month_start(reference_month)

    summary = compute_financial_summary(transactions, month)
    breakdown = compute_category_breakdown(transactions, categories, reference_month=month)

    return DashboardState(
        summary=summary,
        savings_rate=compute_savings_rate(summary.income, summary.expenses),
        category_breakdown=breakdown,
        budget_status=compute_budget_status(categories, breakdown),
        monthly_series=generate_monthly_series(transactions, year=month.year),
        goals=[compute_goal_progress(goal) for goal in goals],
        recent_transactions=recent_transactions(transactions, recent_count),
    )
