"""
Data Models Package

This package contains all Pydantic models used in the Family Finance system.
All data flowing through the system must conform to these schemas.
"""

from family_finance.models.finance import (
    BudgetCategory,
    BudgetStatus,
    CategorySpend,
    Collection,
    Currency,
    DashboardState,
    FinancialSummary,
    GoalProgress,
    GoalSyncFailure,
    GoalSyncResult,
    MemberRole,
    MemberStatus,
    MonthlyTotals,
    MutationResult,
    OperationStatus,
    OwnedRecord,
    Profile,
    Record,
    SavingsGoal,
    Transaction,
    TransactionType,
    UserIdentity,
    ValidationIssue,
    ValidationResult,
    parse_record_date,
)
from family_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "BudgetCategory",
    "OwnedRecord",
    "Profile",
    "Record",
    "SavingsGoal",
    "Transaction",
    "UserIdentity",
    # Enums
    "Collection",
    "Currency",
    "MemberRole",
    "MemberStatus",
    "OperationStatus",
    "TransactionType",
    # Derived view state
    "BudgetStatus",
    "CategorySpend",
    "DashboardState",
    "FinancialSummary",
    "GoalProgress",
    "MonthlyTotals",
    # Validation and results
    "GoalSyncFailure",
    "GoalSyncResult",
    "MutationResult",
    "ValidationIssue",
    "ValidationResult",
    "parse_record_date",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
