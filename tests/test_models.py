"""
Tests for Family Finance models

Test strategy:
1. Unit tests for individual components (models, validators, aggregation)
2. Flow tests against the in-memory backends
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from pydantic import ValidationError

from family_finance.models.finance import (
    BudgetCategory,
    BudgetStatus,
    Currency,
    FinancialSummary,
    MemberRole,
    MutationResult,
    Profile,
    SavingsGoal,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from family_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_transaction(**overrides):
    data = {
        "date": "2024-03-15",
        "amount": "250000",
        "type": "expense",
        "category": "Food",
    }
    data.update(overrides)
    return Transaction(**data)


class TestTransactionModel:
    """Tests for the Transaction record."""

    def test_transaction_creation(self):
        """Test Transaction model creation from form-like values."""
        tx = make_transaction()
        assert tx.date == date(2024, 3, 15)
        assert tx.amount == Decimal("250000")
        assert tx.type == TransactionType.EXPENSE
        assert tx.currency == Currency.IDR
        assert tx.id is None

    def test_transaction_strips_whitespace(self):
        """Test that whitespace is stripped from the category."""
        tx = make_transaction(category="  Food  ")
        assert tx.category == "Food"

    def test_transaction_accepts_day_first_dates(self):
        """Test dd/mm/yyyy form input."""
        tx = make_transaction(date="15/03/2024")
        assert tx.date == date(2024, 3, 15)

    def test_transaction_ignores_time_of_day(self):
        """Test ISO timestamps keep only the calendar date."""
        assert make_transaction(date="2024-03-15T23:10:00Z").date == date(2024, 3, 15)
        assert make_transaction(date=datetime(2024, 3, 15, 8, 30)).date == date(2024, 3, 15)

    def test_transaction_rejects_malformed_date(self):
        """Test that a bad date is an error, not today's date."""
        with pytest.raises(ValidationError):
            make_transaction(date="next tuesday")

    def test_transaction_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        with pytest.raises(ValidationError):
            make_transaction(amount="0")
        with pytest.raises(ValidationError):
            make_transaction(amount="-100")

    def test_transaction_blank_optional_fields(self):
        """Test None description and blank goal id normalise."""
        tx = make_transaction(description=None, goal_id="", id="")
        assert tx.description == ""
        assert tx.goal_id is None
        assert tx.id is None

    def test_signed_amount(self):
        """Test income is positive and expense negative."""
        assert make_transaction(type="income").signed_amount == Decimal("250000")
        assert make_transaction(type="expense").signed_amount == Decimal("-250000")

    def test_to_record_is_json_safe(self):
        """Test conversion to a plain dict for storage."""
        record = make_transaction(user_id="u1").to_record(exclude_id=True)
        assert "id" not in record
        assert record["date"] == "2024-03-15"
        assert record["type"] == "expense"
        assert Decimal(record["amount"]) == Decimal("250000")

    def test_from_record_validates(self):
        """Test stored text values come back typed."""
        tx = Transaction.from_record({
            "id": "tx-1",
            "user_id": "u1",
            "date": "2024-03-15",
            "amount": "99.50",
            "type": "income",
            "category": "Salary",
            "currency": "USD",
        })
        assert tx.amount == Decimal("99.50")
        assert tx.currency == Currency.USD
        assert tx.is_income


class TestBudgetAndGoalModels:
    """Tests for categories, goals and profiles."""

    def test_budget_category_allows_zero_budget(self):
        """Test a zero ceiling is valid."""
        category = BudgetCategory(name="Gifts", budget=0)
        assert category.budget == Decimal("0")
        assert category.color == "#3b82f6"

    def test_budget_category_rejects_negative_budget(self):
        """Test that negative budgets are rejected."""
        with pytest.raises(ValidationError):
            BudgetCategory(name="Food", budget=-1)

    def test_budget_category_rejects_bad_color(self):
        """Test colour must be a hex code."""
        with pytest.raises(ValidationError):
            BudgetCategory(name="Food", budget=100, color="blue")

    def test_savings_goal_current_not_clamped(self):
        """Test current amount may pass the target."""
        goal = SavingsGoal(title="Laptop", target_amount=100, current_amount=150)
        assert goal.current_amount > goal.target_amount

    def test_savings_goal_blank_due_date(self):
        """Test an empty due date means no due date."""
        goal = SavingsGoal(title="Laptop", target_amount=100, due_date="")
        assert goal.due_date is None

    def test_profile_initials(self):
        """Test initials for the avatar fallback."""
        profile = Profile(name="Ayu Lestari", role="Admin")
        assert profile.initials == "AL"
        assert profile.role == MemberRole.ADMIN


class TestDerivedModels:
    """Tests for view-state models."""

    def test_mixed_currency_flag(self):
        """Test the summary reports mixed currencies."""
        summary = FinancialSummary(
            reference_month=date(2024, 3, 1),
            currencies=[Currency.IDR, Currency.USD],
        )
        assert summary.mixed_currency is True

    def test_budget_status_remaining_and_overage(self):
        """Test remaining and overage never go negative."""
        status = BudgetStatus(
            name="Food",
            budget=Decimal("400000"),
            spent=Decimal("450000"),
            is_over_budget=True,
            percentage=100,
            raw_percentage=113,
        )
        assert status.overage == Decimal("50000")
        assert status.remaining == Decimal("0")

    def test_failed_mutation_cannot_carry_record(self):
        """Test a failed mutation has no stored record."""
        with pytest.raises(ValidationError):
            MutationResult(success=False, message="nope", record=make_transaction())


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="Transaction created",
        )
        assert event.event_type == AuditEventType.TRANSACTION_SAVED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.GOAL_SYNCED,
            description="Updated savings goal: New Car",
            details={"new_amount": "4000000"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "goal_synced"
        assert log_dict["details"]["new_amount"] == "4000000"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            user_id="u1",
            description="Transaction created",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "transaction_saved"  # event_type
        assert row[4] == "u1"  # user_id
        assert row[11] == "True"  # is_user_action

    def test_audit_event_builder_record_saved(self):
        """Test AuditEventBuilder.record_saved picks create vs update."""
        created = AuditEventBuilder.record_saved("transaction", "tx-1", "u1", is_update=False)
        updated = AuditEventBuilder.record_saved("transaction", "tx-1", "u1", is_update=True)

        assert created.event_type == AuditEventType.TRANSACTION_SAVED
        assert updated.event_type == AuditEventType.TRANSACTION_UPDATED
        assert updated.description == "Transaction updated"
        assert updated.is_user_action is True

    def test_audit_event_builder_goal_sync_failed(self):
        """Test AuditEventBuilder.goal_sync_failed."""
        event = AuditEventBuilder.goal_sync_failed(
            goal_id="g1",
            title="New Car",
            error_message="timeout",
            user_id="u1",
        )
        assert event.event_type == AuditEventType.GOAL_SYNC_FAILED
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "g1"
        assert event.error_message == "timeout"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            subject="transaction",
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Amount is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.error_messages == ["Amount is required"]

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            subject="transaction",
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
