"""
Flow tests against the in-memory backends.

Every flow runs end to end: validation, persistence, goal sync, audit
and the application-state store.
"""

from datetime import date
from decimal import Decimal

import pytest

from family_finance.models.audit import AuditEventType
from family_finance.models.finance import (
    Collection,
    MemberRole,
    OperationStatus,
)
from family_finance.orchestrator import AppComponents, create_app_components
from family_finance.services.storage import (
    InMemoryIdentityProvider,
    InMemoryPersistenceClient,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    StorageError,
)
from family_finance.state import ADD_TRANSACTION_REQUESTED, AppState
from family_finance.validation import ValidationFailedError


def expense(amount, category="Food", on="2024-03-10", description="", **extra):
    data = {
        "date": on,
        "amount": str(amount),
        "type": "expense",
        "category": category,
        "description": description,
    }
    data.update(extra)
    return data


def income(amount, category="Salary", on="2024-03-01", description="", **extra):
    return {**expense(amount, category, on, description, **extra), "type": "income"}


async def event_types(audit_storage):
    return [e.event_type for e in await audit_storage.get_recent_events()]


class TestAuthentication:
    """Every flow needs a signed-in user."""

    async def test_flows_require_sign_in(self, app):
        with pytest.raises(NotAuthenticatedError):
            await app.transactions.load()
        with pytest.raises(NotAuthenticatedError):
            await app.transactions.save(expense(100))
        with pytest.raises(NotAuthenticatedError):
            await app.dashboard.load()
        with pytest.raises(NotAuthenticatedError):
            await app.family.load()

    async def test_sign_up_creates_admin_profile(self, signed_in):
        user = await signed_in.account.current_user()
        profiles = await signed_in.family.load()

        assert user.email == "ayu@example.com"
        assert len(profiles) == 1
        assert profiles[0].id == user.id
        assert profiles[0].owner_id == user.id
        assert profiles[0].role == MemberRole.ADMIN
        assert profiles[0].name == "Ayu Lestari"

    async def test_sign_up_rejects_short_password(self, app):
        with pytest.raises(ValidationFailedError):
            await app.account.sign_up("ayu@example.com", "12345")
        assert await app.account.current_user() is None

    async def test_sign_in_failure_sets_error_status(self, signed_in):
        await signed_in.account.sign_out()
        with pytest.raises(InvalidCredentialsError):
            await signed_in.account.sign_in("ayu@example.com", "wrong-password")
        assert signed_in.state.status == OperationStatus.ERROR

    async def test_change_password(self, signed_in, audit_storage):
        with pytest.raises(InvalidCredentialsError):
            await signed_in.account.change_password("not-it", "secret22", "secret22")

        result = await signed_in.account.change_password("secret1", "secret22", "secret22")
        assert result.success is True

        await signed_in.account.sign_out()
        user = await signed_in.account.sign_in("ayu@example.com", "secret22")
        assert user.email == "ayu@example.com"
        assert AuditEventType.PASSWORD_CHANGED in await event_types(audit_storage)


class TestTransactionFlow:
    """Tests for saving, editing and deleting transactions."""

    async def test_add_transaction(self, signed_in):
        result = await signed_in.transactions.save(expense(85750, description="Groceries"))

        assert result.success is True
        assert result.message == "Transaction added successfully"
        assert result.record.id is not None
        assert [t.id for t in signed_in.state.transactions] == [result.record.id]
        assert signed_in.state.status == OperationStatus.IDLE

    async def test_default_currency_applied(self, signed_in):
        result = await signed_in.transactions.save(expense(100))
        assert result.record.currency.value == "IDR"

    async def test_update_is_full_replacement(self, signed_in):
        added = await signed_in.transactions.save(expense(100, description="Lunch"))

        result = await signed_in.transactions.save(
            expense(120, category="Transport", id=added.record.id)
        )

        assert result.message == "Transaction updated successfully"
        loaded = await signed_in.transactions.load()
        assert len(loaded) == 1
        assert loaded[0].amount == Decimal("120")
        assert loaded[0].category == "Transport"
        assert loaded[0].description == ""

    async def test_load_is_newest_first(self, signed_in):
        await signed_in.transactions.save(expense(1, on="2024-03-02"))
        await signed_in.transactions.save(expense(2, on="2024-03-09"))
        await signed_in.transactions.save(expense(3, on="2024-01-30"))

        loaded = await signed_in.transactions.load()
        assert [t.date.day for t in loaded] == [9, 2, 30]

    async def test_validation_failure_writes_nothing(self, signed_in, flaky_client, audit_storage):
        with pytest.raises(ValidationFailedError) as excinfo:
            await signed_in.transactions.save(expense(0))

        assert excinfo.value.result.error_count == 1
        assert await flaky_client.list_records(Collection.TRANSACTIONS) == []
        assert signed_in.state.status == OperationStatus.ERROR
        assert AuditEventType.VALIDATION_FAILED in await event_types(audit_storage)

    async def test_storage_failure_leaves_state_unchanged(self, signed_in, flaky_client, audit_storage):
        await signed_in.transactions.save(expense(100))
        before = signed_in.state.transactions

        flaky_client.fail_on.add(("insert", Collection.TRANSACTIONS))
        with pytest.raises(StorageError):
            await signed_in.transactions.save(expense(200))

        assert signed_in.state.transactions == before
        assert signed_in.state.status == OperationStatus.ERROR
        assert "insert into transactions failed" in signed_in.state.last_error
        assert AuditEventType.SAVE_FAILED in await event_types(audit_storage)

    async def test_cannot_edit_another_users_transaction(self, signed_in):
        added = await signed_in.transactions.save(expense(100))
        await signed_in.account.sign_out()
        await signed_in.account.sign_up("budi@example.com", "secret1")

        with pytest.raises(NotFoundError):
            await signed_in.transactions.save(expense(1, id=added.record.id))
        assert await signed_in.transactions.load() == []

    async def test_delete(self, signed_in):
        added = await signed_in.transactions.save(expense(100))

        result = await signed_in.transactions.delete(added.record.id)
        assert result.success is True
        assert result.message == "Transaction deleted successfully"
        assert signed_in.state.transactions == []

        missing = await signed_in.transactions.delete(added.record.id)
        assert missing.success is False


class TestSavingsGoalSync:
    """Savings transactions move goals after the transaction is written."""

    async def test_savings_transaction_updates_goal(self, signed_in):
        await signed_in.savings.save({
            "title": "New Car",
            "target_amount": "10000000",
            "current_amount": "4500000",
        })

        result = await signed_in.transactions.save(
            expense(500000, category="Saving", description="New Car fund deposit")
        )

        assert result.notices == ["Updated savings goal: New Car"]
        goals = await signed_in.savings.load()
        assert goals[0].current_amount == Decimal("4000000")
        assert signed_in.state.savings_goals[0].current_amount == Decimal("4000000")

    async def test_goal_failure_does_not_fail_the_save(self, signed_in, flaky_client):
        await signed_in.savings.save({"title": "New Car", "target_amount": "10000000"})
        flaky_client.fail_on.add(("update", Collection.SAVINGS_GOALS))

        result = await signed_in.transactions.save(
            income(250000, category="Savings", description="New Car")
        )

        assert result.success is True
        assert result.goal_sync.has_failures is True
        assert any("Failed to update savings goal: New Car" in w for w in result.warnings)
        assert len(await signed_in.transactions.load()) == 1

    async def test_failed_refresh_keeps_error_status(self, signed_in, flaky_client):
        """Test a later successful re-read doesn't clear an earlier failure."""
        await signed_in.savings.save({"title": "New Car", "target_amount": "10000000"})
        flaky_client.fail_on.add(("list", Collection.TRANSACTIONS))

        result = await signed_in.transactions.save(
            expense(500000, category="Saving", description="New Car fund deposit")
        )

        assert result.success is True
        assert result.warnings == ["Saved, but the transactions list could not be refreshed"]
        assert signed_in.state.savings_goals[0].current_amount == Decimal("0")
        assert signed_in.state.status == OperationStatus.ERROR
        assert signed_in.state.last_error == "list transactions failed"

    async def test_other_categories_leave_goals_alone(self, signed_in):
        await signed_in.savings.save({"title": "Food", "target_amount": "100"})
        result = await signed_in.transactions.save(expense(50, description="Food"))

        assert result.goal_sync.touched_any is False
        assert (await signed_in.savings.load())[0].current_amount == Decimal("0")

    async def test_load_progress(self, signed_in):
        await signed_in.savings.save({
            "title": "Holiday",
            "target_amount": "1000",
            "current_amount": "250",
        })
        progress = await signed_in.savings.load_progress()
        assert progress[0].percentage == 25


class TestBudgetFlow:
    """Tests for categories and monthly status."""

    async def test_duplicate_category_rejected(self, signed_in):
        await signed_in.budgets.save({"name": "Food", "budget": "400000"})
        with pytest.raises(ValidationFailedError):
            await signed_in.budgets.save({"name": "Food", "budget": "1"})

    async def test_load_status_for_month(self, signed_in):
        await signed_in.budgets.save({"name": "Food", "budget": "400000"})
        await signed_in.transactions.save(expense(300000, on="2024-03-02"))
        await signed_in.transactions.save(expense(150000, on="2024-03-20"))
        await signed_in.transactions.save(expense(999999, on="2024-02-20"))

        statuses = await signed_in.budgets.load_status(date(2024, 3, 1))

        assert [c.name for c in signed_in.state.budget_categories] == ["Food"]

        assert statuses[0].spent == Decimal("450000")
        assert statuses[0].is_over_budget is True
        assert statuses[0].percentage == 100
        assert statuses[0].overage == Decimal("50000")


class TestFamilyFlow:
    """Tests for family member profiles."""

    async def test_add_member(self, signed_in, audit_storage):
        result = await signed_in.family.add_member({
            "name": "Budi Santoso",
            "email": "budi@example.com",
            "password": "secret1",
            "role": "Viewer",
        })
        owner = await signed_in.account.current_user()

        assert result.success is True
        assert result.record.owner_id == owner.id
        assert result.record.role == MemberRole.VIEWER
        assert len(await signed_in.family.load()) == 2
        assert len(signed_in.state.profiles) == 2
        # Adding a member doesn't switch the session
        assert (await signed_in.account.current_user()).id == owner.id
        assert AuditEventType.MEMBER_ADDED in await event_types(audit_storage)

    async def test_add_member_needs_email(self, signed_in):
        with pytest.raises(ValidationFailedError):
            await signed_in.family.add_member({"name": "Budi", "password": "secret1"})

    async def test_other_households_are_hidden(self, signed_in):
        await signed_in.family.add_member({
            "name": "Budi Santoso",
            "email": "budi@example.com",
            "password": "secret1",
        })
        await signed_in.account.sign_out()
        await signed_in.account.sign_up("citra@example.com", "secret1", name="Citra")

        profiles = await signed_in.family.load()
        assert [p.name for p in profiles] == ["Citra"]

    async def test_member_login_sees_no_family_list(self, signed_in):
        """Test the family list belongs to the household holder only."""
        added = await signed_in.family.add_member({
            "name": "Budi Santoso",
            "email": "budi@example.com",
            "password": "secret1",
        })
        await signed_in.account.sign_out()
        member = await signed_in.account.sign_in("budi@example.com", "secret1")

        assert member.id == added.record.id
        assert added.record.owner_id != member.id
        assert await signed_in.family.load() == []

    async def test_update_member(self, signed_in):
        added = await signed_in.family.add_member({
            "name": "Budi",
            "email": "budi@example.com",
            "password": "secret1",
        })
        result = await signed_in.family.update_member(added.record.id, {"role": "Admin"})

        assert result.record.role == MemberRole.ADMIN
        assert result.record.name == "Budi"

    async def test_cannot_remove_self(self, signed_in):
        user = await signed_in.account.current_user()
        result = await signed_in.family.remove_member(user.id)
        assert result.success is False

    async def test_remove_member(self, signed_in):
        added = await signed_in.family.add_member({
            "name": "Budi",
            "email": "budi@example.com",
            "password": "secret1",
        })
        result = await signed_in.family.remove_member(added.record.id)
        assert result.success is True
        assert len(await signed_in.family.load()) == 1


class TestDashboardFlow:
    """Tests for the dashboard load."""

    async def test_dashboard(self, signed_in):
        await signed_in.budgets.save({"name": "Food", "budget": "400000"})
        await signed_in.transactions.save(income(1000000))
        await signed_in.transactions.save(expense(85750, on="2024-03-05"))

        dashboard = await signed_in.dashboard.load(date(2024, 3, 1))

        assert dashboard.summary.total_balance == Decimal("914250")
        assert dashboard.savings_rate == 91.4
        assert dashboard.budget_status[0].percentage == 21
        assert signed_in.state.dashboard is dashboard
        assert len(signed_in.state.transactions) == 2


class TestAppState:
    """Tests for the application-state store."""

    def test_request_add_transaction_notifies_subscribers(self):
        state = AppState()
        received = []
        unsubscribe = state.subscribe(lambda event, s: received.append(event))

        state.request_add_transaction()
        unsubscribe()
        state.request_add_transaction()

        assert received == [ADD_TRANSACTION_REQUESTED]

    def test_listeners_see_pending_then_idle(self):
        state = AppState()
        seen = []
        state.subscribe(lambda event, s: seen.append(s.is_pending))

        state.begin_operation()
        state.finish_operation()

        assert seen == [True, False]

    def test_clear_resets_everything(self):
        state = AppState()
        state.fail_operation("boom")
        state.clear()
        assert state.status == OperationStatus.IDLE
        assert state.last_error is None

    def test_create_app_components_memory(self):
        components = create_app_components("memory")
        assert isinstance(components, AppComponents)
        assert isinstance(components.client, InMemoryPersistenceClient)
        assert isinstance(components.identity, InMemoryIdentityProvider)

    def test_create_app_components_unknown_backend(self):
        with pytest.raises(ValueError):
            create_app_components("postgres")
