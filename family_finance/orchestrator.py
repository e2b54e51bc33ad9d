"""
Main Orchestrator for Family Finance

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (validate → write → savings goal sync → re-fetch)
2. Budget categories and their monthly status
3. Savings goals and their progress
4. Family member profiles
5. Account and session
6. The dashboard (fetch → aggregate)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written without passing schema validation
- Nothing is read or written without a signed-in user
- Cached state changes only after the write is confirmed
- Every write is audited

A savings goal that fails to update never fails the transaction that
triggered it. The failure is reported in the result and audited.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel

from family_finance.aggregation import (
    build_dashboard,
    compute_budget_status,
    compute_category_breakdown,
    compute_goal_progress,
)
from family_finance.audit import AuditLogger, create_correlation_id
from family_finance.config import AppSettings, get_settings
from family_finance.models.audit import AuditEventType
from family_finance.models.finance import (
    BudgetCategory,
    BudgetStatus,
    Collection,
    DashboardState,
    GoalProgress,
    MemberRole,
    MemberStatus,
    MutationResult,
    Profile,
    Record,
    SavingsGoal,
    Transaction,
    UserIdentity,
    ValidationResult,
)
from family_finance.savings import SavingsGoalSynchronizer
from family_finance.services.repository import load_records
from family_finance.services.storage import (
    AuthError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsIdentityProvider,
    GoogleSheetsPersistenceClient,
    IdentityProvider,
    InMemoryAuditStorage,
    InMemoryIdentityProvider,
    InMemoryPersistenceClient,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    PersistenceClient,
    StorageError,
)
from family_finance.state import AppState
from family_finance.validation import (
    BudgetCategoryValidator,
    ProfileValidator,
    SavingsGoalValidator,
    TransactionValidator,
    ValidationFailedError,
    validate_new_password,
    validate_password_change,
)


logger = structlog.get_logger(__name__)

FormData = Union[dict[str, Any], BaseModel]

# Profiles belong to the household account; everything else to the user
OWNER_FIELD = {
    Collection.TRANSACTIONS: "user_id",
    Collection.BUDGET_CATEGORIES: "user_id",
    Collection.SAVINGS_GOALS: "user_id",
    Collection.PROFILES: "owner_id",
}

ORDERING = {
    Collection.TRANSACTIONS: ("date", True),
    Collection.BUDGET_CATEGORIES: ("name", False),
    Collection.SAVINGS_GOALS: ("title", False),
    Collection.PROFILES: ("name", False),
}

MODELS = {
    Collection.TRANSACTIONS: Transaction,
    Collection.BUDGET_CATEGORIES: BudgetCategory,
    Collection.SAVINGS_GOALS: SavingsGoal,
    Collection.PROFILES: Profile,
}

ENTITY_TYPES = {
    Collection.TRANSACTIONS: "transaction",
    Collection.BUDGET_CATEGORIES: "budget_category",
    Collection.SAVINGS_GOALS: "savings_goal",
    Collection.PROFILES: "profile",
}

PROFILE_FIELDS = ("name", "email", "role", "status", "avatar_url")


def _as_form(data: FormData) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    return dict(data)


class BaseFlow:
    """Session, caching and audit plumbing shared by every flow."""

    collection: Optional[Collection] = None

    def __init__(
        self,
        client: PersistenceClient,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        state: Optional[AppState] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._client = client
        self._identity = identity
        self._audit_logger = audit_logger
        self._state = state
        self._settings = settings or get_settings().app

    async def _require_user(self) -> UserIdentity:
        user = await self._identity.current_user()
        if user is None:
            raise NotAuthenticatedError("Sign in to continue")
        return user

    async def _fetch(self, user: UserIdentity, collection: Optional[Collection] = None) -> list:
        collection = collection or self.collection
        order_by, descending = ORDERING[collection]
        return await load_records(
            self._client,
            collection,
            MODELS[collection],
            filters={OWNER_FIELD[collection]: user.id},
            order_by=order_by,
            descending=descending,
        )

    async def _get_owned(
        self,
        user: UserIdentity,
        record_id: str,
        collection: Optional[Collection] = None,
    ) -> Optional[dict[str, Any]]:
        collection = collection or self.collection
        matches = await self._client.list_records(
            collection,
            filters={"id": record_id, OWNER_FIELD[collection]: user.id},
        )
        return matches[0] if matches else None

    @asynccontextmanager
    async def _operation(
        self,
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
        entity_type: Optional[str] = None,
    ):
        """Mark the store pending; on failure mark it errored and re-raise."""
        if self._state:
            self._state.begin_operation()
        try:
            yield
        except (StorageError, AuthError, ValidationFailedError) as e:
            if self._state:
                self._state.fail_operation(str(e))
            if self._audit_logger and entity_type and isinstance(e, StorageError):
                await self._audit_logger.log_save_failed(
                    entity_type=entity_type,
                    error_message=str(e),
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
            raise

    async def _reject(
        self,
        result: ValidationResult,
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Audit a failed validation and raise. Nothing is written."""
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
                if i.severity == "error"
            ]
            await self._audit_logger.log_validation_failed(
                subject=result.subject,
                issues=issues,
                user_id=user_id,
                correlation_id=correlation_id,
            )
        raise ValidationFailedError(result)

    async def _write(
        self,
        user: UserIdentity,
        record: Record,
        is_update: bool,
        correlation_id: Optional[UUID] = None,
    ) -> Record:
        """Insert, or fully replace an owned record. Returns the stored record."""
        collection = self.collection

        if is_update:
            if await self._get_owned(user, record.id, collection) is None:
                raise NotFoundError(f"{ENTITY_TYPES[collection]} not found: {record.id}")
            await self._client.update_record(
                collection,
                record.id,
                record.to_record(exclude_id=True),
            )
            saved = record
        else:
            stored = await self._client.insert_record(collection, record.to_record())
            saved = type(record).from_record(stored)

        if self._audit_logger:
            await self._audit_logger.log_record_saved(
                entity_type=ENTITY_TYPES[collection],
                entity_id=saved.id,
                user_id=user.id,
                is_update=is_update,
                correlation_id=correlation_id,
            )
        return saved

    async def _refresh(self, user: UserIdentity, *collections: Collection) -> list[str]:
        """
        Re-read collections into the store after a confirmed write.

        A failed re-read can't undo the write, so it becomes a warning and
        leaves the store in ERROR, even when a later collection re-reads fine.
        """
        if not self._state:
            return []

        warnings = []
        errors = []
        for collection in collections or (self.collection,):
            try:
                self._state.replace(collection, await self._fetch(user, collection))
            except StorageError as e:
                logger.warning("refresh_failed", collection=collection.value, error=str(e))
                errors.append(str(e))
                warnings.append(f"Saved, but the {collection.value.replace('_', ' ')} list could not be refreshed")
        if errors:
            self._state.fail_operation("; ".join(errors))
        return warnings


class RecordFlow(BaseFlow):
    """Load and delete for a single owned collection."""

    label = "Record"

    async def load(self) -> list:
        """Fetch the signed-in user's records and cache them."""
        user = await self._require_user()
        async with self._operation(user.id):
            records = await self._fetch(user)
        if self._state:
            self._state.replace(self.collection, records)
        return records

    async def delete(
        self,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """Delete one owned record by id."""
        user = await self._require_user()
        correlation_id = correlation_id or create_correlation_id()
        entity_type = ENTITY_TYPES[self.collection]

        async with self._operation(user.id, correlation_id, entity_type):
            deleted = False
            if await self._get_owned(user, record_id) is not None:
                deleted = await self._client.delete_record(self.collection, record_id)

        if not deleted:
            if self._state:
                self._state.fail_operation(f"{self.label} not found")
            return MutationResult(success=False, message=f"{self.label} not found")

        if self._audit_logger:
            await self._audit_logger.log_record_deleted(
                entity_type=entity_type,
                entity_id=record_id,
                user_id=user.id,
                correlation_id=correlation_id,
            )

        return MutationResult(
            success=True,
            message=f"{self.label} deleted successfully",
            warnings=await self._refresh(user),
        )


class TransactionFlow(RecordFlow):
    """
    Orchestrates transaction saves.

    Flow:
    1. Validate → two-stage, against the user's budget categories
    2. Write → insert without id, full replacement with id
    3. Sync → savings transactions update matching goals
    4. Re-fetch → transactions (and goals, if any were touched)

    The transaction write always happens before any goal update.
    """

    collection = Collection.TRANSACTIONS
    label = "Transaction"

    def __init__(
        self,
        client: PersistenceClient,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        state: Optional[AppState] = None,
        settings: Optional[AppSettings] = None,
        validator: Optional[TransactionValidator] = None,
        synchronizer: Optional[SavingsGoalSynchronizer] = None,
    ):
        super().__init__(client, identity, audit_logger, state, settings)
        self._validator = validator or TransactionValidator(self._settings)
        self._synchronizer = synchronizer or SavingsGoalSynchronizer(
            client,
            audit_logger=audit_logger,
            keyword=self._settings.savings_category_keyword,
        )

    async def save(
        self,
        data: FormData,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Validate and store a transaction, then feed savings goals.

        Raises:
            ValidationFailedError: The form has errors; nothing was written
            StorageError: The transaction write failed; no goal was touched
        """
        user = await self._require_user()
        correlation_id = correlation_id or create_correlation_id()
        form = _as_form(data)
        if not form.get("currency"):
            form["currency"] = self._settings.default_currency

        async with self._operation(user.id, correlation_id, "transaction"):
            categories = await self._fetch(user, Collection.BUDGET_CATEGORIES)
            result = self._validator.validate(form, categories)
            if not result.is_valid:
                await self._reject(result, user.id, correlation_id)

            transaction = Transaction.model_validate({**form, "user_id": user.id})
            is_update = transaction.id is not None
            saved = await self._write(user, transaction, is_update, correlation_id)

        goal_sync = await self._synchronizer.sync(saved, user.id, correlation_id)

        warnings = list(result.warnings)
        warnings.extend(
            f"Failed to update savings goal: {failure.title} ({failure.error_message})"
            for failure in goal_sync.failed
        )

        refreshed = [Collection.TRANSACTIONS]
        if goal_sync.touched_any:
            refreshed.append(Collection.SAVINGS_GOALS)
        warnings.extend(await self._refresh(user, *refreshed))

        return MutationResult(
            success=True,
            message="Transaction updated successfully" if is_update else "Transaction added successfully",
            record=saved,
            notices=[f"Updated savings goal: {goal.title}" for goal in goal_sync.updated],
            warnings=warnings,
            goal_sync=goal_sync,
        )


class BudgetFlow(RecordFlow):
    """Budget categories and how this month's spending compares."""

    collection = Collection.BUDGET_CATEGORIES
    label = "Category"

    def __init__(
        self,
        client: PersistenceClient,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        state: Optional[AppState] = None,
        settings: Optional[AppSettings] = None,
        validator: Optional[BudgetCategoryValidator] = None,
    ):
        super().__init__(client, identity, audit_logger, state, settings)
        self._validator = validator or BudgetCategoryValidator()

    async def save(
        self,
        data: FormData,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """Create or replace a category. Names must be unique per user."""
        user = await self._require_user()
        correlation_id = correlation_id or create_correlation_id()
        form = _as_form(data)

        async with self._operation(user.id, correlation_id, "budget_category"):
            existing = await self._fetch(user)
            result = self._validator.validate(form, existing)
            if not result.is_valid:
                await self._reject(result, user.id, correlation_id)

            category = BudgetCategory.model_validate({**form, "user_id": user.id})
            is_update = category.id is not None
            saved = await self._write(user, category, is_update, correlation_id)

        return MutationResult(
            success=True,
            message="Category updated successfully" if is_update else "Category added successfully",
            record=saved,
            warnings=result.warnings + await self._refresh(user),
        )

    async def load_status(self, reference_month: Optional[date] = None) -> list[BudgetStatus]:
        """Budget against spending for the month containing reference_month (default today)."""
        user = await self._require_user()
        month = (reference_month or date.today()).replace(day=1)

        async with self._operation(user.id):
            categories = await self._fetch(user)
            transactions = await self._fetch(user, Collection.TRANSACTIONS)

        if self._state:
            self._state.replace(Collection.BUDGET_CATEGORIES, categories)

        breakdown = compute_category_breakdown(transactions, categories, reference_month=month)
        return compute_budget_status(categories, breakdown)


class SavingsFlow(RecordFlow):
    """Savings goals and their progress."""

    collection = Collection.SAVINGS_GOALS
    label = "Savings goal"

    def __init__(
        self,
        client: PersistenceClient,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        state: Optional[AppState] = None,
        settings: Optional[AppSettings] = None,
        validator: Optional[SavingsGoalValidator] = None,
    ):
        super().__init__(client, identity, audit_logger, state, settings)
        self._validator = validator or SavingsGoalValidator()

    async def save(
        self,
        data: FormData,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        user = await self._require_user()
        correlation_id = correlation_id or create_correlation_id()
        form = _as_form(data)

        async with self._operation(user.id, correlation_id, "savings_goal"):
            result = self._validator.validate(form)
            if not result.is_valid:
                await self._reject(result, user.id, correlation_id)

            goal = SavingsGoal.model_validate({
                **form,
                "user_id": user.id,
                "updated_at": datetime.utcnow(),
            })
            is_update = goal.id is not None
            saved = await self._write(user, goal, is_update, correlation_id)

        return MutationResult(
            success=True,
            message="Savings goal updated successfully" if is_update else "Savings goal added successfully",
            record=saved,
            warnings=result.warnings + await self._refresh(user),
        )

    async def load_progress(self) -> list[GoalProgress]:
        return [compute_goal_progress(goal) for goal in await self.load()]


class FamilyFlow(RecordFlow):
    """
    Family member profiles of the signed-in household.

    Adding a member creates a login for them; the profile is owned by
    the household account that added it.
    """

    collection = Collection.PROFILES
    label = "Family member"

    def __init__(
        self,
        client: PersistenceClient,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        state: Optional[AppState] = None,
        settings: Optional[AppSettings] = None,
        validator: Optional[ProfileValidator] = None,
    ):
        super().__init__(client, identity, audit_logger, state, settings)
        self._validator = validator or ProfileValidator()

    async def add_member(
        self,
        data: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Create a login and a profile for a new family member.

        data needs name, email and password; role defaults to Member.
        """
        user = await self._require_user()
        correlation_id = correlation_id or create_correlation_id()

        async with self._operation(user.id, correlation_id, "profile"):
            result = self._validator.validate(data, require_email=True)
            if not result.is_valid:
                await self._reject(result, user.id, correlation_id)
            password_result = validate_new_password(
                data.get("password") or "",
                data.get("confirm_password"),
                self._settings.min_password_length,
            )
            if not password_result.is_valid:
                await self._reject(password_result, user.id, correlation_id)

            member = await self._identity.sign_up(data["email"], data["password"])
            profile = Profile(
                id=member.id,
                owner_id=user.id,
                name=data["name"],
                email=member.email,
                role=data.get("role") or MemberRole.MEMBER,
                status=MemberStatus.OFFLINE,
                avatar_url=data.get("avatar_url"),
            )
            saved = await self._write(user, profile, False, correlation_id)

        return MutationResult(
            success=True,
            message="Family member added successfully",
            record=saved,
            warnings=await self._refresh(user),
        )

    async def update_member(
        self,
        profile_id: str,
        data: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """Change a member's name, email, role, status or avatar."""
        user = await self._require_user()
        correlation_id = correlation_id or create_correlation_id()

        async with self._operation(user.id, correlation_id, "profile"):
            existing = await self._get_owned(user, profile_id)
            if existing is None:
                raise NotFoundError(f"Family member not found: {profile_id}")

            merged = {**existing, **{k: v for k, v in data.items() if k in PROFILE_FIELDS}}
            result = self._validator.validate(merged)
            if not result.is_valid:
                await self._reject(result, user.id, correlation_id)

            profile = Profile.model_validate({**merged, "id": profile_id, "owner_id": user.id})
            saved = await self._write(user, profile, True, correlation_id)

        return MutationResult(
            success=True,
            message="Family member updated successfully",
            record=saved,
            warnings=await self._refresh(user),
        )

    async def remove_member(
        self,
        profile_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """Remove a member's profile. Their login is left in place."""
        user = await self._require_user()
        if profile_id == user.id:
            return MutationResult(success=False, message="You cannot remove your own profile")
        return await self.delete(profile_id, correlation_id)


class AccountFlow(BaseFlow):
    """Sign-up, sign-in, sign-out and password changes."""

    collection = Collection.PROFILES

    async def current_user(self) -> Optional[UserIdentity]:
        return await self._identity.current_user()

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        """
        Start a session.

        Raises:
            InvalidCredentialsError: Wrong email or password
        """
        async with self._operation(None):
            user = await self._identity.sign_in(email, password)

        if self._state:
            self._state.clear()
        if self._audit_logger:
            await self._audit_logger.log_account_event(
                AuditEventType.USER_SIGNED_IN, user.id, user.email,
            )
        return user

    async def sign_up(
        self,
        email: str,
        password: str,
        confirm_password: Optional[str] = None,
        name: Optional[str] = None,
    ) -> UserIdentity:
        """
        Create an account, sign in, and create the holder's own profile.

        The holder's profile is an Admin of its own household.
        """
        name = name or email.split("@")[0]

        async with self._operation(None):
            result = ProfileValidator().validate({"name": name, "email": email}, require_email=True)
            if not result.is_valid:
                await self._reject(result, None)
            password_result = validate_new_password(
                password, confirm_password, self._settings.min_password_length,
            )
            if not password_result.is_valid:
                await self._reject(password_result, None)

            await self._identity.sign_up(email, password)
            user = await self._identity.sign_in(email, password)

            profile = Profile(
                id=user.id,
                owner_id=user.id,
                name=name,
                email=user.email,
                role=MemberRole.ADMIN,
                status=MemberStatus.ONLINE,
            )
            await self._write(user, profile, False)

        if self._state:
            self._state.clear()
        if self._audit_logger:
            await self._audit_logger.log_account_event(
                AuditEventType.USER_SIGNED_UP, user.id, user.email,
            )
        return user

    async def sign_out(self) -> None:
        user = await self._identity.current_user()
        await self._identity.sign_out()
        if self._state:
            self._state.clear()
        if self._audit_logger and user:
            await self._audit_logger.log_account_event(
                AuditEventType.USER_SIGNED_OUT, user.id, user.email,
            )

    async def change_password(
        self,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> MutationResult:
        """
        Replace the signed-in user's password.

        Raises:
            ValidationFailedError: The new password is unacceptable
            InvalidCredentialsError: The current password is wrong
        """
        user = await self._require_user()

        async with self._operation(user.id):
            result = validate_password_change(
                current_password,
                new_password,
                confirm_password,
                self._settings.min_password_length,
            )
            if not result.is_valid:
                await self._reject(result, user.id)

            if not await self._identity.verify_password(user.email, current_password):
                raise InvalidCredentialsError("Current password is incorrect")

            await self._identity.update_password(new_password)

        if self._state:
            self._state.finish_operation()
        if self._audit_logger:
            await self._audit_logger.log_account_event(
                AuditEventType.PASSWORD_CHANGED, user.id, user.email,
            )
        return MutationResult(success=True, message="Password updated successfully")


class DashboardFlow(BaseFlow):
    """
    Orchestrates the dashboard.

    Flow:
    1. Fetch → transactions, budget categories, savings goals
    2. Aggregate → one deterministic pass
    3. Cache → the store gets the collections and the result
    """

    async def load(self, reference_month: Optional[date] = None) -> DashboardState:
        user = await self._require_user()

        async with self._operation(user.id):
            transactions = await self._fetch(user, Collection.TRANSACTIONS)
            categories = await self._fetch(user, Collection.BUDGET_CATEGORIES)
            goals = await self._fetch(user, Collection.SAVINGS_GOALS)

        dashboard = build_dashboard(
            transactions,
            categories,
            goals,
            reference_month=reference_month,
            recent_count=self._settings.recent_transactions_count,
        )

        if self._state:
            self._state.replace(Collection.TRANSACTIONS, transactions)
            self._state.replace(Collection.BUDGET_CATEGORIES, categories)
            self._state.replace(Collection.SAVINGS_GOALS, goals)
            self._state.set_dashboard(dashboard)

        return dashboard


class AppComponents:
    """Every flow of one session, sharing a client, identity and store."""

    def __init__(
        self,
        client: PersistenceClient,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        state: Optional[AppState] = None,
        settings: Optional[AppSettings] = None,
    ):
        self.client = client
        self.identity = identity
        self.audit_logger = audit_logger
        self.state = state or AppState()

        shared = dict(
            client=client,
            identity=identity,
            audit_logger=audit_logger,
            state=self.state,
            settings=settings,
        )
        self.transactions = TransactionFlow(**shared)
        self.budgets = BudgetFlow(**shared)
        self.savings = SavingsFlow(**shared)
        self.family = FamilyFlow(**shared)
        self.account = AccountFlow(**shared)
        self.dashboard = DashboardFlow(**shared)


def create_app_components(
    backend: Optional[str] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "google_sheets". Defaults to the
                 STORAGE_BACKEND setting.

    Returns:
        AppComponents wired to the chosen backend
    """
    settings = get_settings().app
    backend = backend or settings.storage_backend

    if settings.debug_mode:
        logging.basicConfig(level=logging.DEBUG)

    if backend == "google_sheets":
        sheets_client = GoogleSheetsClient()
        client = GoogleSheetsPersistenceClient(sheets_client)
        identity = GoogleSheetsIdentityProvider(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)
    elif backend == "memory":
        client = InMemoryPersistenceClient()
        identity = InMemoryIdentityProvider()
        audit_storage = InMemoryAuditStorage()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    logger.info(
        "app_components_created",
        backend=backend,
        environment=settings.app_environment,
    )

    return AppComponents(
        client=client,
        identity=identity,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
    )
