"""
Savings-Goal Matcher

Keeps savings goal progress in step with savings transactions.

A transaction feeds goals when its category mentions "saving" (any case,
so "Savings" and "saving-car" both count). It then updates:
- the goal named by its goal_id, if it carries one, or else
- every goal whose title appears inside its description (any case).

Income adds to the goal; expense withdraws from it, never below zero.

NOTE: description matching can hit several goals at once ("Car and
House fund" feeds both "Car" and "House"). That fan-out is kept on
purpose; set goal_id on the transaction to target one goal.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import structlog

from family_finance.models.finance import (
    Collection,
    GoalSyncFailure,
    GoalSyncResult,
    SavingsGoal,
    Transaction,
)
from family_finance.services.repository import load_records
from family_finance.services.storage.interface import PersistenceClient, StorageError


logger = structlog.get_logger(__name__)

DEFAULT_SAVINGS_KEYWORD = "saving"


def is_savings_transaction(
    transaction: Transaction,
    keyword: str = DEFAULT_SAVINGS_KEYWORD,
) -> bool:
    """True when the category mentions the savings keyword, any case."""
    return keyword.lower() in transaction.category.lower()


def match_goals(
    transaction: Transaction,
    goals: Sequence[SavingsGoal],
) -> list[SavingsGoal]:
    """Goals the transaction should move, in input order."""
    if transaction.goal_id:
        return [goal for goal in goals if goal.id == transaction.goal_id]

    description = transaction.description.lower()
    return [
        goal for goal in goals
        if goal.title and goal.title.lower() in description
    ]


def apply_transaction_to_goals(
    transaction: Transaction,
    goals: Sequence[SavingsGoal],
    keyword: str = DEFAULT_SAVINGS_KEYWORD,
) -> list[SavingsGoal]:
    """
    Return updated copies of the goals this transaction moves.

    Pure: the input goals are not modified. Returns an empty list when the
    transaction is not a savings transaction or matches no goal.
    """
    if not is_savings_transaction(transaction, keyword):
        return []

    updated = []
    for goal in match_goals(transaction, goals):
        if transaction.is_income:
            new_amount = goal.current_amount + transaction.amount
        else:
            new_amount = max(Decimal("0"), goal.current_amount - transaction.amount)
        updated.append(goal.model_copy(update={"current_amount": new_amount}))
    return updated


class SavingsGoalSynchronizer:
    """
    Persists goal updates produced by a savings transaction.

    Each goal is written on its own. A failed write is recorded and the
    remaining goals are still attempted; earlier writes are never undone.
    """

    def __init__(
        self,
        client: PersistenceClient,
        audit_logger=None,
        keyword: str = DEFAULT_SAVINGS_KEYWORD,
    ):
        self._client = client
        self._audit_logger = audit_logger
        self._keyword = keyword

    async def sync(
        self,
        transaction: Transaction,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> GoalSyncResult:
        """Apply one transaction to the user's goals and write the changes."""
        result = GoalSyncResult()
        if not is_savings_transaction(transaction, self._keyword):
            return result

        try:
            goals = await load_records(
                self._client,
                Collection.SAVINGS_GOALS,
                SavingsGoal,
                filters={"user_id": user_id},
            )
        except StorageError as e:
            logger.error("goal_load_failed", user_id=user_id, error=str(e))
            result.failed.append(GoalSyncFailure(title="savings goals", error_message=str(e)))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="goal_load_failed",
                    error_message=str(e),
                    details={"user_id": user_id},
                    correlation_id=correlation_id,
                )
            return result

        previous = {goal.id: goal.current_amount for goal in goals}

        for goal in apply_transaction_to_goals(transaction, goals, self._keyword):
            goal = goal.model_copy(update={"updated_at": datetime.utcnow()})
            patch = goal.model_dump(mode="json", include={"current_amount", "updated_at"})
            try:
                await self._client.update_record(Collection.SAVINGS_GOALS, goal.id, patch)
            except StorageError as e:
                logger.warning("goal_sync_failed", goal_id=goal.id, error=str(e))
                result.failed.append(
                    GoalSyncFailure(goal_id=goal.id, title=goal.title, error_message=str(e))
                )
                if self._audit_logger:
                    await self._audit_logger.log_goal_sync_failed(
                        goal_id=goal.id,
                        title=goal.title,
                        error_message=str(e),
                        user_id=user_id,
                        correlation_id=correlation_id,
                    )
                continue

            result.updated.append(goal)
            if self._audit_logger:
                await self._audit_logger.log_goal_synced(
                    goal_id=goal.id,
                    title=goal.title,
                    previous_amount=str(previous.get(goal.id)),
                    new_amount=str(goal.current_amount),
                    user_id=user_id,
                    correlation_id=correlation_id,
                )

        return result
