"""
Audit Models for Family Finance

Every mutation of household data is logged for audit purposes.
This provides:
1. Traceability of who changed which record
2. Debugging information when a multi-step action half-succeeds
3. A visible history for the household

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each collection gets saved/deleted events; account actions and
    goal synchronisation have their own.
    """
    # Transactions
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Budget categories
    CATEGORY_SAVED = "category_saved"
    CATEGORY_DELETED = "category_deleted"

    # Savings goals
    GOAL_SAVED = "goal_saved"
    GOAL_DELETED = "goal_deleted"
    GOAL_SYNCED = "goal_synced"
    GOAL_SYNC_FAILED = "goal_sync_failed"

    # Family
    MEMBER_ADDED = "member_added"
    MEMBER_UPDATED = "member_updated"
    MEMBER_REMOVED = "member_removed"

    # Account
    USER_SIGNED_UP = "user_signed_up"
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"
    PASSWORD_CHANGED = "password_changed"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    SAVE_FAILED = "save_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who did it
    user_id: Optional[str] = Field(
        default=None,
        description="Identity that triggered the event"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'savings_goal')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Storage id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a transaction save and its goal syncs)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_saved("transaction", tx_id, user_id, ...)
        event = AuditEventBuilder.goal_sync_failed(goal_id, title, error, ...)
    """

    _SAVED = {
        "transaction": AuditEventType.TRANSACTION_SAVED,
        "budget_category": AuditEventType.CATEGORY_SAVED,
        "savings_goal": AuditEventType.GOAL_SAVED,
        "profile": AuditEventType.MEMBER_ADDED,
    }
    _UPDATED = {
        "transaction": AuditEventType.TRANSACTION_UPDATED,
        "budget_category": AuditEventType.CATEGORY_SAVED,
        "savings_goal": AuditEventType.GOAL_SAVED,
        "profile": AuditEventType.MEMBER_UPDATED,
    }
    _DELETED = {
        "transaction": AuditEventType.TRANSACTION_DELETED,
        "budget_category": AuditEventType.CATEGORY_DELETED,
        "savings_goal": AuditEventType.GOAL_DELETED,
        "profile": AuditEventType.MEMBER_REMOVED,
    }

    @staticmethod
    def record_saved(
        entity_type: str,
        entity_id: Optional[str],
        user_id: str,
        is_update: bool,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        table = AuditEventBuilder._UPDATED if is_update else AuditEventBuilder._SAVED
        verb = "updated" if is_update else "created"
        return AuditEvent(
            event_type=table[entity_type],
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.replace('_', ' ').capitalize()} {verb}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        entity_type: str,
        entity_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventBuilder._DELETED[entity_type],
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.replace('_', ' ').capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def goal_synced(
        goal_id: Optional[str],
        title: str,
        previous_amount: str,
        new_amount: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_SYNCED,
            user_id=user_id,
            entity_type="savings_goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Updated savings goal: {title}",
            details={
                "previous_amount": previous_amount,
                "new_amount": new_amount,
            },
        )

    @staticmethod
    def goal_sync_failed(
        goal_id: Optional[str],
        title: str,
        error_message: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_SYNC_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="savings_goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Failed to update savings goal: {title}",
            error_message=error_message,
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=subject,
            correlation_id=correlation_id,
            description=f"{subject.replace('_', ' ').capitalize()} rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def account_event(
        event_type: AuditEventType,
        user_id: Optional[str],
        email: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="account",
            entity_id=user_id,
            description=event_type.value.replace("_", " ").capitalize(),
            details={"email": email} if email else {},
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        entity_type: str,
        error_message: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Failed to save {entity_type.replace('_', ' ')}",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
