"""
Audit Logger

DESIGN DECISION: Every change to household data is logged.
This provides:
1. Traceability of who changed what
2. A way to see which half of a multi-step save went through
3. A history the household can review

The audit logger:
- Is async so flows can await it inline
- Never raises because audit storage failed
- Supports correlation IDs so a transaction save and its goal syncs
  can be read back together
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from family_finance.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from family_finance.services.storage import AuditStorageInterface, StorageError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except StorageError as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_record_saved(
        self,
        entity_type: str,
        entity_id: Optional[str],
        user_id: str,
        is_update: bool = False,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a created or replaced record."""
        event = AuditEventBuilder.record_saved(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            is_update=is_update,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_record_deleted(
        self,
        entity_type: str,
        entity_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a deleted record."""
        event = AuditEventBuilder.record_deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_goal_synced(
        self,
        goal_id: Optional[str],
        title: str,
        previous_amount: str,
        new_amount: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an automatic savings goal update."""
        event = AuditEventBuilder.goal_synced(
            goal_id=goal_id,
            title=title,
            previous_amount=previous_amount,
            new_amount=new_amount,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_goal_sync_failed(
        self,
        goal_id: Optional[str],
        title: str,
        error_message: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a savings goal that could not be updated."""
        event = AuditEventBuilder.goal_sync_failed(
            goal_id=goal_id,
            title=title,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            subject=subject,
            issues=issues,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_event(
        self,
        event_type: AuditEventType,
        user_id: Optional[str],
        email: Optional[str] = None,
    ) -> None:
        """Log sign-up, sign-in, sign-out or password change."""
        event = AuditEventBuilder.account_event(
            event_type=event_type,
            user_id=user_id,
            email=email,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        entity_type: str,
        error_message: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a write the persistence client rejected."""
        event = AuditEventBuilder.save_failed(
            entity_type=entity_type,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
