"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing
3. Keep aggregation and flows decoupled from the backend

The interface is intentionally simple - we're not building a full ORM.
Records cross it as plain dicts; the models package validates them.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from family_finance.models.audit import AuditEvent
from family_finance.models.finance import Collection, UserIdentity


class PersistenceClient(ABC):
    """
    Abstract interface for record CRUD over named collections.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """
        List records of a collection.

        Args:
            collection: Which collection to read
            filters: Field equality filters, all must match
            order_by: Field to sort by
            descending: Sort newest/largest first

        Returns:
            List of matching records

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def insert_record(
        self,
        collection: Collection,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Insert a new record.

        Args:
            collection: Target collection
            record: Record to store; an id is assigned when it has none

        Returns:
            The stored record, including its assigned id

        Raises:
            DuplicateError: If a record with the given id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> bool:
        """
        Overwrite the given fields of an existing record.

        Returns:
            True if updated successfully

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_record(
        self,
        collection: Collection,
        record_id: str,
    ) -> bool:
        """
        Delete a record by id.

        Returns:
            True if deleted, False if no such record
        """
        pass


class IdentityProvider(ABC):
    """
    Abstract interface for session-based identity.

    One provider instance holds at most one signed-in session.
    """

    @abstractmethod
    async def current_user(self) -> Optional[UserIdentity]:
        """Return the signed-in identity, or None."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> UserIdentity:
        """
        Start a session.

        Raises:
            InvalidCredentialsError: If email or password is wrong
        """
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> UserIdentity:
        """
        Create an identity. Does not change the current session.

        Raises:
            AccountExistsError: If the email is already registered
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session, if any."""
        pass

    @abstractmethod
    async def update_password(self, new_password: str) -> bool:
        """
        Replace the signed-in identity's password.

        Raises:
            NotAuthenticatedError: If nobody is signed in
        """
        pass

    @abstractmethod
    async def verify_password(self, email: str, password: str) -> bool:
        """Check a password without touching the session."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one transaction save).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class AuthError(Exception):
    """Base exception for identity operations."""
    pass


class NotAuthenticatedError(AuthError):
    """The operation needs a signed-in user."""
    pass


class InvalidCredentialsError(AuthError):
    """Email or password did not match."""
    pass


class AccountExistsError(AuthError):
    """The email is already registered."""
    pass
