"""
In-Memory Storage Implementation

Keeps every collection in process memory. Used by the test suite and
for local runs without a spreadsheet. Follows the same interface as the
Google Sheets backend, so flows cannot tell the difference.
"""

import copy
from typing import Any, Optional
from uuid import UUID, uuid4

from family_finance.models.audit import AuditEvent
from family_finance.models.finance import Collection, UserIdentity
from family_finance.services.storage.interface import (
    AccountExistsError,
    AuditStorageInterface,
    DuplicateError,
    IdentityProvider,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    PersistenceClient,
)
from family_finance.services.storage.passwords import hash_password, verify_password


def _sort_key(field: str):
    # None sorts before everything; mixed types compare as strings
    def key(record: dict[str, Any]):
        value = record.get(field)
        return (value is not None, str(value) if value is not None else "")
    return key


class InMemoryPersistenceClient(PersistenceClient):
    """Dict-backed record store, one dict per collection."""

    def __init__(self):
        self._collections: dict[Collection, dict[str, dict[str, Any]]] = {
            collection: {} for collection in Collection
        }

    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        records = [
            copy.deepcopy(record)
            for record in self._collections[collection].values()
            if all(record.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            records.sort(key=_sort_key(order_by), reverse=descending)
        return records

    async def insert_record(
        self,
        collection: Collection,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        stored = copy.deepcopy(record)
        stored["id"] = stored.get("id") or str(uuid4())
        if stored["id"] in self._collections[collection]:
            raise DuplicateError(f"{collection.value} record already exists: {stored['id']}")
        self._collections[collection][stored["id"]] = stored
        return copy.deepcopy(stored)

    async def update_record(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> bool:
        existing = self._collections[collection].get(record_id)
        if existing is None:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        existing.update({k: copy.deepcopy(v) for k, v in patch.items() if k != "id"})
        return True

    async def delete_record(
        self,
        collection: Collection,
        record_id: str,
    ) -> bool:
        return self._collections[collection].pop(record_id, None) is not None


class InMemoryIdentityProvider(IdentityProvider):
    """Identity store keyed by lower-cased email."""

    def __init__(self):
        self._users: dict[str, dict[str, str]] = {}
        self._current: Optional[UserIdentity] = None

    async def current_user(self) -> Optional[UserIdentity]:
        return self._current

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        user = self._users.get(email.strip().lower())
        if user is None or not verify_password(password, user["password_hash"]):
            raise InvalidCredentialsError("Invalid email or password")
        self._current = UserIdentity(id=user["id"], email=user["email"])
        return self._current

    async def sign_up(self, email: str, password: str) -> UserIdentity:
        key = email.strip().lower()
        if key in self._users:
            raise AccountExistsError(f"An account already exists for {email}")
        self._users[key] = {
            "id": str(uuid4()),
            "email": email.strip(),
            "password_hash": hash_password(password),
        }
        return UserIdentity(id=self._users[key]["id"], email=self._users[key]["email"])

    async def sign_out(self) -> None:
        self._current = None

    async def update_password(self, new_password: str) -> bool:
        if self._current is None:
            raise NotAuthenticatedError("Sign in to change your password")
        user = self._users[self._current.email.lower()]
        user["password_hash"] = hash_password(new_password)
        return True

    async def verify_password(self, email: str, password: str) -> bool:
        user = self._users.get(email.strip().lower())
        return user is not None and verify_password(password, user["password_hash"])


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
