"""Tests for the in-memory backends and typed record loading."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from family_finance.models.audit import AuditEvent, AuditEventType
from family_finance.models.finance import Collection, Transaction
from family_finance.services.repository import load_records
from family_finance.services.storage import (
    AccountExistsError,
    InMemoryAuditStorage,
    InMemoryIdentityProvider,
    InMemoryPersistenceClient,
    InvalidCredentialsError,
    DuplicateError,
    NotAuthenticatedError,
    NotFoundError,
)
from family_finance.services.storage.passwords import hash_password, verify_password


def raw_transaction(user_id="u1", day="2024-03-10", **overrides):
    record = {
        "user_id": user_id,
        "date": day,
        "amount": "100",
        "type": "expense",
        "category": "Food",
    }
    record.update(overrides)
    return record


class TestInMemoryPersistenceClient:
    """Tests for record CRUD."""

    async def test_insert_assigns_id(self):
        client = InMemoryPersistenceClient()
        stored = await client.insert_record(Collection.TRANSACTIONS, raw_transaction())
        assert stored["id"]
        assert stored["category"] == "Food"

    async def test_insert_keeps_given_id(self):
        client = InMemoryPersistenceClient()
        stored = await client.insert_record(Collection.PROFILES, {"id": "u1", "name": "Ayu"})
        assert stored["id"] == "u1"

    async def test_insert_existing_id_rejected(self):
        client = InMemoryPersistenceClient()
        await client.insert_record(Collection.PROFILES, {"id": "u1", "name": "Ayu"})
        with pytest.raises(DuplicateError):
            await client.insert_record(Collection.PROFILES, {"id": "u1", "name": "Budi"})

    async def test_list_filters_and_orders(self):
        client = InMemoryPersistenceClient()
        await client.insert_record(Collection.TRANSACTIONS, raw_transaction(day="2024-03-01"))
        await client.insert_record(Collection.TRANSACTIONS, raw_transaction(day="2024-03-20"))
        await client.insert_record(Collection.TRANSACTIONS, raw_transaction(user_id="u2"))

        records = await client.list_records(
            Collection.TRANSACTIONS,
            filters={"user_id": "u1"},
            order_by="date",
            descending=True,
        )
        assert [r["date"] for r in records] == ["2024-03-20", "2024-03-01"]

    async def test_returned_records_are_copies(self):
        client = InMemoryPersistenceClient()
        stored = await client.insert_record(Collection.TRANSACTIONS, raw_transaction())
        stored["amount"] = "999"

        records = await client.list_records(Collection.TRANSACTIONS)
        assert records[0]["amount"] == "100"

    async def test_collections_are_separate(self):
        client = InMemoryPersistenceClient()
        await client.insert_record(Collection.TRANSACTIONS, raw_transaction())
        assert await client.list_records(Collection.SAVINGS_GOALS) == []

    async def test_update_patches_fields(self):
        client = InMemoryPersistenceClient()
        stored = await client.insert_record(Collection.TRANSACTIONS, raw_transaction())

        assert await client.update_record(Collection.TRANSACTIONS, stored["id"], {"amount": "150"})
        records = await client.list_records(Collection.TRANSACTIONS)
        assert records[0]["amount"] == "150"
        assert records[0]["id"] == stored["id"]

    async def test_update_missing_record(self):
        client = InMemoryPersistenceClient()
        with pytest.raises(NotFoundError):
            await client.update_record(Collection.TRANSACTIONS, "nope", {"amount": "1"})

    async def test_delete(self):
        client = InMemoryPersistenceClient()
        stored = await client.insert_record(Collection.TRANSACTIONS, raw_transaction())
        assert await client.delete_record(Collection.TRANSACTIONS, stored["id"]) is True
        assert await client.delete_record(Collection.TRANSACTIONS, stored["id"]) is False


class TestLoadRecords:
    """Tests for typed loading through load_records."""

    async def test_malformed_records_are_skipped(self):
        """Test one broken row doesn't hide the rest."""
        client = InMemoryPersistenceClient()
        await client.insert_record(Collection.TRANSACTIONS, raw_transaction())
        await client.insert_record(Collection.TRANSACTIONS, raw_transaction(day="not-a-date"))
        await client.insert_record(Collection.TRANSACTIONS, raw_transaction(amount="-3"))

        transactions = await load_records(client, Collection.TRANSACTIONS, Transaction)

        assert len(transactions) == 1
        assert isinstance(transactions[0], Transaction)


class TestInMemoryIdentityProvider:
    """Tests for sign-up, sign-in and passwords."""

    async def test_sign_up_does_not_start_a_session(self):
        identity = InMemoryIdentityProvider()
        user = await identity.sign_up("ayu@example.com", "secret1")
        assert user.email == "ayu@example.com"
        assert await identity.current_user() is None

    async def test_sign_in_and_out(self):
        identity = InMemoryIdentityProvider()
        created = await identity.sign_up("ayu@example.com", "secret1")

        user = await identity.sign_in("AYU@example.com", "secret1")
        assert user.id == created.id
        assert (await identity.current_user()).id == created.id

        await identity.sign_out()
        assert await identity.current_user() is None

    async def test_wrong_password(self):
        identity = InMemoryIdentityProvider()
        await identity.sign_up("ayu@example.com", "secret1")
        with pytest.raises(InvalidCredentialsError):
            await identity.sign_in("ayu@example.com", "secret2")
        with pytest.raises(InvalidCredentialsError):
            await identity.sign_in("nobody@example.com", "secret1")

    async def test_duplicate_email(self):
        identity = InMemoryIdentityProvider()
        await identity.sign_up("ayu@example.com", "secret1")
        with pytest.raises(AccountExistsError):
            await identity.sign_up("Ayu@Example.com", "other12")

    async def test_update_password_needs_session(self):
        identity = InMemoryIdentityProvider()
        with pytest.raises(NotAuthenticatedError):
            await identity.update_password("secret2")

    async def test_update_password(self):
        identity = InMemoryIdentityProvider()
        await identity.sign_up("ayu@example.com", "secret1")
        await identity.sign_in("ayu@example.com", "secret1")

        await identity.update_password("secret2")

        assert await identity.verify_password("ayu@example.com", "secret2") is True
        assert await identity.verify_password("ayu@example.com", "secret1") is False


class TestPasswordHashing:
    """Tests for bcrypt hashing."""

    def test_round_trip(self):
        password_hash = hash_password("secret1")
        assert password_hash.startswith("$2")
        assert verify_password("secret1", password_hash) is True
        assert verify_password("secret2", password_hash) is False

    def test_salt_changes_hash(self):
        assert hash_password("secret1") != hash_password("secret1")

    def test_missing_or_garbled_hash_never_matches(self):
        assert verify_password("secret1", "") is False
        assert verify_password("secret1", "not-a-bcrypt-hash") is False


class TestInMemoryAuditStorage:
    """Tests for the append-only audit log."""

    async def test_events_by_correlation_id(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        now = datetime.utcnow()
        await storage.append_event(AuditEvent(
            event_type=AuditEventType.GOAL_SYNCED,
            description="second",
            correlation_id=correlation_id,
            timestamp=now + timedelta(seconds=1),
        ))
        await storage.append_event(AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="first",
            correlation_id=correlation_id,
            timestamp=now,
        ))
        await storage.append_event(AuditEvent(
            event_type=AuditEventType.USER_SIGNED_IN,
            description="unrelated",
        ))

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.description for e in events] == ["first", "second"]

    async def test_recent_events_limit(self):
        storage = InMemoryAuditStorage()
        for i in range(5):
            await storage.append_event(AuditEvent(
                event_type=AuditEventType.USER_SIGNED_IN,
                description=f"event {i}",
            ))
        assert len(await storage.get_recent_events(limit=3)) == 3
