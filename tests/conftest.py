"""Shared fixtures: in-memory backends, no network."""

import pytest

from family_finance.audit import AuditLogger
from family_finance.config import AppSettings
from family_finance.orchestrator import AppComponents
from family_finance.services.storage import (
    InMemoryAuditStorage,
    InMemoryIdentityProvider,
    InMemoryPersistenceClient,
    StorageError,
)


class FlakyPersistenceClient(InMemoryPersistenceClient):
    """
    In-memory client that can be told to fail.

    fail_on holds (operation, collection) pairs; fail_ids holds record
    ids whose updates fail.
    """

    def __init__(self):
        super().__init__()
        self.fail_on = set()
        self.fail_ids = set()

    async def list_records(self, collection, filters=None, order_by=None, descending=False):
        if ("list", collection) in self.fail_on:
            raise StorageError(f"list {collection.value} failed")
        return await super().list_records(collection, filters, order_by, descending)

    async def insert_record(self, collection, record):
        if ("insert", collection) in self.fail_on:
            raise StorageError(f"insert into {collection.value} failed")
        return await super().insert_record(collection, record)

    async def update_record(self, collection, record_id, patch):
        if ("update", collection) in self.fail_on or record_id in self.fail_ids:
            raise StorageError(f"update of {record_id} failed")
        return await super().update_record(collection, record_id, patch)


@pytest.fixture
def settings():
    return AppSettings()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def flaky_client():
    return FlakyPersistenceClient()


@pytest.fixture
def app(flaky_client, audit_storage, settings):
    return AppComponents(
        client=flaky_client,
        identity=InMemoryIdentityProvider(),
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
    )


@pytest.fixture
async def signed_in(app):
    await app.account.sign_up("ayu@example.com", "secret1", name="Ayu Lestari")
    return app
