"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests
and local runs. Both are swappable behind the same interfaces.
"""

from family_finance.services.storage.interface import (
    AccountExistsError,
    AuditStorageInterface,
    AuthError,
    ConnectionError,
    DuplicateError,
    IdentityProvider,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    PersistenceClient,
    StorageError,
)
from family_finance.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryIdentityProvider,
    InMemoryPersistenceClient,
)
from family_finance.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsIdentityProvider,
    GoogleSheetsPersistenceClient,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "IdentityProvider",
    "PersistenceClient",
    # Exceptions
    "AccountExistsError",
    "AuthError",
    "ConnectionError",
    "DuplicateError",
    "InvalidCredentialsError",
    "NotAuthenticatedError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryIdentityProvider",
    "InMemoryPersistenceClient",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsIdentityProvider",
    "GoogleSheetsPersistenceClient",
]
