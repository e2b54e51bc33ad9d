"""Services package."""

from family_finance.services.storage import (
    AccountExistsError,
    AuditStorageInterface,
    AuthError,
    ConnectionError,
    DuplicateError,
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

__all__ = [
    "AccountExistsError",
    "AuditStorageInterface",
    "AuthError",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsIdentityProvider",
    "GoogleSheetsPersistenceClient",
    "IdentityProvider",
    "InMemoryAuditStorage",
    "InMemoryIdentityProvider",
    "InMemoryPersistenceClient",
    "InvalidCredentialsError",
    "NotAuthenticatedError",
    "NotFoundError",
    "PersistenceClient",
    "StorageError",
]
