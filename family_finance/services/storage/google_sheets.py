"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted backend because:
1. The household can view and fix their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for one household)
- No transactions (a transaction save and its goal updates are separate writes)
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet with a header row.
The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing flows or aggregation.
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from family_finance.config import get_settings
from family_finance.models.audit import AuditEvent, AuditEventType, AuditSeverity
from family_finance.models.finance import Collection, UserIdentity
from family_finance.services.storage.interface import (
    AccountExistsError,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    IdentityProvider,
    InvalidCredentialsError,
    NotAuthenticatedError,
    NotFoundError,
    PersistenceClient,
    StorageError,
)
from family_finance.services.storage.passwords import hash_password, verify_password


logger = structlog.get_logger(__name__)


# Column mappings, one list per worksheet
COLLECTION_COLUMNS: dict[Collection, list[str]] = {
    Collection.TRANSACTIONS: [
        "id",
        "user_id",
        "date",
        "amount",
        "type",
        "category",
        "description",
        "currency",
        "goal_id",
    ],
    Collection.BUDGET_CATEGORIES: [
        "id",
        "user_id",
        "name",
        "budget",
        "color",
    ],
    Collection.SAVINGS_GOALS: [
        "id",
        "user_id",
        "title",
        "target_amount",
        "current_amount",
        "due_date",
        "updated_at",
    ],
    Collection.PROFILES: [
        "id",
        "owner_id",
        "name",
        "email",
        "role",
        "status",
        "avatar_url",
    ],
}

USER_COLUMNS = [
    "id",
    "email",
    "password_hash",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(value: Any) -> str:
    """Render a record value as sheet text; None becomes an empty cell."""
    if value is None:
        return ""
    return str(value)


def _row_to_record(row: list, columns: list[str]) -> dict[str, Any]:
    """Map a sheet row onto column names, dropping empty cells."""
    record = {}
    for index, column in enumerate(columns):
        value = row[index] if index < len(row) else ""
        if value != "":
            record[column] = value
    return record


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def sheet_name_for(self, collection: Collection) -> str:
        return {
            Collection.TRANSACTIONS: self._settings.transactions_sheet_name,
            Collection.BUDGET_CATEGORIES: self._settings.budget_categories_sheet_name,
            Collection.SAVINGS_GOALS: self._settings.savings_goals_sheet_name,
            Collection.PROFILES: self._settings.profiles_sheet_name,
        }[collection]

    def get_collection_sheet(self, collection: Collection) -> gspread.Worksheet:
        return self.get_worksheet(
            self.sheet_name_for(collection),
            COLLECTION_COLUMNS[collection],
        )

    def get_users_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.users_sheet_name, USER_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsPersistenceClient(PersistenceClient):
    """
    Google Sheets implementation of the persistence client.

    Records are stored as rows, one record per row, one sheet per collection.
    Every value is written as text and re-validated by the models on read.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, collection: Collection, record: dict[str, Any]) -> list:
        return [_cell(record.get(column)) for column in COLLECTION_COLUMNS[collection]]

    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        try:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list {collection.value}: {e}")

        columns = COLLECTION_COLUMNS[collection]
        records = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            record = _row_to_record(row, columns)
            if filters and any(
                record.get(k, "") != _cell(v) for k, v in filters.items()
            ):
                continue
            records.append(record)

        if order_by:
            records.sort(key=lambda r: r.get(order_by, ""), reverse=descending)
        return records

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert_record(
        self,
        collection: Collection,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        stored = dict(record)
        try:
            sheet = self._client.get_collection_sheet(collection)
            if stored.get("id"):
                # Caller-chosen ids (profiles reuse the identity id) must be new
                if any(row and row[0] == stored["id"] for row in sheet.get_all_values()[1:]):
                    raise DuplicateError(f"{collection.value} record already exists: {stored['id']}")
            else:
                stored["id"] = str(uuid4())
            sheet.append_row(
                self._record_to_row(collection, stored),
                value_input_option="RAW",
            )
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {collection.value}: {e}")
        return stored

    @retry(
        retry=retry_if_not_exception_type(NotFoundError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def update_record(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> bool:
        columns = COLLECTION_COLUMNS[collection]
        try:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()

            # Find the row with this record ID
            for idx, row in enumerate(all_rows[1:], start=2):  # Start from 2 (row 1 is header)
                if row and row[0] == record_id:
                    for column, value in patch.items():
                        if column == "id" or column not in columns:
                            continue
                        sheet.update_cell(idx, columns.index(column) + 1, _cell(value))
                    return True

            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection.value}: {e}")

    async def delete_record(
        self,
        collection: Collection,
        record_id: str,
    ) -> bool:
        try:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == record_id:
                    sheet.delete_rows(idx)
                    return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete from {collection.value}: {e}")


class GoogleSheetsIdentityProvider(IdentityProvider):
    """
    Identity backed by a Users worksheet.

    Only bcrypt password hashes are stored. The session lives in
    this object, one per running app.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._current: Optional[UserIdentity] = None

    def _find_user(self, email: str) -> tuple[Optional[int], Optional[dict[str, Any]]]:
        sheet = self._client.get_users_sheet()
        key = email.strip().lower()
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            record = _row_to_record(row, USER_COLUMNS)
            if record.get("email", "").lower() == key:
                return idx, record
        return None, None

    async def current_user(self) -> Optional[UserIdentity]:
        return self._current

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        try:
            _, user = self._find_user(email)
        except Exception as e:
            raise StorageError(f"Failed to read users: {e}")
        if user is None or not verify_password(password, user.get("password_hash", "")):
            raise InvalidCredentialsError("Invalid email or password")
        self._current = UserIdentity(id=user["id"], email=user["email"])
        return self._current

    @retry(
        retry=retry_if_not_exception_type(AccountExistsError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def sign_up(self, email: str, password: str) -> UserIdentity:
        try:
            _, existing = self._find_user(email)
        except Exception as e:
            raise StorageError(f"Failed to read users: {e}")
        if existing is not None:
            raise AccountExistsError(f"An account already exists for {email}")

        identity = UserIdentity(id=str(uuid4()), email=email.strip())
        password_hash = hash_password(password)
        try:
            self._client.get_users_sheet().append_row(
                [identity.id, identity.email, password_hash, datetime.utcnow().isoformat()],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to create account: {e}")
        return identity

    async def sign_out(self) -> None:
        self._current = None

    async def update_password(self, new_password: str) -> bool:
        if self._current is None:
            raise NotAuthenticatedError("Sign in to change your password")
        try:
            idx, _ = self._find_user(self._current.email)
            if idx is None:
                raise NotFoundError(f"User not found: {self._current.email}")
            sheet = self._client.get_users_sheet()
            sheet.update_cell(idx, USER_COLUMNS.index("password_hash") + 1, hash_password(new_password))
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update password: {e}")

    async def verify_password(self, email: str, password: str) -> bool:
        try:
            _, user = self._find_user(email)
        except Exception as e:
            raise StorageError(f"Failed to read users: {e}")
        return user is not None and verify_password(password, user.get("password_hash", ""))


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        record = _row_to_record(row, AUDIT_COLUMNS)
        return AuditEvent(
            event_id=UUID(record["event_id"]),
            timestamp=datetime.fromisoformat(record["timestamp"]),
            event_type=AuditEventType(record["event_type"]),
            severity=AuditSeverity(record["severity"]),
            user_id=record.get("user_id"),
            entity_type=record.get("entity_type"),
            entity_id=record.get("entity_id"),
            correlation_id=UUID(record["correlation_id"]) if record.get("correlation_id") else None,
            description=record.get("description", ""),
            details=json.loads(record["details_json"]) if record.get("details_json") else {},
            error_message=record.get("error_message"),
            is_user_action=record.get("is_user_action", "").lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (KeyError, ValueError) as e:
                logger.warning("audit_row_skipped", error=str(e), event_id=row[0])
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
