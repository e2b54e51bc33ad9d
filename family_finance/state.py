"""
Application State Store

Holds the last confirmed copy of each collection, the latest dashboard,
and the status of the operation in flight.

DESIGN DECISION: The store is updated only after the persistence client
confirms a write and the collection has been re-read. A failed write
leaves every cached collection exactly as it was and moves the status
to error.

Screens that need to react (the transaction modal, the dashboard) call
subscribe() instead of listening for a global event.
"""

from typing import Callable, Optional

import structlog

from family_finance.models.finance import (
    Collection,
    DashboardState,
    OperationStatus,
    Record,
)


logger = structlog.get_logger(__name__)

# Events passed to listeners
STATE_CHANGED = "state_changed"
ADD_TRANSACTION_REQUESTED = "add_transaction_requested"

Listener = Callable[[str, "AppState"], None]


class AppState:
    """Observable store shared by the flows of one signed-in session."""

    def __init__(self):
        self._collections: dict[Collection, list[Record]] = {
            collection: [] for collection in Collection
        }
        self._listeners: list[Listener] = []
        self.dashboard: Optional[DashboardState] = None
        self.status = OperationStatus.IDLE
        self.last_error: Optional[str] = None

    def records(self, collection: Collection) -> list[Record]:
        """Cached records of one collection (a copy of the list)."""
        return list(self._collections[collection])

    @property
    def transactions(self) -> list[Record]:
        return self.records(Collection.TRANSACTIONS)

    @property
    def budget_categories(self) -> list[Record]:
        return self.records(Collection.BUDGET_CATEGORIES)

    @property
    def savings_goals(self) -> list[Record]:
        return self.records(Collection.SAVINGS_GOALS)

    @property
    def profiles(self) -> list[Record]:
        return self.records(Collection.PROFILES)

    @property
    def is_pending(self) -> bool:
        return self.status == OperationStatus.PENDING

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener. Returns a function that unregisters it.

        Listeners are called with (event, state).
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(event, self)

    def request_add_transaction(self) -> None:
        """Ask whichever screen owns the transaction form to open it."""
        self._notify(ADD_TRANSACTION_REQUESTED)

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def begin_operation(self) -> None:
        self.status = OperationStatus.PENDING
        self.last_error = None
        self._notify(STATE_CHANGED)

    def finish_operation(self) -> None:
        self.status = OperationStatus.IDLE
        self._notify(STATE_CHANGED)

    def fail_operation(self, error: str) -> None:
        logger.warning("operation_failed", error=error)
        self.status = OperationStatus.ERROR
        self.last_error = error
        self._notify(STATE_CHANGED)

    def replace(self, collection: Collection, records: list[Record]) -> None:
        """Install a freshly fetched collection."""
        self._collections[collection] = list(records)
        self.status = OperationStatus.IDLE
        self._notify(STATE_CHANGED)

    def set_dashboard(self, dashboard: DashboardState) -> None:
        self.dashboard = dashboard
        self.status = OperationStatus.IDLE
        self._notify(STATE_CHANGED)

    def clear(self) -> None:
        """Forget everything, e.g. on sign-out."""
        for collection in Collection:
            self._collections[collection] = []
        self.dashboard = None
        self.status = OperationStatus.IDLE
        self.last_error = None
        self._notify(STATE_CHANGED)
