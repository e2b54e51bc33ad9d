"""
Typed reads over the persistence client.

The persistence client deals in dicts; everything above it deals in
models. Records that fail validation are skipped and logged rather than
breaking the whole list, so one hand-edited row can't blank the dashboard.
"""

from typing import Any, Optional, TypeVar

import structlog
from pydantic import ValidationError

from family_finance.models.finance import Collection, Record
from family_finance.services.storage.interface import PersistenceClient


logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=Record)


async def load_records(
    client: PersistenceClient,
    collection: Collection,
    model: type[RecordT],
    filters: Optional[dict[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
) -> list[RecordT]:
    """List a collection and validate each record into `model`."""
    raw_records = await client.list_records(
        collection,
        filters=filters,
        order_by=order_by,
        descending=descending,
    )

    records = []
    for raw in raw_records:
        try:
            records.append(model.from_record(raw))
        except ValidationError as e:
            logger.warning(
                "malformed_record_skipped",
                collection=collection.value,
                record_id=raw.get("id"),
                errors=e.error_count(),
            )
    return records
