"""Helpers shared by the services for resolving file records."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId

from database.mongo_adapter import MongoAdapter
from database.schemas import FileRecord
from share_api.errors import InvalidInputError, MetadataLookupError
from share_api.utils.parallel import run_io

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_file_id(file_id: Optional[str], operation: str) -> ObjectId:
    if not file_id or not ObjectId.is_valid(file_id):
        raise InvalidInputError("invalid file ID", operation=operation, file_id=file_id or None)
    return ObjectId(file_id)


async def find_record(
    metadata_store: MongoAdapter,
    query: Dict[str, Any],
    *,
    file_id: str,
    operation: str,
    timeout: float,
) -> Optional[FileRecord]:
    """Fetch one record, wrapping store failures as MetadataLookupError."""
    try:
        document = await run_io(metadata_store.find_one, query, timeout=timeout)
    except Exception as e:
        raise MetadataLookupError(
            "failed to look up file record",
            operation=operation,
            file_id=file_id,
            original_error=e,
        ) from e
    if document is None:
        return None
    return FileRecord.from_document(document)
