"""
Listing of a user's file records, with optional storage checks.
"""

import logging
from typing import List, Optional

from pymongo import DESCENDING

from database.mongo_adapter import MongoAdapter
from database.schemas import FileRecord
from share_api.adapters.storage import ObjectStore
from share_api.errors import MetadataLookupError, NotFoundOrForbiddenError
from share_api.services.records import find_record, parse_file_id
from share_api.utils.parallel import DEFAULT_IO_TIMEOUT, gather_outcomes, run_io

logger = logging.getLogger(__name__)


class ListingService:
    """Read side of the file records"""

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_store: MongoAdapter,
        io_timeout: float = DEFAULT_IO_TIMEOUT,
    ):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.io_timeout = io_timeout

    async def list_files(self, owner_id: str, check_storage: bool = False) -> List[FileRecord]:
        """
        Return the owner's records, newest first.

        With ``check_storage`` each record gets ``blob_exists`` from a concurrent
        existence check. A failed check leaves ``blob_exists`` as None and
        does not fail the listing.
        """
        try:
            documents = await run_io(
                self.metadata_store.find_many,
                {"owner": owner_id},
                [("created_at", DESCENDING)],
                timeout=self.io_timeout,
            )
        except Exception as e:
            raise MetadataLookupError("failed to retrieve files", operation="list_files", original_error=e) from e

        records = [FileRecord.from_document(document) for document in documents]
        if check_storage and records:
            await self._annotate_blob_status(records)
        return records

    async def _annotate_blob_status(self, records: List[FileRecord]) -> None:
        outcomes = await gather_outcomes(
            *(run_io(self.object_store.exists, record.object_key, timeout=self.io_timeout) for record in records)
        )
        for record, outcome in zip(records, outcomes):
            if outcome.ok:
                record.blob_exists = bool(outcome.value)
            else:
                logger.warning(f"Storage check failed for {record.object_key}: {outcome.error}")
                record.blob_exists = None

    async def get_file(self, file_id: str, owner_id: str) -> FileRecord:
        """Return one record owned by ``owner_id``."""
        object_id = parse_file_id(file_id, "get_file")
        record: Optional[FileRecord] = await find_record(
            self.metadata_store,
            {"_id": object_id, "owner": owner_id},
            file_id=file_id,
            operation="get_file",
            timeout=self.io_timeout,
        )
        if record is None:
            raise NotFoundOrForbiddenError("file not found or access denied", operation="get_file", file_id=file_id)
        return record
