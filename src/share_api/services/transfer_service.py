"""
Transfer coordination between the object store and the metadata store.

Upload and delete each issue their blob call and their metadata call
concurrently and decide the result from the joint outcome:

* upload: a failed blob write is always reported as ``StorageWriteError``
  and no record is left behind. A failed metadata insert after a successful
  blob write triggers one fire-and-forget removal of the blob and is reported
  as ``MetadataWriteError``.
* delete: each side failing is reported distinctly so the store that needs
  reconciling is known; both failing is ``FullDeletionError``.

A timed-out store call may still land after the timeout, so cleanup first
waits up to ``settle_timeout`` for it. A late record is removed before its
blob; if the insert is still running after that wait the blob is kept.
Delete counts a late but successful removal as done.

Compensation failures are written to the ``share_api.orphans`` logger; the
``share-api find-orphans`` command reconciles what is left.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

import pydantic
from bson import ObjectId

from database.mongo_adapter import MongoAdapter
from database.schemas import FileRecord, TokenType
from share_api.adapters.storage import ObjectStore
from share_api.errors import (
    FullDeletionError,
    InvalidInputError,
    MetadataDeletionError,
    MetadataWriteError,
    NotFoundOrForbiddenError,
    ShareError,
    StorageDeletionError,
    StorageWriteError,
    as_share_error,
)
from share_api.services.records import find_record, parse_file_id, utc_now
from share_api.services.tokens import new_token
from share_api.utils.decorators import log_execution_time
from share_api.utils.parallel import DEFAULT_IO_TIMEOUT, IOTimeoutError, Outcome, gather_outcomes, run_io, settle

logger = logging.getLogger(__name__)
orphan_logger = logging.getLogger("share_api.orphans")

DEFAULT_RETENTION = timedelta(hours=24)


def _timed_out(error: Optional[BaseException]) -> bool:
    return isinstance(error, IOTimeoutError)


class TransferService:
    """Coordinates uploads and deletes across the blob and metadata stores"""

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_store: MongoAdapter,
        io_timeout: float = DEFAULT_IO_TIMEOUT,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = new_token,
        settle_timeout: Optional[float] = None,
    ):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.io_timeout = io_timeout
        # Extra wait for a timed-out call to finish before its outcome is treated as unknown
        self.settle_timeout = settle_timeout if settle_timeout is not None else 2 * io_timeout
        self.retention = retention
        self._clock = clock
        self._token_factory = token_factory
        self._compensations: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    @log_execution_time
    async def upload(
        self,
        owner_id: str,
        file_bytes: Optional[bytes],
        filename: Optional[str],
        content_type: Optional[str] = None,
    ) -> FileRecord:
        """Store the bytes and the record concurrently; return the record on joint success."""
        if not owner_id:
            raise InvalidInputError("missing owner identity", operation="upload")
        if file_bytes is None:
            raise InvalidInputError("no file provided", operation="upload")
        filename = (filename or "").strip()
        if not filename:
            raise InvalidInputError("missing filename", operation="upload")
        if "/" in filename or "\\" in filename:
            raise InvalidInputError("filename must not contain path separators", operation="upload")

        file_id = str(ObjectId())
        token = self._token_factory()
        now = self._clock()
        try:
            record = FileRecord(
                id=file_id,
                filename=filename,
                owner=owner_id,
                content_type=content_type or "application/octet-stream",
                size_bytes=len(file_bytes),
                created_at=now,
                expires_at=now + self.retention,
                download_token=token,
                token_type=TokenType.TIME_LIMITED,
                token_expires=now + self.retention,
            )
        except pydantic.ValidationError as e:
            raise InvalidInputError("invalid file metadata", operation="upload", original_error=e) from e

        key = record.object_key
        blob, metadata = await gather_outcomes(
            run_io(self.object_store.put, key, file_bytes, record.content_type, timeout=self.io_timeout),
            run_io(self.metadata_store.insert_one, record.to_document(), timeout=self.io_timeout),
        )

        if not blob.ok:
            logger.error(f"Blob write failed for {key}: {blob.error}")
            if metadata.ok:
                # The record goes before the error reaches the caller
                if await self._undo_record(record, None) and _timed_out(blob.error):
                    self._schedule_compensation(self._undo_blob(key, blob.error))
            elif _timed_out(blob.error) or _timed_out(metadata.error):
                self._schedule_compensation(self._compensate(record, blob.error, metadata.error))
            raise StorageWriteError(
                "failed to upload file to storage",
                operation="upload",
                file_id=file_id,
                original_error=blob.error,
            )

        if not metadata.ok:
            logger.error(f"Metadata insert failed for {file_id}: {metadata.error}")
            self._schedule_compensation(self._compensate(record, None, metadata.error))
            raise MetadataWriteError(
                "failed to save file metadata",
                operation="upload",
                file_id=file_id,
                original_error=metadata.error,
            )

        logger.info(f"Uploaded {key} ({record.size_bytes} bytes) for owner {owner_id}")
        return record

    async def _undo_record(self, record: FileRecord, insert_error: Optional[BaseException]) -> bool:
        """
        Remove the record of a failed upload if its insert landed.

        Returns True once no record can point at the blob, so the blob may go.
        """
        landed = await settle(insert_error, self.settle_timeout)
        if landed is None:
            orphan_logger.error(
                f"Record {record.id} insert still pending; keeping blob "
                f"{self.object_store.bucket_name}/{record.object_key}"
            )
            return False
        if not landed:
            return True
        try:
            await run_io(self.metadata_store.delete_one, {"_id": ObjectId(record.id)}, timeout=self.io_timeout)
        except Exception as e:
            orphan_logger.error(
                f"Record {record.id} of failed upload could not be removed "
                f"(blob {self.object_store.bucket_name}/{record.object_key} left as is): {e}"
            )
            return False
        logger.info(f"Removed record {record.id} of failed upload")
        return True

    async def _undo_blob(self, key: str, put_error: Optional[BaseException]) -> None:
        """Single best-effort removal of a blob whose upload failed."""
        if await settle(put_error, self.settle_timeout) is False:
            return
        try:
            await run_io(self.object_store.remove, key, timeout=self.io_timeout)
            logger.info(f"Compensating delete removed {key}")
        except Exception as e:
            orphan_logger.error(f"Orphaned blob {self.object_store.bucket_name}/{key}: compensating delete failed: {e}")

    async def _compensate(
        self,
        record: FileRecord,
        put_error: Optional[BaseException],
        insert_error: Optional[BaseException],
    ) -> None:
        """Undo the record first, then the blob, waiting out any timed-out write."""
        if await self._undo_record(record, insert_error):
            await self._undo_blob(record.object_key, put_error)

    def _schedule_compensation(self, compensation: Awaitable[None]) -> None:
        task = asyncio.ensure_future(compensation)
        self._compensations.add(task)
        task.add_done_callback(self._compensations.discard)

    async def wait_for_compensations(self) -> None:
        """Wait for any in-flight compensating deletes to finish."""
        pending = list(self._compensations)
        if pending:
            await asyncio.gather(*pending)

    @property
    def pending_compensations(self) -> int:
        return len(self._compensations)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    @log_execution_time
    async def delete(self, file_id: str, owner_id: str) -> None:
        """Remove the blob and the record concurrently."""
        object_id = parse_file_id(file_id, "delete")
        record = await find_record(
            self.metadata_store,
            {"_id": object_id, "owner": owner_id},
            file_id=file_id,
            operation="delete",
            timeout=self.io_timeout,
        )
        if record is None:
            raise NotFoundOrForbiddenError("file not found or access denied", operation="delete", file_id=file_id)

        key = record.object_key
        blob, metadata = await gather_outcomes(
            run_io(self.object_store.remove, key, timeout=self.io_timeout),
            run_io(self.metadata_store.delete_one, {"_id": object_id}, timeout=self.io_timeout),
        )
        blob, metadata = await self._settled(blob), await self._settled(metadata)

        if not blob.ok and not metadata.ok:
            logger.error(f"Delete of {file_id} failed in both stores: {blob.error}; {metadata.error}")
            raise FullDeletionError(
                "failed to delete from both storage and database",
                operation="delete",
                file_id=file_id,
                original_error=blob.error,
            )
        if not blob.ok:
            logger.error(f"Delete of {file_id} left blob {key} behind: {blob.error}")
            raise StorageDeletionError(
                "failed to delete from storage",
                operation="delete",
                file_id=file_id,
                original_error=blob.error,
            )
        if not metadata.ok:
            logger.error(f"Delete of {file_id} left its record behind: {metadata.error}")
            raise MetadataDeletionError(
                "failed to delete from database",
                operation="delete",
                file_id=file_id,
                original_error=metadata.error,
            )

        logger.info(f"Deleted {key} for owner {owner_id}")

    async def _settled(self, outcome: Outcome) -> Outcome:
        """Turn a timed-out call that later finished cleanly into a success."""
        if _timed_out(outcome.error) and await settle(outcome.error, self.settle_timeout):
            logger.info(f"Late completion after {outcome.error}")
            return Outcome(value=outcome.error.pending.result())
        return outcome

    async def delete_many(self, file_ids: Iterable[str], owner_id: str) -> Dict[str, Optional[ShareError]]:
        """
        Delete several files in parallel.

        Returns a map of file id to ``None`` on success or the error for that id.
        """
        unique_ids: List[str] = list(dict.fromkeys(file_ids))
        if not unique_ids:
            raise InvalidInputError("no file IDs provided", operation="delete_many")

        outcomes = await gather_outcomes(*(self.delete(file_id, owner_id) for file_id in unique_ids))

        results: Dict[str, Optional[ShareError]] = {}
        for file_id, outcome in zip(unique_ids, outcomes):
            results[file_id] = as_share_error(outcome.error, "delete", file_id)
        failed = sum(1 for error in results.values() if error is not None)
        logger.info(f"Batch delete for {owner_id}: {len(results) - failed} deleted, {failed} failed")
        return results
