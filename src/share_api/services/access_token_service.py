"""
Download token issuance and validation.

A record holds at most one live token. Issuing writes a fresh token over the
old one, which invalidates it at once. Validation checks the token and its
expiry. One-time tokens are also cleared with a conditional update before a
download URL is handed out, so two concurrent validations of the same token
cannot both succeed.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from bson import ObjectId

from database.mongo_adapter import MongoAdapter
from database.schemas import FileRecord, TokenType
from share_api.adapters.storage import ObjectStore
from share_api.errors import (
    InvalidInputError,
    InvalidTokenError,
    MetadataWriteError,
    NotFoundOrForbiddenError,
    PresignError,
    ShareError,
    TokenExpiredError,
    UnauthorizedError,
    as_share_error,
)
from share_api.services.records import as_utc, find_record, parse_file_id, utc_now
from share_api.services.tokens import new_token
from share_api.utils.decorators import log_execution_time
from share_api.utils.parallel import DEFAULT_IO_TIMEOUT, gather_outcomes, run_io

logger = logging.getLogger(__name__)

ONE_TIME_TOKEN_LIFETIME = timedelta(minutes=30)
DOWNLOAD_URL_LIFETIME = timedelta(minutes=10)
MAX_TOKEN_DURATION = timedelta(days=7)


class AccessTokenService:
    """Issues, stores and validates download tokens on file records"""

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_store: MongoAdapter,
        io_timeout: float = DEFAULT_IO_TIMEOUT,
        one_time_lifetime: timedelta = ONE_TIME_TOKEN_LIFETIME,
        download_url_lifetime: timedelta = DOWNLOAD_URL_LIFETIME,
        max_duration: timedelta = MAX_TOKEN_DURATION,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] = new_token,
    ):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.io_timeout = io_timeout
        self.one_time_lifetime = one_time_lifetime
        self.download_url_lifetime = download_url_lifetime
        self.max_duration = max_duration
        self._clock = clock
        self._token_factory = token_factory

    async def _load(self, file_id: str, operation: str) -> FileRecord:
        object_id = parse_file_id(file_id, operation)
        record = await find_record(
            self.metadata_store,
            {"_id": object_id},
            file_id=file_id,
            operation=operation,
            timeout=self.io_timeout,
        )
        if record is None:
            raise NotFoundOrForbiddenError("file not found", operation=operation, file_id=file_id)
        return record

    async def _presign(
        self,
        record: FileRecord,
        ttl: timedelta,
        operation: str,
        extra_params: Optional[Dict[str, str]] = None,
    ) -> str:
        try:
            return await run_io(
                self.object_store.presigned_get,
                record.object_key,
                ttl,
                extra_params,
                timeout=self.io_timeout,
            )
        except Exception as e:
            raise PresignError(
                "failed to generate presigned URL",
                operation=operation,
                file_id=record.id,
                original_error=e,
            ) from e

    def token_window(self, token_type: TokenType, duration: timedelta) -> timedelta:
        """Lifetime of a new token: the fixed ceiling for one-time, the caller's duration otherwise."""
        if token_type == TokenType.ONE_TIME:
            return self.one_time_lifetime
        if duration <= timedelta(0):
            raise InvalidInputError("duration must be positive for time-limited tokens", operation="issue_token")
        if duration > self.max_duration:
            raise InvalidInputError(
                f"duration must not exceed {int(self.max_duration.total_seconds() // 60)} minutes",
                operation="issue_token",
            )
        return duration

    @log_execution_time
    async def issue_token(
        self,
        file_id: str,
        owner_id: str,
        token_type: Union[TokenType, str],
        duration: timedelta,
    ) -> str:
        """Mint a token for the owner's file and return a presigned URL carrying it."""
        try:
            token_type = TokenType(token_type)
        except ValueError as e:
            raise InvalidInputError(
                f"invalid token type: {token_type}", operation="issue_token", file_id=file_id
            ) from e
        window = self.token_window(token_type, duration)

        record = await self._load(file_id, "issue_token")
        if record.owner != owner_id:
            raise UnauthorizedError("unauthorized access", operation="issue_token", file_id=file_id)

        token = self._token_factory()
        token_expires = self._clock() + window
        try:
            await run_io(
                self.metadata_store.update_one,
                {"_id": ObjectId(record.id)},
                {"$set": {
                    "download_token": token,
                    "token_type": token_type.value,
                    "token_expires": token_expires,
                }},
                timeout=self.io_timeout,
            )
        except Exception as e:
            raise MetadataWriteError(
                "failed to save download token",
                operation="issue_token",
                file_id=file_id,
                original_error=e,
            ) from e

        logger.info(f"Issued {token_type.value} token for {file_id}, expires {token_expires.isoformat()}")
        return await self._presign(record, window, "issue_token", {"token": token})

    async def issue_tokens(
        self,
        file_ids: Iterable[str],
        owner_id: str,
        token_type: Union[TokenType, str],
        duration: timedelta,
    ) -> Tuple[Dict[str, str], List[ShareError]]:
        """
        Issue tokens for several files in parallel.

        Returns the URLs keyed by file id and the errors for the ids that failed.
        """
        unique_ids = list(dict.fromkeys(file_ids))
        if not unique_ids:
            raise InvalidInputError("no file IDs provided", operation="issue_tokens")

        outcomes = await gather_outcomes(
            *(self.issue_token(file_id, owner_id, token_type, duration) for file_id in unique_ids)
        )

        urls: Dict[str, str] = {}
        errors: List[ShareError] = []
        for file_id, outcome in zip(unique_ids, outcomes):
            if outcome.ok:
                urls[file_id] = outcome.value
            else:
                error = as_share_error(outcome.error, "issue_token", file_id)
                if error.file_id is None:
                    error.file_id = file_id
                errors.append(error)
        logger.info(f"Batch token issue for {owner_id}: {len(urls)} issued, {len(errors)} failed")
        return urls, errors

    @log_execution_time
    async def validate_and_consume(
        self,
        file_id: str,
        provided_token: str,
        owner_id: Optional[str] = None,
    ) -> str:
        """Check a token against the record and return a short-lived download URL."""
        if not provided_token:
            raise InvalidInputError("missing download token", operation="validate_download", file_id=file_id)

        record = await self._load(file_id, "validate_download")
        if owner_id is not None and record.owner != owner_id:
            raise UnauthorizedError("unauthorized access", operation="validate_download", file_id=file_id)

        if record.download_token is None or record.download_token != provided_token:
            raise InvalidTokenError("invalid or expired download token", operation="validate_download", file_id=file_id)

        if record.token_expires is not None and self._clock() > as_utc(record.token_expires):
            raise TokenExpiredError("download token expired", operation="validate_download", file_id=file_id)

        if record.token_type == TokenType.ONE_TIME:
            await self._revoke(record, provided_token)

        return await self._presign(record, self.download_url_lifetime, "validate_download")

    async def _revoke(self, record: FileRecord, token: str) -> None:
        """Clear a one-time token, only if it is still the stored one."""
        try:
            matched = await run_io(
                self.metadata_store.update_one,
                {"_id": ObjectId(record.id), "download_token": token},
                {"$unset": {"download_token": ""}},
                timeout=self.io_timeout,
            )
        except Exception as e:
            raise MetadataWriteError(
                "failed to revoke token",
                operation="validate_download",
                file_id=record.id,
                original_error=e,
            ) from e
        if not matched:
            raise InvalidTokenError("invalid or expired download token", operation="validate_download", file_id=record.id)
        logger.info(f"Consumed one-time token for {record.id}")
