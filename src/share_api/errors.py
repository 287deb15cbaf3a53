"""
Error taxonomy for the Secure Share API and the FastAPI handlers that render it.

Services raise ``ShareError`` subclasses only; each carries the operation and
file id it failed on plus the underlying adapter exception, so partial failures
reach the caller with enough context to reconcile the affected store.
"""

import logging
from typing import Optional

import pydantic
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ShareError(Exception):
    """Base class for every error the transfer and token services raise."""

    error_code = "share_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        file_id: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.file_id = file_id
        self.original_error = original_error

    def __str__(self) -> str:
        parts = []
        if self.operation:
            parts.append(self.operation)
        if self.file_id:
            parts.append(f"file {self.file_id}")
        prefix = f"{' '.join(parts)}: " if parts else ""
        suffix = f" ({self.original_error})" if self.original_error is not None else ""
        return f"{prefix}{self.message}{suffix}"

    def to_dict(self) -> dict:
        body = {"error": self.error_code, "detail": self.message}
        if self.file_id:
            body["file_id"] = self.file_id
        return body


class InvalidInputError(ShareError):
    """Malformed identifier, missing file or out-of-range parameter."""
    error_code = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ShareError):
    """Caller is not the owner of the record."""
    error_code = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundOrForbiddenError(ShareError):
    """Record absent or owned by someone else. The two are not distinguished."""
    error_code = "not_found_or_forbidden"
    status_code = status.HTTP_404_NOT_FOUND


class StorageWriteError(ShareError):
    error_code = "storage_write_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


class MetadataWriteError(ShareError):
    error_code = "metadata_write_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


class MetadataLookupError(ShareError):
    error_code = "metadata_lookup_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class StorageDeletionError(ShareError):
    """Blob removal failed; the metadata record is already gone."""
    error_code = "storage_deletion_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


class MetadataDeletionError(ShareError):
    """Record removal failed; the blob is already gone."""
    error_code = "metadata_deletion_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


class FullDeletionError(ShareError):
    error_code = "full_deletion_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


class PresignError(ShareError):
    error_code = "presign_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


class InvalidTokenError(ShareError):
    error_code = "invalid_token"
    status_code = status.HTTP_401_UNAUTHORIZED


class TokenExpiredError(ShareError):
    error_code = "token_expired"
    status_code = status.HTTP_410_GONE


class TokenGenerationError(ShareError):
    error_code = "token_generation_failure"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_share_errors(request: Request, exc: ShareError) -> JSONResponse:
    """Map a ShareError to its status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "detail": [{"msg": error["msg"], "input": str(error.get("input"))} for error in errors],
        },
    )


async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that propagates past the route handlers."""
    try:
        return await call_next(request)
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal_error", "detail": "Internal server error"},
        )


def as_share_error(error: Optional[BaseException], operation: str, file_id: Optional[str] = None) -> Optional[ShareError]:
    """Pass ShareErrors through and wrap anything else, for per-id batch results."""
    if error is None or isinstance(error, ShareError):
        return error
    return ShareError("unexpected error", operation=operation, file_id=file_id, original_error=error)
