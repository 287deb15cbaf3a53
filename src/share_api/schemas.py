####################################
# --- Request/response schemas --- #
####################################

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from database.schemas import FileRecord, TokenType
from share_api.errors import ShareError

DEFAULT_TOKEN_DURATION_MINUTES = 30


class FileMetadata(BaseModel):
    """Public view of a file record. Never includes the download token."""
    id: str = Field(description="Identifier of the file.")
    filename: str = Field(description="Original filename.")
    owner: str
    content_type: str
    size_bytes: int = Field(description="The size of the file in bytes.")
    created_at: datetime
    expires_at: datetime
    token_type: Optional[TokenType] = None
    token_expires: Optional[datetime] = None
    blob_exists: Optional[bool] = Field(
        None,
        description="Whether the bytes were found in storage; only set when requested.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "66f1b2c3d4e5f60718293a4b",
                "filename": "report.pdf",
                "owner": "user-123",
                "content_type": "application/pdf",
                "size_bytes": 512,
                "created_at": "2024-01-01T00:00:00Z",
                "expires_at": "2024-01-02T00:00:00Z",
                "token_type": "time-limited",
                "token_expires": "2024-01-02T00:00:00Z",
            }
        }
    )

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileMetadata":
        return cls(**record.model_dump(exclude={"download_token"}))


class UploadFileResponse(BaseModel):
    """Response model for `POST /v1/files`."""
    message: str
    file: FileMetadata


class GetFilesResponse(BaseModel):
    """Response model for `GET /v1/files`."""
    files: List[FileMetadata]


class DeleteFileResponse(BaseModel):
    """Response model for `DELETE /v1/files/:file_id`."""
    message: str


class FileIdsRequest(BaseModel):
    file_ids: List[str] = Field(..., min_length=1, description="Identifiers of the files to act on.")


class ItemError(BaseModel):
    file_id: Optional[str] = None
    error: str
    detail: str

    @classmethod
    def from_error(cls, error: ShareError) -> "ItemError":
        return cls(file_id=error.file_id, error=error.error_code, detail=error.message)


class DeleteResult(BaseModel):
    status: Literal["deleted", "failed"]
    error: Optional[ItemError] = None


class BatchDeleteResponse(BaseModel):
    """Response model for `POST /v1/files/delete`."""
    results: Dict[str, DeleteResult]


class PresignedUrlRequest(BaseModel):
    """Body of `POST /v1/files/:file_id/presigned`."""
    token_type: TokenType = Field(TokenType.TIME_LIMITED, description="Kind of token to issue.")
    duration_minutes: int = Field(
        DEFAULT_TOKEN_DURATION_MINUTES,
        ge=0,
        description=(
            "Lifetime of a time-limited token; must be positive for that type. "
            "Ignored for one-time tokens."
        ),
    )


class BatchPresignedUrlRequest(PresignedUrlRequest):
    """Body of `POST /v1/files/presigned`."""
    file_ids: List[str] = Field(..., min_length=1)


class PresignedUrlResponse(BaseModel):
    presigned_url: str
    token_type: TokenType
    expires_in_seconds: int


class BatchPresignedUrlResponse(BaseModel):
    presigned_urls: Dict[str, str]
    errors: List[ItemError]
    token_type: TokenType
    expires_in_seconds: int


class DownloadResponse(BaseModel):
    """Response model for `GET /v1/files/:file_id/download`."""
    download_url: str
    expires_in_seconds: int
