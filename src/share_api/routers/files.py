from datetime import timedelta

from fastapi import (
    APIRouter,
    Depends,
    File,
    Path,
    Query,
    UploadFile,
    status
)

from share_api.dependencies import (
    get_access_token_service,
    get_current_user,
    get_listing_service,
    get_transfer_service,
)
from share_api.schemas import (
    BatchDeleteResponse,
    BatchPresignedUrlRequest,
    BatchPresignedUrlResponse,
    DeleteFileResponse,
    DeleteResult,
    DownloadResponse,
    FileIdsRequest,
    FileMetadata,
    GetFilesResponse,
    ItemError,
    PresignedUrlRequest,
    PresignedUrlResponse,
    UploadFileResponse,
)
from share_api.services import AccessTokenService, ListingService, TransferService

router = APIRouter()


@router.post("/files", response_model=UploadFileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file_content: UploadFile = File(..., description="The file to share"),
    user_id: str = Depends(get_current_user),
    transfer_service: TransferService = Depends(get_transfer_service),
) -> UploadFileResponse:
    """
    Upload a file for the calling user.

    The bytes and the metadata record are written concurrently. A failure on
    either side is reported with its own error code, and the other side is
    cleaned up.
    """
    file_bytes = await file_content.read()
    record = await transfer_service.upload(
        owner_id=user_id,
        file_bytes=file_bytes,
        filename=file_content.filename,
        content_type=file_content.content_type,
    )
    return UploadFileResponse(
        message=f"File uploaded: {record.filename}",
        file=FileMetadata.from_record(record),
    )


@router.get("/files", response_model=GetFilesResponse)
async def list_files(
    check_storage: bool = Query(False, description="Also check each file's bytes exist in storage"),
    user_id: str = Depends(get_current_user),
    listing_service: ListingService = Depends(get_listing_service),
) -> GetFilesResponse:
    """List the calling user's files, newest first."""
    records = await listing_service.list_files(user_id, check_storage=check_storage)
    return GetFilesResponse(files=[FileMetadata.from_record(record) for record in records])


@router.post("/files/delete", response_model=BatchDeleteResponse)
async def delete_files(
    body: FileIdsRequest,
    user_id: str = Depends(get_current_user),
    transfer_service: TransferService = Depends(get_transfer_service),
) -> BatchDeleteResponse:
    """Delete several files. Each id gets its own result."""
    outcomes = await transfer_service.delete_many(body.file_ids, user_id)
    results = {
        file_id: DeleteResult(status="deleted")
        if error is None
        else DeleteResult(status="failed", error=ItemError.from_error(error))
        for file_id, error in outcomes.items()
    }
    return BatchDeleteResponse(results=results)


@router.post("/files/presigned", response_model=BatchPresignedUrlResponse)
async def generate_presigned_urls(
    body: BatchPresignedUrlRequest,
    user_id: str = Depends(get_current_user),
    access_token_service: AccessTokenService = Depends(get_access_token_service),
) -> BatchPresignedUrlResponse:
    """Issue download tokens for several files."""
    duration = timedelta(minutes=body.duration_minutes)
    window = access_token_service.token_window(body.token_type, duration)
    urls, errors = await access_token_service.issue_tokens(body.file_ids, user_id, body.token_type, duration)
    return BatchPresignedUrlResponse(
        presigned_urls=urls,
        errors=[ItemError.from_error(error) for error in errors],
        token_type=body.token_type,
        expires_in_seconds=int(window.total_seconds()),
    )


@router.get("/files/{file_id}", response_model=FileMetadata)
async def get_file_metadata(
    file_id: str = Path(..., description="Identifier of the file"),
    user_id: str = Depends(get_current_user),
    listing_service: ListingService = Depends(get_listing_service),
) -> FileMetadata:
    record = await listing_service.get_file(file_id, user_id)
    return FileMetadata.from_record(record)


@router.delete("/files/{file_id}", response_model=DeleteFileResponse)
async def delete_file(
    file_id: str = Path(..., description="Identifier of the file"),
    user_id: str = Depends(get_current_user),
    transfer_service: TransferService = Depends(get_transfer_service),
) -> DeleteFileResponse:
    """Delete a file's bytes and its record."""
    await transfer_service.delete(file_id, user_id)
    return DeleteFileResponse(message="File deleted successfully")


@router.post("/files/{file_id}/presigned", response_model=PresignedUrlResponse)
async def generate_presigned_url(
    body: PresignedUrlRequest,
    file_id: str = Path(..., description="Identifier of the file"),
    user_id: str = Depends(get_current_user),
    access_token_service: AccessTokenService = Depends(get_access_token_service),
) -> PresignedUrlResponse:
    """
    Issue a download token for a file and return a URL carrying it.

    Issuing replaces any token the file already has.
    """
    duration = timedelta(minutes=body.duration_minutes)
    window = access_token_service.token_window(body.token_type, duration)
    url = await access_token_service.issue_token(file_id, user_id, body.token_type, duration)
    return PresignedUrlResponse(
        presigned_url=url,
        token_type=body.token_type,
        expires_in_seconds=int(window.total_seconds()),
    )


@router.get("/files/{file_id}/download", response_model=DownloadResponse)
async def download_file(
    file_id: str = Path(..., description="Identifier of the file"),
    token: str = Query(..., description="Download token from the presigned URL"),
    user_id: str = Depends(get_current_user),
    access_token_service: AccessTokenService = Depends(get_access_token_service),
) -> DownloadResponse:
    """Validate a download token and return a short-lived URL for the bytes."""
    url = await access_token_service.validate_and_consume(file_id, token, owner_id=user_id)
    return DownloadResponse(
        download_url=url,
        expires_in_seconds=int(access_token_service.download_url_lifetime.total_seconds()),
    )
