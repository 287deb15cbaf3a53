"""FastAPI dependencies: caller identity and the services held on app state."""

from fastapi import HTTPException, Request, status

from share_api.services import AccessTokenService, ListingService, TransferService
from share_api.settings import Settings


def get_current_user(request: Request) -> str:
    """
    Identity verified upstream by the auth gateway.

    The gateway authenticates the caller and forwards the user id in the
    configured identity header.
    """
    settings: Settings = request.app.state.settings
    user_id = request.headers.get(settings.identity_header, "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authenticated user",
        )
    return user_id


def get_transfer_service(request: Request) -> TransferService:
    return request.app.state.transfer_service


def get_access_token_service(request: Request) -> AccessTokenService:
    return request.app.state.access_token_service


def get_listing_service(request: Request) -> ListingService:
    return request.app.state.listing_service
