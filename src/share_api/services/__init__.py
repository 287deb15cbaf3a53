"""
Secure Share API Service Layer

Transfer coordination, download token handling and listings. Every service
receives its object store and metadata store at construction.
"""

from .access_token_service import AccessTokenService
from .listing_service import ListingService
from .tokens import new_token
from .transfer_service import TransferService

__all__ = [
    'AccessTokenService',
    'ListingService',
    'TransferService',
    'new_token',
]
