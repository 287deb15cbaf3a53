"""
Adapter layer for the Secure Share API.

Contains the bucket-bound object store used for file bytes. The metadata
store lives in the top-level ``database`` package.
"""

from .storage import ObjectStore, create_s3_client

__all__ = ['ObjectStore', 'create_s3_client']
