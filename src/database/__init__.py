"""
Metadata store for the Secure Share API.

Holds the file record document schema and the MongoDB adapter used to persist it.
"""

from .mongo_adapter import MongoAdapter
from .schemas import FileRecord, TokenType, object_key_for

__all__ = ['MongoAdapter', 'FileRecord', 'TokenType', 'object_key_for']
