"""
MongoDB adapter for file record documents.
Thin wrapper over a single pymongo collection exposing the operations the services need.
"""

import os
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import ConnectionFailure

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "secure_files"
DEFAULT_COLLECTION = "files"


class MongoAdapter:
    """MongoDB adapter for file record operations"""

    def __init__(
        self,
        connection_string: Optional[str] = None,
        database: str = DEFAULT_DATABASE,
        collection: str = DEFAULT_COLLECTION,
        timeout_seconds: float = 10.0,
        client: Optional[MongoClient] = None,
    ):
        self.connection_string = connection_string or os.getenv('MONGODB_URI')
        if client is None and not self.connection_string:
            raise ValueError("MongoDB connection string required. Set MONGODB_URI environment variable or pass connection_string")

        self.database_name = database
        self.collection_name = collection
        self.timeout_ms = int(timeout_seconds * 1000)
        self.client = client
        self.collection = None
        self._connect()

    def _connect(self) -> None:
        """Create the client lazily; pymongo connects on first operation"""
        if self.client is None:
            # timeoutMS bounds each whole operation in the driver, so a call
            # abandoned by the service ends within the same window
            self.client = MongoClient(
                self.connection_string,
                tz_aware=True,
                timeoutMS=self.timeout_ms,
                serverSelectionTimeoutMS=self.timeout_ms,
                connectTimeoutMS=self.timeout_ms,
            )
        self.collection = self.client[self.database_name][self.collection_name]
        logger.info(f"Using MongoDB collection: {self.database_name}.{self.collection_name}")

    def ping(self) -> bool:
        """Check the server answers"""
        try:
            self.client.admin.command('ping')
            return True
        except ConnectionFailure as e:
            logger.error(f"MongoDB ping failed: {e}")
            return False

    def init_collections(self) -> None:
        """Create indexes used by ownership lookups and listings"""
        try:
            self.collection.create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
            self.collection.create_index([("download_token", ASCENDING)], sparse=True)
            logger.info(f"Indexes initialized on {self.collection_name}")
        except Exception as e:
            logger.error(f"Error initializing MongoDB indexes: {e}")
            raise

    def insert_one(self, document: Dict[str, Any]) -> Any:
        result = self.collection.insert_one(document)
        logger.debug(f"Inserted document {result.inserted_id}")
        return result.inserted_id

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.collection.find_one(query)

    def find_many(
        self,
        query: Dict[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.collection.find(query)
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def update_one(self, query: Dict[str, Any], patch: Dict[str, Any]) -> int:
        """Apply an update document; returns how many documents matched"""
        result = self.collection.update_one(query, patch)
        return result.matched_count

    def delete_one(self, query: Dict[str, Any]) -> int:
        result = self.collection.delete_one(query)
        if result.deleted_count == 0:
            logger.warning(f"No document found to delete for query: {query}")
        return result.deleted_count

    def distinct_ids(self) -> List[str]:
        """All record ids as hex strings"""
        return [str(_id) for _id in self.collection.distinct("_id")]

    def close(self) -> None:
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")
