"""
Document schema for file records stored in the metadata collection.
Converts between the pydantic model used by services and the raw Mongo document.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from bson import ObjectId
from pydantic import BaseModel, Field, field_validator


class TokenType(str, Enum):
    """Kinds of download token a file record can carry"""
    ONE_TIME = 'one-time'
    TIME_LIMITED = 'time-limited'


class FileRecord(BaseModel):
    """Metadata of one stored object"""
    id: str = Field(..., description="24-character hex ObjectId of the record")
    filename: str = Field(..., min_length=1, max_length=255, description="Original filename")
    owner: str = Field(..., min_length=1, description="Identity of the uploading user")
    content_type: str = Field("application/octet-stream", description="MIME type of the upload")
    size_bytes: int = Field(0, ge=0, description="Size of the upload in bytes")
    created_at: datetime = Field(..., description="Upload timestamp")
    expires_at: datetime = Field(..., description="Default retention deadline")
    download_token: Optional[str] = Field(None, description="Current opaque access token")
    token_type: Optional[TokenType] = Field(None, description="Kind of the current token")
    token_expires: Optional[datetime] = Field(None, description="Expiry of the current token")
    blob_exists: Optional[bool] = Field(None, description="Storage check result, set by listings only")

    @field_validator('id')
    def id_is_object_id(cls, v):
        if not ObjectId.is_valid(v):
            raise ValueError(f"not a valid ObjectId: {v!r}")
        return v

    @property
    def object_key(self) -> str:
        """Key of the blob holding this record's bytes."""
        return object_key_for(self.id, self.filename)

    def to_document(self) -> Dict[str, Any]:
        """Serialize for insertion. Absent token fields are left out of the document."""
        document = {
            "_id": ObjectId(self.id),
            "filename": self.filename,
            "owner": self.owner,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }
        if self.download_token is not None:
            document["download_token"] = self.download_token
        if self.token_type is not None:
            document["token_type"] = self.token_type.value
        if self.token_expires is not None:
            document["token_expires"] = self.token_expires
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "FileRecord":
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return cls(**data)


def object_key_for(file_id: str, filename: str) -> str:
    return f"{file_id}_{filename}"
