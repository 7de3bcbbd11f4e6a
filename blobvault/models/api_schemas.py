"""Pydantic models for values handed to the HTTP layer and other collaborators."""
from typing import Optional, Set
from pydantic import BaseModel, Field, computed_field


class StoragePointer(BaseModel):
    """A resolved location of a blob's bytes. Never persisted."""

    kind: str = "storage"

    hash: str
    """sha256 of the blob"""

    type: Optional[str] = None
    """MIME type, from the index or derived by the backend"""

    size: int
    """Size in bytes"""


class BlobInfo(BaseModel):
    """A blob row joined with the set of its owners."""

    sha256: str
    type: Optional[str] = None
    size: int
    uploaded: int
    owners: Set[str] = Field(default_factory=set)
    url: Optional[str] = None
    """Where the blob is served, filled in by the HTTP layer"""

    @computed_field
    @property
    def id(self) -> str:
        return self.sha256


class UserInfo(BaseModel):
    """A public key and the set of blobs it owns."""

    pubkey: str
    blobs: Set[str] = Field(default_factory=set)

    @computed_field
    @property
    def id(self) -> str:
        return self.pubkey


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
