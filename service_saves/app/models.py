"""
Pydantic models for the Save Files Service.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthenticatedUser(BaseModel):
    """Caller identity resolved from a bearer token."""

    id: str
    email: Optional[str] = None
    access_token: str = Field(repr=False)


class SaveFileMetadata(BaseModel):
    """One row of a user's save listing."""

    model_config = ConfigDict(extra="allow")

    id: Any
    file_name: str
    size_bytes: Optional[int] = None
    version: Optional[str] = None
    custom_metadata: Optional[Dict[str, Any]] = None
    updated_at: Optional[str] = None


class UploadResponse(BaseModel):
    message: str
    data: Dict[str, Any]


class MessageResponse(BaseModel):
    message: str


SaveListing = List[Dict[str, Any]]
