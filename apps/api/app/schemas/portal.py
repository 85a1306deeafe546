"""Pydantic schemas for the public (token) portal."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.upload import UploadRead


class PortalUploadState(BaseModel):
    id: UUID
    original_filename: str
    status: str
    denial_reason: str | None
    uploaded: bool


class PortalDocument(BaseModel):
    id: UUID
    title: str
    description: str | None
    required: bool
    max_files: int
    allowed_mime_types: list[str] | None
    uploads: list[PortalUploadState] = Field(default_factory=list)


class PortalInfo(BaseModel):
    client_name: str
    status: str
    due_on: date
    documents: list[PortalDocument]


class PortalUploadCreate(BaseModel):
    document_request_id: UUID
    filename: str = Field(min_length=1, max_length=255)
    mime_type: str | None = Field(default=None, max_length=100)
    size_bytes: int | None = Field(default=None, ge=0)


class PortalUploadCreateResponse(BaseModel):
    ok: bool = True
    upload: UploadRead
    signed_url: str


class PortalSessionState(BaseModel):
    id: UUID
    finalized: bool


class PortalUploadCompleteResponse(BaseModel):
    ok: bool = True
    upload: UploadRead
    session: PortalSessionState
