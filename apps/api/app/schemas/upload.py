"""Pydantic schemas for uploads, staff review and the inbox."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class UploadRead(BaseModel):
    id: UUID
    submission_session_id: UUID
    document_request_id: UUID
    original_filename: str
    mime_type: str | None
    size_bytes: int | None
    status: str
    denial_reason: str | None
    uploaded_at: datetime | None
    viewed_at: datetime | None
    reviewed_at: datetime | None
    delete_after_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class DenyRequest(BaseModel):
    denial_reason: str = Field(default="", max_length=2000)


class ReviewResponse(BaseModel):
    ok: bool = True
    upload: UploadRead
    session_finalized: bool
    confirmation_enqueued: bool


class InboxSessionItem(BaseModel):
    session_id: UUID
    client_id: UUID
    client_name: str
    status: str
    due_on: date
    pending_count: int
    new_count: int
    latest_upload_at: datetime | None


class ViewUrlResponse(BaseModel):
    url: str
    expires_in: int
