"""Pydantic schemas for submission sessions."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class SessionCreate(BaseModel):
    """Manual free-form request link."""

    document_request_ids: list[UUID] = Field(min_length=1)
    due_day_of_month: int | None = Field(default=None, ge=1, le=31)
    due_on: date | None = None
    send_email: bool = True


class SessionRead(BaseModel):
    id: UUID
    client_id: UUID
    request_template_id: UUID | None
    replaces_session_id: UUID | None
    status: str
    opened_at: datetime
    due_on: date
    finalized_at: datetime | None
    expires_at: datetime | None
    sent_via: str
    reminder_14d_sent_at: datetime | None
    accepted_confirmation_sent_at: datetime | None
    document_request_ids: list[UUID] = Field(default_factory=list)


class SessionCreateResponse(BaseModel):
    session: SessionRead
    public_token: str
    link: str | None
    email_enqueued: bool = False
