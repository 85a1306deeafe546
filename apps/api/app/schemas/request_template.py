"""Pydantic schemas for recurring request templates."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class RequestTemplateSave(BaseModel):
    """Create or full-replace payload. The document set replaces the existing one."""

    name: str = Field(min_length=1, max_length=255)
    enabled: bool = True
    silent_auto_send: bool = False
    start_next_month: bool = False
    due_day_of_month: int | None = Field(default=None, ge=1, le=31)
    document_request_ids: list[UUID] = Field(default_factory=list)


class RequestTemplateEnabled(BaseModel):
    enabled: bool


class RequestTemplateRead(BaseModel):
    id: UUID
    client_id: UUID
    name: str
    enabled: bool
    frequency: str
    silent_auto_send: bool
    start_next_month: bool
    due_day_of_month: int | None
    document_request_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime
