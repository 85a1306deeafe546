"""Pydantic schemas for clients and their document requests."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    active: bool = True
    portal_enabled: bool = True
    due_day_of_month: int = Field(default=25, ge=1, le=31)
    due_timezone: str = Field(default="Africa/Johannesburg", max_length=64)


class ClientUpdate(BaseModel):
    """Partial update; only fields that are sent are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    active: bool | None = None
    portal_enabled: bool | None = None
    due_day_of_month: int | None = Field(default=None, ge=1, le=31)
    due_timezone: str | None = Field(default=None, max_length=64)


class ClientRead(BaseModel):
    id: UUID
    name: str
    email: str | None
    active: bool
    portal_enabled: bool
    due_day_of_month: int
    due_timezone: str
    created_at: datetime

    model_config = {"from_attributes": True}


class DocumentRequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    required: bool = True
    sort_order: int = 0
    max_files: int = Field(default=1, ge=1, le=50)
    allowed_mime_types: list[str] | None = None


class DocumentRequestUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    required: bool | None = None
    active: bool | None = None
    sort_order: int | None = None
    max_files: int | None = Field(default=None, ge=1, le=50)
    allowed_mime_types: list[str] | None = None


class DocumentRequestRead(BaseModel):
    id: UUID
    client_id: UUID
    title: str
    description: str | None
    required: bool
    active: bool
    sort_order: int
    max_files: int
    allowed_mime_types: list[str] | None

    model_config = {"from_attributes": True}
