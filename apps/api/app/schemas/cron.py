"""Response models for scheduled (cron) endpoints."""

from datetime import date

from pydantic import BaseModel


class MonthlySessionsResponse(BaseModel):
    ok: bool = True
    created: int = 0
    enqueued: int = 0
    skipped: int | bool = 0
    reason: str | None = None
    today: date | None = None


class RemindersResponse(BaseModel):
    ok: bool = True
    processed: int
    enqueued: int
    skipped: int
    failed: int
    today: date
    target_due_on: date


class EmailDispatchResponse(BaseModel):
    ok: bool = True
    processed: int
    sent: int
    failed: int


class CleanupResponse(BaseModel):
    ok: bool = True
    deleted: int
