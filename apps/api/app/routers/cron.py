"""
Scheduled endpoints (monthly sessions, 14-day reminders, email dispatch,
retention cleanup).

Protected by the shared cron secret (?secret= or X-Cron-Secret header).
Call from an external scheduler once a day (dispatch more often).
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_db, require_cron_secret
from app.schemas.cron import (
    CleanupResponse,
    EmailDispatchResponse,
    MonthlySessionsResponse,
    RemindersResponse,
)
from app.services import (
    email_dispatch_service,
    monthly_scheduler_service,
    reminder_service,
    retention_service,
)
from app.utils.due_dates import parse_iso_date, today_in_timezone


router = APIRouter(tags=["cron"], dependencies=[Depends(require_cron_secret)])


def _resolve_today(raw: str | None) -> date:
    """Literal YYYY-MM-DD override, else today in the scheduler timezone."""
    if raw:
        parsed = parse_iso_date(raw)
        if parsed is None:
            raise HTTPException(status_code=400, detail="today must be YYYY-MM-DD")
        return parsed
    return today_in_timezone(settings.SCHEDULER_TIMEZONE)


def _require_base_url() -> str:
    if not settings.app_base_url:
        raise HTTPException(status_code=500, detail="APP_BASE_URL not configured")
    return settings.app_base_url


@router.post("/cron/monthly-sessions", response_model=MonthlySessionsResponse)
def monthly_sessions(
    today: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """Open this month's auto sessions. Only acts on the 1st."""
    run_date = _resolve_today(today)
    if run_date.day != 1:
        return MonthlySessionsResponse(skipped=True, reason="Not the 1st", today=run_date)

    result = monthly_scheduler_service.run_monthly_sessions(
        db,
        today=run_date,
        base_url=_require_base_url(),
        limit=settings.MONTHLY_BATCH_LIMIT,
    )
    return MonthlySessionsResponse(
        created=result.created,
        enqueued=result.enqueued,
        skipped=result.skipped,
        today=run_date,
    )


@router.post("/cron/reminders-14d", response_model=RemindersResponse)
def reminders_14d(
    today: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """Queue reminders for open sessions due in exactly 14 days."""
    run_date = _resolve_today(today)
    result = reminder_service.run_due_reminders(
        db,
        today=run_date,
        base_url=_require_base_url(),
        limit=settings.REMINDER_BATCH_LIMIT,
    )
    return RemindersResponse(
        processed=result.processed,
        enqueued=result.enqueued,
        skipped=result.skipped,
        failed=result.failed,
        today=result.today,
        target_due_on=result.target_due_on,
    )


@router.post("/email/dispatch", response_model=EmailDispatchResponse)
async def dispatch_emails(
    limit: int | None = Query(default=None, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Deliver due outbox emails."""
    config = email_dispatch_service.DeliveryConfig(
        api_key=settings.RESEND_API_KEY,
        from_email=settings.EMAIL_FROM,
        dry_run=settings.ENV == "dev",
        max_attempts=settings.EMAIL_MAX_ATTEMPTS,
    )
    result = await email_dispatch_service.dispatch_pending_emails(
        db, config, limit=limit or settings.EMAIL_DISPATCH_DEFAULT_LIMIT
    )
    return EmailDispatchResponse(
        processed=result.processed, sent=result.sent, failed=result.failed
    )


@router.post("/internal/cleanup/expired-uploads", response_model=CleanupResponse)
def cleanup_expired_uploads(db: Session = Depends(get_db)):
    """Delete stored files past their retention deadline."""
    deleted = retention_service.purge_expired_uploads(db, batch_size=settings.CLEANUP_BATCH_SIZE)
    return CleanupResponse(deleted=deleted)
