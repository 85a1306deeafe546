"""14-day due reminders.

For OPEN sessions due exactly 14 days after `today` that have not been
reminded yet. The reminder stamp is claimed with a conditional update before
the email is queued, in the same transaction, so a failure leaves the
session unstamped for the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.db.enums import OutboxTemplate, SessionStatus
from app.db.models import Client, SubmissionSession
from app.services import email_outbox_service, submission_session_service
from app.services.upload_review_service import session_is_complete
from app.utils.due_dates import add_days
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

REMINDER_LEAD_DAYS = 14


@dataclass
class ReminderRunResult:
    today: date
    target_due_on: date
    processed: int = 0
    enqueued: int = 0
    skipped: int = 0
    failed: int = 0


def _claim_reminder(db: Session, session: SubmissionSession) -> bool:
    """Stamp reminder_14d_sent_at if still NULL. False means another run got it."""
    result = db.execute(
        update(SubmissionSession)
        .where(
            SubmissionSession.id == session.id,
            SubmissionSession.organization_id == session.organization_id,
            SubmissionSession.reminder_14d_sent_at.is_(None),
        )
        .values(reminder_14d_sent_at=utcnow())
    )
    return result.rowcount == 1


def _process_session(
    db: Session, session: SubmissionSession, base_url: str, result: ReminderRunResult
) -> None:
    claimed = _claim_reminder(db, session)
    if not claimed:
        db.rollback()
        result.skipped += 1
        return

    if session_is_complete(db, session):
        db.commit()
        result.skipped += 1
        return

    # A 14-day lead for due days 1..14 lands in the previous month; suppressed.
    if session.due_on.day <= REMINDER_LEAD_DAYS:
        db.commit()
        result.skipped += 1
        return

    client = db.scalar(
        select(Client).where(
            Client.id == session.client_id,
            Client.organization_id == session.organization_id,
        )
    )
    email = (client.email or "").strip() if client else ""
    if not email:
        db.commit()
        result.skipped += 1
        return

    email_outbox_service.enqueue_email(
        db,
        org_id=session.organization_id,
        to_email=email,
        template=OutboxTemplate.DUE_REMINDER_14D,
        payload={
            "clientName": client.name,
            "link": submission_session_service.portal_link(base_url, session.public_token),
            "dueOn": session.due_on.isoformat(),
        },
        idempotency_key=f"due_reminder_14d:{session.id}",
        client_id=client.id,
        session_id=session.id,
    )
    db.commit()
    result.enqueued += 1


def run_due_reminders(
    db: Session,
    *,
    today: date,
    base_url: str,
    limit: int = 500,
) -> ReminderRunResult:
    target = add_days(today, REMINDER_LEAD_DAYS)
    result = ReminderRunResult(today=today, target_due_on=target)

    sessions = db.scalars(
        select(SubmissionSession)
        .where(
            SubmissionSession.status == SessionStatus.OPEN.value,
            SubmissionSession.reminder_14d_sent_at.is_(None),
            SubmissionSession.due_on == target,
        )
        .order_by(SubmissionSession.opened_at)
        .limit(max(1, limit))
    ).all()

    for session in sessions:
        result.processed += 1
        try:
            _process_session(db, session, base_url, result)
        except Exception:
            db.rollback()
            logger.exception("Reminder failed for session %s", session.id)
            result.failed += 1

    logger.info(
        "Reminder run %s (due %s): processed=%d enqueued=%d skipped=%d failed=%d",
        today.isoformat(),
        target.isoformat(),
        result.processed,
        result.enqueued,
        result.skipped,
        result.failed,
    )
    return result
