"""Email outbox service - durable, idempotent queue of outbound emails.

Rows are inserted by any component that needs to notify someone and are
delivered later by the dispatcher (see email_dispatch_service).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.enums import EmailStatus, OutboxTemplate
from app.db.models import EmailOutboxEntry
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
RETRY_STEP_MINUTES = 5
MAX_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class EnqueueResult:
    entry_id: UUID | None
    duplicate: bool


def enqueue_email(
    db: Session,
    *,
    org_id: UUID,
    to_email: str,
    template: OutboxTemplate,
    payload: dict[str, Any],
    idempotency_key: str,
    client_id: UUID | None = None,
    session_id: UUID | None = None,
    run_after: datetime | None = None,
) -> EnqueueResult:
    """
    Queue an email unless one with the same idempotency key already exists.

    A key collision (including a concurrent insert) is success with
    duplicate=True. Flushes but does not commit.
    """
    existing_id = db.scalar(
        select(EmailOutboxEntry.id).where(EmailOutboxEntry.idempotency_key == idempotency_key)
    )
    if existing_id:
        return EnqueueResult(entry_id=existing_id, duplicate=True)

    entry = EmailOutboxEntry(
        organization_id=org_id,
        client_id=client_id,
        submission_session_id=session_id,
        to_email=to_email,
        template=template.value,
        payload=payload,
        idempotency_key=idempotency_key,
        run_after=run_after or utcnow(),
        status=EmailStatus.PENDING.value,
        attempt_count=0,
    )
    try:
        with db.begin_nested():
            db.add(entry)
            db.flush()
    except IntegrityError:
        logger.info("Outbox idempotency key already queued: %s", idempotency_key)
        return EnqueueResult(entry_id=None, duplicate=True)
    return EnqueueResult(entry_id=entry.id, duplicate=False)


def claim_pending_emails(db: Session, limit: int = 25) -> list[EmailOutboxEntry]:
    """
    Pending rows whose run_after has passed, oldest first.

    Uses SKIP LOCKED where the backend supports it so overlapping
    dispatchers do not pick the same rows.
    """
    stmt = (
        select(EmailOutboxEntry)
        .where(
            EmailOutboxEntry.status == EmailStatus.PENDING.value,
            EmailOutboxEntry.run_after <= utcnow(),
        )
        .order_by(EmailOutboxEntry.run_after)
        .limit(max(1, limit))
    )
    if db.get_bind().dialect.name == "postgresql":
        stmt = stmt.with_for_update(skip_locked=True)
    return list(db.scalars(stmt).all())


def mark_email_sent(db: Session, entry: EmailOutboxEntry) -> EmailOutboxEntry:
    now = utcnow()
    entry.status = EmailStatus.SENT.value
    entry.sent_at = now
    entry.last_error = None
    db.commit()
    db.refresh(entry)
    return entry


def mark_email_failed(
    db: Session,
    entry: EmailOutboxEntry,
    error: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> EmailOutboxEntry:
    """
    Record a failed attempt.

    Reschedules with linear backoff (attempts x 5 minutes) until
    max_attempts, then marks the row failed.
    """
    attempts = (entry.attempt_count or 0) + 1
    entry.attempt_count = attempts
    entry.last_error = (error or "Send failed")[:MAX_ERROR_LENGTH]
    entry.status = (
        EmailStatus.FAILED.value if attempts >= max_attempts else EmailStatus.PENDING.value
    )
    entry.run_after = utcnow() + timedelta(minutes=attempts * RETRY_STEP_MINUTES)
    db.commit()
    db.refresh(entry)
    return entry


def list_outbox_for_session(
    db: Session, org_id: UUID, session_id: UUID
) -> list[EmailOutboxEntry]:
    return list(
        db.scalars(
            select(EmailOutboxEntry)
            .where(
                EmailOutboxEntry.organization_id == org_id,
                EmailOutboxEntry.submission_session_id == session_id,
            )
            .order_by(EmailOutboxEntry.created_at)
        ).all()
    )


def cancel_pending_for_session(db: Session, org_id: UUID, session_id: UUID) -> int:
    """Fail any still-pending emails for a session that was expired."""
    result = db.execute(
        update(EmailOutboxEntry)
        .where(
            EmailOutboxEntry.organization_id == org_id,
            EmailOutboxEntry.submission_session_id == session_id,
            EmailOutboxEntry.status == EmailStatus.PENDING.value,
        )
        .values(status=EmailStatus.FAILED.value, last_error="Session expired")
    )
    return result.rowcount
