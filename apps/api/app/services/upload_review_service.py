"""Upload review state machine and session completion.

Upload: PENDING -> ACCEPTED | DENIED, one way. A denied document is resolved
by a new upload (usually in a replacement session), never by re-reviewing.

Session: OPEN -> FINALIZED once every requested document has a submitted,
non-deleted upload that is pending or accepted. Submission, not acceptance,
completes a session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, StateError, ValidationError
from app.db.enums import (
    AuditEventType,
    OutboxTemplate,
    ReviewDecision,
    SessionStatus,
    UploadStatus,
)
from app.db.models import (
    Client,
    SubmissionSession,
    SubmissionSessionDocument,
    Upload,
    User,
)
from app.services import audit_service, email_outbox_service, storage_service
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

SUBMITTED_STATUSES = (UploadStatus.PENDING.value, UploadStatus.ACCEPTED.value)


@dataclass(frozen=True)
class RetentionPolicy:
    accepted_days: int = 7
    denied_days: int = 30
    pending_days: int = 30

    def deadline(self, status: UploadStatus, start: datetime) -> datetime:
        if status == UploadStatus.ACCEPTED:
            return start + timedelta(days=self.accepted_days)
        if status == UploadStatus.DENIED:
            return start + timedelta(days=self.denied_days)
        return start + timedelta(days=self.pending_days)


@dataclass(frozen=True)
class ReviewOutcome:
    upload: Upload
    session_finalized: bool = False
    confirmation_enqueued: bool = False


# =============================================================================
# Lookups
# =============================================================================

def get_upload(db: Session, org_id: UUID, upload_id: UUID) -> Upload | None:
    return db.scalar(
        select(Upload).where(
            Upload.id == upload_id,
            Upload.organization_id == org_id,
        )
    )


def require_upload(db: Session, org_id: UUID, upload_id: UUID) -> Upload:
    upload = get_upload(db, org_id, upload_id)
    if not upload or upload.deleted_at is not None:
        raise NotFoundError("Upload not found")
    return upload


# =============================================================================
# Completion
# =============================================================================

def session_is_complete(db: Session, session: SubmissionSession) -> bool:
    """
    True when the number of distinct requested documents that have a
    submitted (uploaded_at set), non-deleted, pending-or-accepted upload
    reaches the number of requested documents.
    """
    requested = db.scalar(
        select(func.count(SubmissionSessionDocument.id)).where(
            SubmissionSessionDocument.organization_id == session.organization_id,
            SubmissionSessionDocument.submission_session_id == session.id,
        )
    ) or 0
    if requested == 0:
        return False

    covered = db.scalar(
        select(func.count(func.distinct(Upload.document_request_id))).where(
            Upload.organization_id == session.organization_id,
            Upload.submission_session_id == session.id,
            Upload.deleted_at.is_(None),
            Upload.uploaded_at.is_not(None),
            Upload.status.in_(SUBMITTED_STATUSES),
            Upload.document_request_id.in_(
                select(SubmissionSessionDocument.document_request_id).where(
                    SubmissionSessionDocument.submission_session_id == session.id
                )
            ),
        )
    ) or 0
    return covered >= requested


def _staff_recipient(db: Session, session: SubmissionSession) -> User | None:
    if session.created_by_user_id:
        user = db.get(User, session.created_by_user_id)
        if user and user.is_active and user.organization_id == session.organization_id:
            return user
    return db.scalar(
        select(User)
        .where(User.organization_id == session.organization_id, User.is_active.is_(True))
        .order_by(User.created_at)
        .limit(1)
    )


def finalize_if_complete(
    db: Session, session: SubmissionSession, base_url: str | None = None
) -> bool:
    """
    OPEN -> FINALIZED when complete. Returns True only for the call that made
    the transition; concurrent callers that lose the race see False.
    """
    if session.status != SessionStatus.OPEN.value or not session_is_complete(db, session):
        return False

    result = db.execute(
        update(SubmissionSession)
        .where(
            SubmissionSession.id == session.id,
            SubmissionSession.organization_id == session.organization_id,
            SubmissionSession.status == SessionStatus.OPEN.value,
        )
        .values(status=SessionStatus.FINALIZED.value, finalized_at=utcnow())
    )
    if result.rowcount == 0:
        return False

    db.refresh(session)
    audit_service.log_event(
        db,
        org_id=session.organization_id,
        event_type=AuditEventType.SESSION_FINALIZED,
        target_type="submission_session",
        target_id=session.id,
    )

    staff = _staff_recipient(db, session)
    if staff:
        client = db.get(Client, session.client_id)
        email_outbox_service.enqueue_email(
            db,
            org_id=session.organization_id,
            to_email=staff.email,
            template=OutboxTemplate.SESSION_FINALIZED_NOTIFY,
            payload={
                "clientName": client.name if client else "Client",
                "sessionId": str(session.id),
                "link": f"{base_url.rstrip('/')}/inbox/{session.id}" if base_url else "",
            },
            idempotency_key=f"session_finalized_notify:{session.id}",
            client_id=session.client_id,
            session_id=session.id,
        )
    logger.info("Session %s finalized", session.id)
    return True


def _all_requested_accepted(db: Session, session: SubmissionSession) -> bool:
    counts = dict(
        db.execute(
            select(Upload.status, func.count(Upload.id))
            .where(
                Upload.organization_id == session.organization_id,
                Upload.submission_session_id == session.id,
                Upload.deleted_at.is_(None),
                Upload.uploaded_at.is_not(None),
            )
            .group_by(Upload.status)
        ).all()
    )
    if counts.get(UploadStatus.PENDING.value) or counts.get(UploadStatus.DENIED.value):
        return False

    requested = set(
        db.scalars(
            select(SubmissionSessionDocument.document_request_id).where(
                SubmissionSessionDocument.submission_session_id == session.id
            )
        ).all()
    )
    accepted = set(
        db.scalars(
            select(Upload.document_request_id).where(
                Upload.organization_id == session.organization_id,
                Upload.submission_session_id == session.id,
                Upload.deleted_at.is_(None),
                Upload.status == UploadStatus.ACCEPTED.value,
            )
        ).all()
    )
    return bool(requested) and requested <= accepted


def _maybe_send_accepted_confirmation(db: Session, session: SubmissionSession) -> bool:
    """Queue the one-time "all documents accepted" email, guarded by its stamp."""
    if not _all_requested_accepted(db, session):
        return False

    client = db.get(Client, session.client_id)
    email = (client.email or "").strip() if client else ""
    if not email:
        return False

    result = db.execute(
        update(SubmissionSession)
        .where(
            SubmissionSession.id == session.id,
            SubmissionSession.organization_id == session.organization_id,
            SubmissionSession.accepted_confirmation_sent_at.is_(None),
        )
        .values(accepted_confirmation_sent_at=utcnow())
    )
    if result.rowcount == 0:
        return False

    email_outbox_service.enqueue_email(
        db,
        org_id=session.organization_id,
        to_email=email,
        template=OutboxTemplate.ALL_DOCS_ACCEPTED,
        payload={"clientName": client.name},
        idempotency_key=f"all_docs_accepted:{session.id}",
        client_id=client.id,
        session_id=session.id,
    )
    return True


# =============================================================================
# Transitions
# =============================================================================

def review_upload(
    db: Session,
    org_id: UUID,
    upload_id: UUID,
    decision: ReviewDecision | str,
    *,
    denial_reason: str | None = None,
    reviewer_id: UUID | None = None,
    retention: RetentionPolicy | None = None,
    base_url: str | None = None,
) -> ReviewOutcome:
    """
    Accept or deny a PENDING upload.

    Raises:
        ValidationError: unknown decision or DENIED without a reason
        NotFoundError: upload missing, deleted or owned by another organization
        StateError: upload already reviewed
    """
    try:
        decision = ReviewDecision(decision)
    except ValueError:
        raise ValidationError(f"Invalid review decision: {decision}")

    reason = (denial_reason or "").strip()
    if decision == ReviewDecision.DENIED and not reason:
        raise ValidationError("Denial reason is required")

    retention = retention or RetentionPolicy()
    upload = require_upload(db, org_id, upload_id)
    new_status = UploadStatus.ACCEPTED if decision == ReviewDecision.ACCEPTED else UploadStatus.DENIED
    now = utcnow()

    result = db.execute(
        update(Upload)
        .where(
            Upload.id == upload.id,
            Upload.organization_id == org_id,
            Upload.status == UploadStatus.PENDING.value,
            Upload.deleted_at.is_(None),
        )
        .values(
            status=new_status.value,
            denial_reason=reason if new_status == UploadStatus.DENIED else None,
            reviewed_at=now,
            reviewed_by_user_id=reviewer_id,
            delete_after_at=retention.deadline(new_status, now),
        )
    )
    if result.rowcount == 0:
        raise StateError("Upload has already been reviewed")

    db.refresh(upload)
    audit_service.log_event(
        db,
        org_id=org_id,
        event_type=(
            AuditEventType.UPLOAD_ACCEPTED
            if new_status == UploadStatus.ACCEPTED
            else AuditEventType.UPLOAD_DENIED
        ),
        actor_user_id=reviewer_id,
        target_type="upload",
        target_id=upload.id,
        details={"session_id": str(upload.submission_session_id)},
    )

    finalized = False
    confirmation = False
    if new_status == UploadStatus.ACCEPTED:
        session = db.get(SubmissionSession, upload.submission_session_id)
        if session is not None:
            finalized = finalize_if_complete(db, session, base_url=base_url)
            confirmation = _maybe_send_accepted_confirmation(db, session)

    db.commit()
    db.refresh(upload)
    return ReviewOutcome(
        upload=upload,
        session_finalized=finalized,
        confirmation_enqueued=confirmation,
    )


def complete_upload_submission(
    db: Session, upload: Upload, base_url: str | None = None
) -> tuple[Upload, bool]:
    """
    Stamp uploaded_at (first call only) and finalize the session if this
    submission completes it. Safe to retry.

    Returns (upload, session finalized by this call).
    """
    if upload.deleted_at is not None:
        raise NotFoundError("Upload not found")

    result = db.execute(
        update(Upload)
        .where(
            Upload.id == upload.id,
            Upload.organization_id == upload.organization_id,
            Upload.uploaded_at.is_(None),
        )
        .values(uploaded_at=utcnow())
    )
    if result.rowcount:
        audit_service.log_event(
            db,
            org_id=upload.organization_id,
            event_type=AuditEventType.UPLOAD_COMPLETED,
            target_type="upload",
            target_id=upload.id,
            details={"session_id": str(upload.submission_session_id)},
        )

    finalized = False
    session = db.get(SubmissionSession, upload.submission_session_id)
    if session is not None:
        finalized = finalize_if_complete(db, session, base_url=base_url)

    db.commit()
    db.refresh(upload)
    return upload, finalized


def mark_upload_viewed(db: Session, org_id: UUID, upload_id: UUID) -> Upload:
    """Set viewed_at the first time staff open the upload."""
    upload = require_upload(db, org_id, upload_id)
    db.execute(
        update(Upload)
        .where(
            Upload.id == upload.id,
            Upload.organization_id == org_id,
            Upload.viewed_at.is_(None),
        )
        .values(viewed_at=utcnow())
    )
    db.commit()
    db.refresh(upload)
    return upload


def get_upload_view_url(
    db: Session, org_id: UUID, upload_id: UUID, expires_in: int = 300
) -> str:
    upload = require_upload(db, org_id, upload_id)
    url = storage_service.create_download_url(upload.storage_key, expires_in)
    mark_upload_viewed(db, org_id, upload.id)
    return url


# =============================================================================
# Inbox
# =============================================================================

def list_inbox_sessions(db: Session, org_id: UUID, limit: int = 100) -> list[dict]:
    """Sessions with submitted uploads awaiting review, most recent activity first."""
    stmt = (
        select(
            SubmissionSession.id,
            SubmissionSession.client_id,
            Client.name,
            SubmissionSession.status,
            SubmissionSession.due_on,
            func.count(Upload.id),
            func.count(Upload.id).filter(Upload.viewed_at.is_(None)),
            func.max(Upload.uploaded_at),
        )
        .join(Upload, Upload.submission_session_id == SubmissionSession.id)
        .join(Client, Client.id == SubmissionSession.client_id)
        .where(
            SubmissionSession.organization_id == org_id,
            Upload.organization_id == org_id,
            Upload.status == UploadStatus.PENDING.value,
            Upload.deleted_at.is_(None),
            Upload.uploaded_at.is_not(None),
        )
        .group_by(
            SubmissionSession.id,
            SubmissionSession.client_id,
            Client.name,
            SubmissionSession.status,
            SubmissionSession.due_on,
        )
        .order_by(func.max(Upload.uploaded_at).desc())
        .limit(limit)
    )
    return [
        {
            "session_id": session_id,
            "client_id": client_id,
            "client_name": client_name,
            "status": status,
            "due_on": due_on,
            "pending_count": pending,
            "new_count": new,
            "latest_upload_at": latest,
        }
        for session_id, client_id, client_name, status, due_on, pending, new, latest in db.execute(stmt)
    ]


def list_session_uploads(
    db: Session, org_id: UUID, session_id: UUID, pending_only: bool = True
) -> list[Upload]:
    stmt = select(Upload).where(
        Upload.organization_id == org_id,
        Upload.submission_session_id == session_id,
        Upload.deleted_at.is_(None),
        Upload.uploaded_at.is_not(None),
    )
    if pending_only:
        stmt = stmt.where(Upload.status == UploadStatus.PENDING.value)
    return list(db.scalars(stmt.order_by(Upload.uploaded_at)).all())
