"""Inbox router - staff review of client uploads."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_current_session, get_db, require_csrf_header
from app.db.enums import ReviewDecision
from app.schemas.auth import UserSession
from app.schemas.upload import (
    DenyRequest,
    InboxSessionItem,
    ReviewResponse,
    UploadRead,
    ViewUrlResponse,
)
from app.services import submission_session_service, upload_review_service

router = APIRouter(prefix="/inbox", tags=["inbox"])


def _retention() -> upload_review_service.RetentionPolicy:
    return upload_review_service.RetentionPolicy(
        accepted_days=settings.ACCEPTED_RETENTION_DAYS,
        denied_days=settings.DENIED_RETENTION_DAYS,
        pending_days=settings.PENDING_RETENTION_DAYS,
    )


def _review_response(outcome: upload_review_service.ReviewOutcome) -> ReviewResponse:
    return ReviewResponse(
        upload=UploadRead.model_validate(outcome.upload),
        session_finalized=outcome.session_finalized,
        confirmation_enqueued=outcome.confirmation_enqueued,
    )


@router.get("", response_model=list[InboxSessionItem])
def list_inbox(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Sessions with uploads waiting for review."""
    return upload_review_service.list_inbox_sessions(db, session.org_id)


@router.get("/sessions/{session_id}", response_model=list[UploadRead])
def list_session_uploads(
    session_id: UUID,
    pending_only: bool = True,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    submission_session_service.require_session(db, session.org_id, session_id)
    return upload_review_service.list_session_uploads(
        db, session.org_id, session_id, pending_only=pending_only
    )


@router.post(
    "/uploads/{upload_id}/viewed",
    response_model=UploadRead,
    dependencies=[Depends(require_csrf_header)],
)
def mark_viewed(
    upload_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return upload_review_service.mark_upload_viewed(db, session.org_id, upload_id)


@router.get("/uploads/{upload_id}/view-url", response_model=ViewUrlResponse)
def view_url(
    upload_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Short-lived URL to open the file. Marks the upload as viewed."""
    url = upload_review_service.get_upload_view_url(
        db, session.org_id, upload_id, expires_in=settings.DOWNLOAD_URL_EXPIRY_SECONDS
    )
    return ViewUrlResponse(url=url, expires_in=settings.DOWNLOAD_URL_EXPIRY_SECONDS)


@router.post(
    "/uploads/{upload_id}/accept",
    response_model=ReviewResponse,
    dependencies=[Depends(require_csrf_header)],
)
def accept_upload(
    upload_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    outcome = upload_review_service.review_upload(
        db,
        session.org_id,
        upload_id,
        ReviewDecision.ACCEPTED,
        reviewer_id=session.user_id,
        retention=_retention(),
        base_url=settings.app_base_url or None,
    )
    return _review_response(outcome)


@router.post(
    "/uploads/{upload_id}/deny",
    response_model=ReviewResponse,
    dependencies=[Depends(require_csrf_header)],
)
def deny_upload(
    upload_id: UUID,
    data: DenyRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Deny an upload. A non-empty reason is required."""
    outcome = upload_review_service.review_upload(
        db,
        session.org_id,
        upload_id,
        ReviewDecision.DENIED,
        denial_reason=data.denial_reason,
        reviewer_id=session.user_id,
        retention=_retention(),
        base_url=settings.app_base_url or None,
    )
    return _review_response(outcome)
