"""Sessions router - manual request links, expiry and replacement sessions."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_current_session, get_db, require_csrf_header
from app.db.enums import SentVia
from app.db.models import SubmissionSession
from app.schemas.auth import UserSession
from app.schemas.submission_session import SessionCreate, SessionCreateResponse, SessionRead
from app.services import client_service, submission_session_service

router = APIRouter(tags=["sessions"])


def to_session_read(db: Session, session: SubmissionSession) -> SessionRead:
    return SessionRead(
        id=session.id,
        client_id=session.client_id,
        request_template_id=session.request_template_id,
        replaces_session_id=session.replaces_session_id,
        status=session.status,
        opened_at=session.opened_at,
        due_on=session.due_on,
        finalized_at=session.finalized_at,
        expires_at=session.expires_at,
        sent_via=session.sent_via,
        reminder_14d_sent_at=session.reminder_14d_sent_at,
        accepted_confirmation_sent_at=session.accepted_confirmation_sent_at,
        document_request_ids=submission_session_service.requested_document_ids(db, session),
    )


def _link(token: str) -> str | None:
    if not settings.app_base_url:
        return None
    return submission_session_service.portal_link(settings.app_base_url, token)


@router.get("/clients/{client_id}/sessions", response_model=list[SessionRead])
def list_sessions(
    client_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client_service.require_client(db, session.org_id, client_id)
    return [
        to_session_read(db, s)
        for s in submission_session_service.list_sessions_for_client(db, session.org_id, client_id)
    ]


@router.post(
    "/clients/{client_id}/sessions",
    response_model=SessionCreateResponse,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_request_link(
    client_id: UUID,
    data: SessionCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Create a free-form request link for the selected documents.

    Other open sessions for the client are left open.
    """
    client = client_service.require_client(db, session.org_id, client_id)
    created = submission_session_service.create_session(
        db,
        client=client,
        document_request_ids=data.document_request_ids,
        sent_via=SentVia.MANUAL,
        due_day=data.due_day_of_month,
        due_on=data.due_on,
        created_by_user_id=session.user_id,
    )
    enqueued = False
    if data.send_email and client.email:
        enqueued = submission_session_service.send_request_link(
            db, created, client, settings.app_base_url
        )
    return SessionCreateResponse(
        session=to_session_read(db, created),
        public_token=created.public_token,
        link=_link(created.public_token),
        email_enqueued=enqueued,
    )


@router.post(
    "/sessions/{session_id}/expire",
    response_model=SessionRead,
    dependencies=[Depends(require_csrf_header)],
)
def expire_session(
    session_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    expired = submission_session_service.expire_session(
        db, session.org_id, session_id, actor_user_id=session.user_id
    )
    return to_session_read(db, expired)


@router.post(
    "/sessions/{session_id}/replacement",
    response_model=SessionCreateResponse,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_replacement(
    session_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Open a new session asking again for the denied documents."""
    replacement, enqueued = submission_session_service.create_replacement_session(
        db,
        session.org_id,
        session_id,
        base_url=settings.app_base_url,
        actor_user_id=session.user_id,
    )
    return SessionCreateResponse(
        session=to_session_read(db, replacement),
        public_token=replacement.public_token,
        link=_link(replacement.public_token),
        email_enqueued=enqueued,
    )
