"""Submission session store.

A session is one collection round: a fixed set of requested documents, a
concrete due date and an unguessable public token. At most one OPEN session
may exist per (client, template); free-form sessions are not constrained and
creating one never expires other open sessions.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    ConflictError,
    NotFoundError,
    StateError,
    TransientInfraError,
    ValidationError,
)
from app.core.security import generate_portal_token
from app.db.enums import AuditEventType, OutboxTemplate, SentVia, SessionStatus, UploadStatus
from app.db.models import (
    Client,
    DocumentRequest,
    RequestTemplate,
    SubmissionSession,
    SubmissionSessionDocument,
    Upload,
)
from app.services import audit_service, email_outbox_service
from app.utils.due_dates import next_due_date, today_in_timezone
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class SessionDocumentsError(TransientInfraError):
    """Session row was written but its document rows were not; the session was expired."""

    def __init__(self, message: str, session_id: UUID):
        super().__init__(message)
        self.session_id = session_id


def portal_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/portal/{token}"


def resolve_due_day(
    override: int | None,
    template: RequestTemplate | None,
    client: Client,
) -> int:
    """Effective due day: session override, else template, else client default."""
    if override is not None:
        return override
    if template is not None and template.due_day_of_month is not None:
        return template.due_day_of_month
    return client.due_day_of_month


def validate_document_requests(
    db: Session, client: Client, document_request_ids: Iterable[UUID | str]
) -> list[UUID]:
    """
    Return the ids (deduplicated, order kept) if all are active documents of
    this client; otherwise raise ValidationError listing the offending ids.
    """
    ordered: list[UUID] = []
    invalid: list[str] = []
    for raw in document_request_ids:
        try:
            doc_id = raw if isinstance(raw, UUID) else UUID(str(raw))
        except ValueError:
            invalid.append(str(raw))
            continue
        if doc_id not in ordered:
            ordered.append(doc_id)

    if not ordered and not invalid:
        raise ValidationError("Select at least one document")

    if ordered:
        valid = set(
            db.scalars(
                select(DocumentRequest.id).where(
                    DocumentRequest.organization_id == client.organization_id,
                    DocumentRequest.client_id == client.id,
                    DocumentRequest.active.is_(True),
                    DocumentRequest.id.in_(ordered),
                )
            ).all()
        )
        invalid.extend(str(doc_id) for doc_id in ordered if doc_id not in valid)

    if invalid:
        raise ValidationError(
            f"Invalid or inactive document requests: {', '.join(invalid)}",
            invalid_ids=invalid,
        )
    return ordered


def has_open_template_session(
    db: Session, org_id: UUID, client_id: UUID, template_id: UUID
) -> bool:
    return (
        db.scalar(
            select(SubmissionSession.id).where(
                SubmissionSession.organization_id == org_id,
                SubmissionSession.client_id == client_id,
                SubmissionSession.request_template_id == template_id,
                SubmissionSession.status == SessionStatus.OPEN.value,
            )
        )
        is not None
    )


def create_session(
    db: Session,
    *,
    client: Client,
    document_request_ids: Iterable[UUID | str],
    sent_via: SentVia,
    template: RequestTemplate | None = None,
    due_day: int | None = None,
    due_on: date | None = None,
    today: date | None = None,
    created_by_user_id: UUID | None = None,
    replaces_session_id: UUID | None = None,
    expire_on_link_failure: bool = False,
    commit: bool = True,
) -> SubmissionSession:
    """
    Open a new session for `client` requesting `document_request_ids`.

    due_on, when given, wins over the computed date. Otherwise the effective
    due day is resolved (override, template, client) and turned into the next
    due date relative to `today` (default: today in the client's timezone).

    The session row and its document rows are written together. If the
    document rows fail, the whole write is rolled back, or, with
    expire_on_link_failure, the session is kept as EXPIRED and
    SessionDocumentsError is raised.

    Raises:
        ValidationError: unknown/inactive/foreign document ids
        ConflictError: an OPEN session already exists for (client, template)
    """
    doc_ids = validate_document_requests(db, client, document_request_ids)

    if template is not None and has_open_template_session(
        db, client.organization_id, client.id, template.id
    ):
        raise ConflictError("An open session already exists for this template")

    if due_on is None:
        effective_day = resolve_due_day(due_day, template, client)
        reference = today or today_in_timezone(client.due_timezone)
        due_on = next_due_date(effective_day, reference)

    now = utcnow()
    session = SubmissionSession(
        organization_id=client.organization_id,
        client_id=client.id,
        request_template_id=template.id if template is not None else None,
        replaces_session_id=replaces_session_id,
        created_by_user_id=created_by_user_id,
        status=SessionStatus.OPEN.value,
        public_token=generate_portal_token(),
        opened_at=now,
        due_on=due_on,
        sent_via=sent_via.value,
    )
    try:
        with db.begin_nested():
            db.add(session)
            db.flush()
    except IntegrityError as exc:
        raise ConflictError("An open session already exists for this template") from exc

    try:
        with db.begin_nested():
            for position, doc_id in enumerate(doc_ids):
                db.add(
                    SubmissionSessionDocument(
                        organization_id=client.organization_id,
                        client_id=client.id,
                        submission_session_id=session.id,
                        document_request_id=doc_id,
                        position=position,
                    )
                )
            db.flush()
    except SQLAlchemyError as exc:
        if not expire_on_link_failure:
            with db.begin_nested():
                db.delete(session)
            raise TransientInfraError("Could not save requested documents") from exc
        session.status = SessionStatus.EXPIRED.value
        session.expires_at = utcnow()
        db.commit()
        logger.error("Session %s expired: document rows failed to insert", session.id)
        raise SessionDocumentsError("Could not save requested documents", session.id) from exc

    audit_service.log_event(
        db,
        org_id=client.organization_id,
        event_type=AuditEventType.SESSION_CREATED,
        actor_user_id=created_by_user_id,
        target_type="submission_session",
        target_id=session.id,
        details={
            "sent_via": sent_via.value,
            "template_id": str(template.id) if template is not None else None,
            "documents": len(doc_ids),
            "due_on": due_on.isoformat(),
        },
    )
    if commit:
        db.commit()
        db.refresh(session)
    return session


# =============================================================================
# Reads
# =============================================================================

def get_session(db: Session, org_id: UUID, session_id: UUID) -> SubmissionSession | None:
    return db.scalar(
        select(SubmissionSession).where(
            SubmissionSession.id == session_id,
            SubmissionSession.organization_id == org_id,
        )
    )


def require_session(db: Session, org_id: UUID, session_id: UUID) -> SubmissionSession:
    session = get_session(db, org_id, session_id)
    if not session:
        raise NotFoundError("Session not found")
    return session


def list_sessions_for_client(
    db: Session, org_id: UUID, client_id: UUID, status: SessionStatus | None = None
) -> list[SubmissionSession]:
    stmt = select(SubmissionSession).where(
        SubmissionSession.organization_id == org_id,
        SubmissionSession.client_id == client_id,
    )
    if status is not None:
        stmt = stmt.where(SubmissionSession.status == status.value)
    return list(db.scalars(stmt.order_by(SubmissionSession.opened_at.desc())).all())


def requested_document_ids(db: Session, session: SubmissionSession) -> list[UUID]:
    """Documents the session asks for, in the order they were requested."""
    return list(
        db.scalars(
            select(SubmissionSessionDocument.document_request_id)
            .where(
                SubmissionSessionDocument.organization_id == session.organization_id,
                SubmissionSessionDocument.submission_session_id == session.id,
            )
            .order_by(SubmissionSessionDocument.position)
        ).all()
    )


def get_session_by_token(
    db: Session, token: str, allow_finalized: bool = False
) -> SubmissionSession:
    """
    Resolve a portal token to its OPEN session (or FINALIZED, when allowed,
    so completion callbacks stay retryable).

    Missing and closed sessions raise NotFoundError with the same message so
    callers cannot tell them apart.
    """
    usable = {SessionStatus.OPEN.value}
    if allow_finalized:
        usable.add(SessionStatus.FINALIZED.value)
    session = None
    if token:
        session = db.scalar(
            select(SubmissionSession).where(SubmissionSession.public_token == token)
        )
    if not session or session.status not in usable:
        raise NotFoundError("Link not found")
    return session


# =============================================================================
# Transitions
# =============================================================================

def expire_session(
    db: Session, org_id: UUID, session_id: UUID, actor_user_id: UUID | None = None
) -> SubmissionSession:
    """OPEN -> EXPIRED. Pending outbox emails for the session are failed."""
    session = require_session(db, org_id, session_id)
    result = db.execute(
        update(SubmissionSession)
        .where(
            SubmissionSession.id == session.id,
            SubmissionSession.organization_id == org_id,
            SubmissionSession.status == SessionStatus.OPEN.value,
        )
        .values(status=SessionStatus.EXPIRED.value, expires_at=utcnow())
    )
    if result.rowcount == 0:
        raise StateError("Only open sessions can be expired")

    cancelled = email_outbox_service.cancel_pending_for_session(db, org_id, session.id)
    audit_service.log_event(
        db,
        org_id=org_id,
        event_type=AuditEventType.SESSION_EXPIRED,
        actor_user_id=actor_user_id,
        target_type="submission_session",
        target_id=session.id,
        details={"cancelled_emails": cancelled},
    )
    db.commit()
    db.refresh(session)
    return session


def denied_document_ids(db: Session, session: SubmissionSession) -> list[UUID]:
    """Requested documents whose only reviewed outcome in this session is a denial."""
    rows = db.execute(
        select(Upload.document_request_id, Upload.status).where(
            Upload.organization_id == session.organization_id,
            Upload.submission_session_id == session.id,
            Upload.deleted_at.is_(None),
        )
    ).all()
    denied = {doc_id for doc_id, status in rows if status == UploadStatus.DENIED.value}
    accepted = {doc_id for doc_id, status in rows if status == UploadStatus.ACCEPTED.value}
    order = requested_document_ids(db, session)
    return [doc_id for doc_id in order if doc_id in denied and doc_id not in accepted]


def send_request_link(
    db: Session,
    session: SubmissionSession,
    client: Client,
    base_url: str,
    template_name: str | None = None,
) -> bool:
    """Queue the manual request-link email for a session. Returns True if queued."""
    email = (client.email or "").strip()
    if not email:
        raise ValidationError("Client has no email address")
    if not base_url:
        raise TransientInfraError("APP_BASE_URL is not configured")

    payload = {
        "clientName": client.name,
        "link": portal_link(base_url, session.public_token),
        "templateName": template_name,
        "sentVia": session.sent_via,
        "dueOn": session.due_on.isoformat(),
    }
    result = email_outbox_service.enqueue_email(
        db,
        org_id=session.organization_id,
        to_email=email,
        template=OutboxTemplate.MANUAL_REQUEST_LINK,
        payload=payload,
        idempotency_key=f"manual_request_link:{session.id}",
        client_id=client.id,
        session_id=session.id,
    )
    if not result.duplicate:
        session.request_sent_at = utcnow()
    db.commit()
    return not result.duplicate


def create_replacement_session(
    db: Session,
    org_id: UUID,
    session_id: UUID,
    *,
    base_url: str,
    actor_user_id: UUID | None = None,
    today: date | None = None,
) -> tuple[SubmissionSession, bool]:
    """
    Open a manual session requesting exactly the denied documents of `session_id`.

    Returns (new session, replacement email queued).
    """
    original = require_session(db, org_id, session_id)
    doc_ids = denied_document_ids(db, original)
    if not doc_ids:
        raise ValidationError("Session has no denied documents to replace")

    client = db.get(Client, original.client_id)
    if client is None or client.organization_id != org_id:
        raise NotFoundError("Client not found")

    replacement = create_session(
        db,
        client=client,
        document_request_ids=doc_ids,
        sent_via=SentVia.MANUAL,
        today=today,
        created_by_user_id=actor_user_id,
        replaces_session_id=original.id,
        commit=False,
    )
    audit_service.log_event(
        db,
        org_id=org_id,
        event_type=AuditEventType.SESSION_REPLACEMENT_CREATED,
        actor_user_id=actor_user_id,
        target_type="submission_session",
        target_id=replacement.id,
        details={"replaces_session_id": str(original.id), "documents": len(doc_ids)},
    )

    enqueued = False
    email = (client.email or "").strip()
    if email and base_url:
        result = email_outbox_service.enqueue_email(
            db,
            org_id=org_id,
            to_email=email,
            template=OutboxTemplate.REPLACEMENT_LINK,
            payload={
                "clientName": client.name,
                "link": portal_link(base_url, replacement.public_token),
            },
            idempotency_key=f"replacement_link:{replacement.id}",
            client_id=client.id,
            session_id=replacement.id,
        )
        enqueued = not result.duplicate
        if enqueued:
            replacement.request_sent_at = utcnow()

    db.commit()
    db.refresh(replacement)
    return replacement, enqueued
