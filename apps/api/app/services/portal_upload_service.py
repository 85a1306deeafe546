"""Client portal: token-authenticated session info and direct-to-storage uploads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransientInfraError,
    ValidationError,
)
from app.core.structured_logging import token_hint
from app.db.enums import AuditEventType, UploadStatus
from app.db.models import Client, DocumentRequest, SubmissionSession, Upload
from app.services import (
    audit_service,
    storage_service,
    submission_session_service,
    upload_review_service,
)
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortalLimits:
    max_size_bytes: int = 25 * 1024 * 1024
    upload_url_expiry_seconds: int = 900
    pending_retention_days: int = 30


def _portal_context(
    db: Session, token: str, allow_finalized: bool = False
) -> tuple[SubmissionSession, Client]:
    """Resolve the token to a usable session whose client may use the portal."""
    session = submission_session_service.get_session_by_token(
        db, token, allow_finalized=allow_finalized
    )
    client = db.get(Client, session.client_id)
    if client is None or client.organization_id != session.organization_id:
        raise NotFoundError("Link not found")
    if not client.active or not client.portal_enabled:
        raise AuthorizationError("Portal access is disabled")
    return session, client


def _requested_documents(db: Session, session: SubmissionSession) -> list[DocumentRequest]:
    ids = submission_session_service.requested_document_ids(db, session)
    if not ids:
        return []
    docs = {
        doc.id: doc
        for doc in db.scalars(
            select(DocumentRequest).where(
                DocumentRequest.organization_id == session.organization_id,
                DocumentRequest.id.in_(ids),
            )
        ).all()
    }
    return [docs[doc_id] for doc_id in ids if doc_id in docs]


def get_portal_info(db: Session, token: str) -> dict:
    session, client = _portal_context(db, token)
    uploads_by_doc: dict[UUID, list[Upload]] = {}
    for upload in db.scalars(
        select(Upload)
        .where(
            Upload.organization_id == session.organization_id,
            Upload.submission_session_id == session.id,
            Upload.deleted_at.is_(None),
        )
        .order_by(Upload.created_at)
    ).all():
        uploads_by_doc.setdefault(upload.document_request_id, []).append(upload)

    return {
        "client_name": client.name,
        "status": session.status,
        "due_on": session.due_on,
        "documents": [
            {
                "id": doc.id,
                "title": doc.title,
                "description": doc.description,
                "required": doc.required,
                "max_files": doc.max_files,
                "allowed_mime_types": doc.allowed_mime_types,
                "uploads": [
                    {
                        "id": upload.id,
                        "original_filename": upload.original_filename,
                        "status": upload.status,
                        "denial_reason": upload.denial_reason,
                        "uploaded": upload.uploaded_at is not None,
                    }
                    for upload in uploads_by_doc.get(doc.id, [])
                ],
            }
            for doc in _requested_documents(db, session)
        ],
    }


def _mime_allowed(doc: DocumentRequest, mime_type: str | None) -> bool:
    allowed = doc.allowed_mime_types
    if not allowed:
        return True
    if not mime_type:
        return False
    value = mime_type.strip().lower()
    for pattern in allowed:
        if pattern == value:
            return True
        if pattern.endswith("/*") and value.startswith(pattern[:-1]):
            return True
    return False


def create_upload(
    db: Session,
    token: str,
    *,
    document_request_id: UUID,
    filename: str,
    mime_type: str | None,
    size_bytes: int | None,
    limits: PortalLimits | None = None,
) -> tuple[Upload, str]:
    """
    Register a PENDING upload and return it with a presigned PUT URL.

    The upload stays unsubmitted (uploaded_at NULL) until the client calls
    complete_upload after the byte transfer.
    """
    limits = limits or PortalLimits()
    session, client = _portal_context(db, token)

    if document_request_id not in submission_session_service.requested_document_ids(db, session):
        raise ValidationError("Document is not part of this request")
    doc = db.get(DocumentRequest, document_request_id)
    if doc is None or doc.organization_id != session.organization_id:
        raise ValidationError("Document is not part of this request")

    if not filename or not filename.strip():
        raise ValidationError("Filename is required")
    if not _mime_allowed(doc, mime_type):
        raise ValidationError("File type not allowed for this document")
    if size_bytes is not None and size_bytes > limits.max_size_bytes:
        raise ValidationError("File is too large")

    existing = db.scalar(
        select(func.count(Upload.id)).where(
            Upload.organization_id == session.organization_id,
            Upload.submission_session_id == session.id,
            Upload.document_request_id == doc.id,
            Upload.deleted_at.is_(None),
        )
    ) or 0
    if existing >= doc.max_files:
        raise ConflictError("Maximum number of files already uploaded for this document")

    upload_id = uuid4()
    storage_key = storage_service.build_upload_key(client.id, upload_id, filename)
    now = utcnow()
    upload = Upload(
        id=upload_id,
        organization_id=session.organization_id,
        client_id=client.id,
        submission_session_id=session.id,
        document_request_id=doc.id,
        original_filename=filename.strip()[:255],
        storage_key=storage_key,
        mime_type=mime_type,
        size_bytes=size_bytes,
        status=UploadStatus.PENDING.value,
        delete_after_at=now + timedelta(days=limits.pending_retention_days),
    )
    db.add(upload)
    db.flush()

    signed_url = storage_service.create_upload_url(
        storage_key, mime_type, limits.upload_url_expiry_seconds
    )
    audit_service.log_event(
        db,
        org_id=session.organization_id,
        event_type=AuditEventType.UPLOAD_CREATED,
        target_type="upload",
        target_id=upload.id,
        details={"session_id": str(session.id), "document_request_id": str(doc.id)},
    )
    db.commit()
    db.refresh(upload)
    logger.info("Portal upload created: upload=%s token=%s", upload.id, token_hint(token))
    return upload, signed_url


def complete_upload(
    db: Session, token: str, upload_id: UUID, base_url: str | None = None
) -> tuple[Upload, SubmissionSession, bool]:
    """
    Client callback after the byte upload. Storage verification is
    best-effort: a missing object or storage error is logged, not raised.
    """
    session, _ = _portal_context(db, token, allow_finalized=True)
    upload = db.scalar(
        select(Upload).where(
            Upload.id == upload_id,
            Upload.organization_id == session.organization_id,
            Upload.submission_session_id == session.id,
            Upload.deleted_at.is_(None),
        )
    )
    if upload is None:
        raise NotFoundError("Upload not found")

    try:
        if not storage_service.object_exists(upload.storage_key):
            logger.warning("Upload %s completed but object not found in storage", upload.id)
    except TransientInfraError:
        logger.warning("Storage verification failed for upload %s", upload.id, exc_info=True)

    upload, finalized = upload_review_service.complete_upload_submission(
        db, upload, base_url=base_url
    )
    db.refresh(session)
    return upload, session, finalized
