"""Recurring request templates.

A template's document set is read only when a session is opened, so saving a
template may replace the set wholesale without touching open sessions.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, StateError, ValidationError
from app.db.enums import AuditEventType, SentVia, TemplateFrequency
from app.db.models import Client, RequestTemplate, RequestTemplateDocument, SubmissionSession
from app.schemas.request_template import RequestTemplateSave
from app.services import audit_service, submission_session_service


def get_template(db: Session, org_id: UUID, template_id: UUID) -> RequestTemplate | None:
    return db.scalar(
        select(RequestTemplate).where(
            RequestTemplate.id == template_id,
            RequestTemplate.organization_id == org_id,
        )
    )


def require_template(db: Session, org_id: UUID, template_id: UUID) -> RequestTemplate:
    template = get_template(db, org_id, template_id)
    if not template:
        raise NotFoundError("Template not found")
    return template


def list_templates(db: Session, org_id: UUID, client_id: UUID) -> list[RequestTemplate]:
    return list(
        db.scalars(
            select(RequestTemplate)
            .where(
                RequestTemplate.organization_id == org_id,
                RequestTemplate.client_id == client_id,
            )
            .order_by(RequestTemplate.created_at)
        ).all()
    )


def get_template_document_ids(db: Session, template: RequestTemplate) -> list[UUID]:
    """Document ids in the order they were attached."""
    return list(
        db.scalars(
            select(RequestTemplateDocument.document_request_id)
            .where(
                RequestTemplateDocument.organization_id == template.organization_id,
                RequestTemplateDocument.request_template_id == template.id,
            )
            .order_by(RequestTemplateDocument.position)
        ).all()
    )


def _replace_documents(
    db: Session, template: RequestTemplate, document_ids: list[UUID]
) -> None:
    db.execute(
        delete(RequestTemplateDocument).where(
            RequestTemplateDocument.organization_id == template.organization_id,
            RequestTemplateDocument.request_template_id == template.id,
        )
    )
    for position, doc_id in enumerate(document_ids):
        db.add(
            RequestTemplateDocument(
                organization_id=template.organization_id,
                request_template_id=template.id,
                document_request_id=doc_id,
                position=position,
            )
        )
    db.flush()


def create_template(
    db: Session,
    client: Client,
    data: RequestTemplateSave,
    actor_user_id: UUID | None = None,
) -> RequestTemplate:
    """Create a template with at least one active document of the client."""
    if not data.name.strip():
        raise ValidationError("Template name is required")
    doc_ids = submission_session_service.validate_document_requests(
        db, client, data.document_request_ids
    )

    template = RequestTemplate(
        organization_id=client.organization_id,
        client_id=client.id,
        name=data.name.strip(),
        enabled=data.enabled,
        frequency=TemplateFrequency.MONTHLY.value,
        silent_auto_send=data.silent_auto_send,
        start_next_month=data.start_next_month,
        due_day_of_month=data.due_day_of_month,
    )
    db.add(template)
    db.flush()
    _replace_documents(db, template, doc_ids)
    audit_service.log_event(
        db,
        org_id=client.organization_id,
        event_type=AuditEventType.TEMPLATE_CREATED,
        actor_user_id=actor_user_id,
        target_type="request_template",
        target_id=template.id,
        details={"documents": len(doc_ids)},
    )
    db.commit()
    db.refresh(template)
    return template


def save_template(
    db: Session,
    template: RequestTemplate,
    data: RequestTemplateSave,
    actor_user_id: UUID | None = None,
) -> RequestTemplate:
    """Replace settings and the document set in one transaction."""
    if not data.name.strip():
        raise ValidationError("Template name is required")
    client = db.get(Client, template.client_id)
    if client is None or client.organization_id != template.organization_id:
        raise NotFoundError("Client not found")
    doc_ids = submission_session_service.validate_document_requests(
        db, client, data.document_request_ids
    )

    template.name = data.name.strip()
    template.enabled = data.enabled
    template.silent_auto_send = data.silent_auto_send
    template.start_next_month = data.start_next_month
    template.due_day_of_month = data.due_day_of_month
    _replace_documents(db, template, doc_ids)
    audit_service.log_event(
        db,
        org_id=template.organization_id,
        event_type=AuditEventType.TEMPLATE_UPDATED,
        actor_user_id=actor_user_id,
        target_type="request_template",
        target_id=template.id,
        details={"documents": len(doc_ids), "enabled": template.enabled},
    )
    db.commit()
    db.refresh(template)
    return template


def set_template_enabled(db: Session, template: RequestTemplate, enabled: bool) -> RequestTemplate:
    template.enabled = enabled
    db.commit()
    db.refresh(template)
    return template


def delete_template(
    db: Session, template: RequestTemplate, actor_user_id: UUID | None = None
) -> None:
    """Delete a template. Its sessions keep their documents; the back-reference is cleared."""
    db.execute(
        update(SubmissionSession)
        .where(
            SubmissionSession.organization_id == template.organization_id,
            SubmissionSession.request_template_id == template.id,
        )
        .values(request_template_id=None)
    )
    audit_service.log_event(
        db,
        org_id=template.organization_id,
        event_type=AuditEventType.TEMPLATE_DELETED,
        actor_user_id=actor_user_id,
        target_type="request_template",
        target_id=template.id,
        details={"name": template.name},
    )
    db.delete(template)
    db.commit()


def create_session_from_template_now(
    db: Session,
    template: RequestTemplate,
    *,
    due_day: int | None = None,
    today: date | None = None,
    actor_user_id: UUID | None = None,
) -> SubmissionSession:
    """
    Manual "send now": open a session with the template's current documents.

    Raises:
        StateError: template disabled
        ValidationError: template has no (valid) documents
        ConflictError: an OPEN session already exists for this template
    """
    if not template.enabled:
        raise StateError("Template is disabled")
    client = db.get(Client, template.client_id)
    if client is None or client.organization_id != template.organization_id:
        raise NotFoundError("Client not found")

    doc_ids = get_template_document_ids(db, template)
    if not doc_ids:
        raise ValidationError("Template has no documents")

    return submission_session_service.create_session(
        db,
        client=client,
        document_request_ids=doc_ids,
        sent_via=SentVia.MANUAL,
        template=template,
        due_day=due_day,
        today=today,
        created_by_user_id=actor_user_id,
    )
