"""Request templates router - recurring monthly configuration."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_current_session, get_db, require_csrf_header
from app.db.models import RequestTemplate
from app.schemas.auth import UserSession
from app.schemas.request_template import (
    RequestTemplateEnabled,
    RequestTemplateRead,
    RequestTemplateSave,
)
from app.schemas.submission_session import SessionCreateResponse
from app.services import client_service, request_template_service, submission_session_service
from app.routers.sessions import to_session_read

router = APIRouter(tags=["templates"])


def to_template_read(db: Session, template: RequestTemplate) -> RequestTemplateRead:
    return RequestTemplateRead(
        id=template.id,
        client_id=template.client_id,
        name=template.name,
        enabled=template.enabled,
        frequency=template.frequency,
        silent_auto_send=template.silent_auto_send,
        start_next_month=template.start_next_month,
        due_day_of_month=template.due_day_of_month,
        document_request_ids=request_template_service.get_template_document_ids(db, template),
        created_at=template.created_at,
    )


@router.get("/clients/{client_id}/templates", response_model=list[RequestTemplateRead])
def list_templates(
    client_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client_service.require_client(db, session.org_id, client_id)
    return [
        to_template_read(db, t)
        for t in request_template_service.list_templates(db, session.org_id, client_id)
    ]


@router.post(
    "/clients/{client_id}/templates",
    response_model=RequestTemplateRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_template(
    client_id: UUID,
    data: RequestTemplateSave,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client = client_service.require_client(db, session.org_id, client_id)
    template = request_template_service.create_template(
        db, client, data, actor_user_id=session.user_id
    )
    return to_template_read(db, template)


@router.put(
    "/templates/{template_id}",
    response_model=RequestTemplateRead,
    dependencies=[Depends(require_csrf_header)],
)
def save_template(
    template_id: UUID,
    data: RequestTemplateSave,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    template = request_template_service.require_template(db, session.org_id, template_id)
    template = request_template_service.save_template(
        db, template, data, actor_user_id=session.user_id
    )
    return to_template_read(db, template)


@router.post(
    "/templates/{template_id}/enabled",
    response_model=RequestTemplateRead,
    dependencies=[Depends(require_csrf_header)],
)
def set_template_enabled(
    template_id: UUID,
    data: RequestTemplateEnabled,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    template = request_template_service.require_template(db, session.org_id, template_id)
    template = request_template_service.set_template_enabled(db, template, data.enabled)
    return to_template_read(db, template)


@router.delete(
    "/templates/{template_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_template(
    template_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    template = request_template_service.require_template(db, session.org_id, template_id)
    request_template_service.delete_template(db, template, actor_user_id=session.user_id)


@router.post(
    "/templates/{template_id}/send-now",
    response_model=SessionCreateResponse,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def send_template_now(
    template_id: UUID,
    send_email: bool = True,
    due_day_of_month: int | None = Query(default=None, ge=1, le=31),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Open a session from the template right away (manual send)."""
    template = request_template_service.require_template(db, session.org_id, template_id)
    created = request_template_service.create_session_from_template_now(
        db, template, due_day=due_day_of_month, actor_user_id=session.user_id
    )
    enqueued = False
    if send_email:
        client = client_service.require_client(db, session.org_id, created.client_id)
        enqueued = submission_session_service.send_request_link(
            db, created, client, settings.app_base_url, template_name=template.name
        )
    link = (
        submission_session_service.portal_link(settings.app_base_url, created.public_token)
        if settings.app_base_url
        else None
    )
    return SessionCreateResponse(
        session=to_session_read(db, created),
        public_token=created.public_token,
        link=link,
        email_enqueued=enqueued,
    )
