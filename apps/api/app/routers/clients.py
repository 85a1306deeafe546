"""Clients router - client records and their document requests."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db, require_csrf_header
from app.schemas.auth import UserSession
from app.schemas.client import (
    ClientCreate,
    ClientRead,
    ClientUpdate,
    DocumentRequestCreate,
    DocumentRequestRead,
    DocumentRequestUpdate,
)
from app.services import client_service

router = APIRouter(tags=["clients"])


@router.get("/clients", response_model=list[ClientRead])
def list_clients(
    include_inactive: bool = False,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return client_service.list_clients(db, session.org_id, include_inactive=include_inactive)


@router.post(
    "/clients",
    response_model=ClientRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_client(
    data: ClientCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return client_service.create_client(db, session.org_id, data)


@router.get("/clients/{client_id}", response_model=ClientRead)
def get_client(
    client_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client = client_service.get_client(db, session.org_id, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.patch(
    "/clients/{client_id}",
    response_model=ClientRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_client(
    client_id: UUID,
    data: ClientUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client = client_service.require_client(db, session.org_id, client_id)
    return client_service.update_client(db, client, data)


# =============================================================================
# Document requests
# =============================================================================

@router.get("/clients/{client_id}/document-requests", response_model=list[DocumentRequestRead])
def list_document_requests(
    client_id: UUID,
    include_inactive: bool = False,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client_service.require_client(db, session.org_id, client_id)
    return client_service.list_document_requests(
        db, session.org_id, client_id, include_inactive=include_inactive
    )


@router.post(
    "/clients/{client_id}/document-requests",
    response_model=DocumentRequestRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_document_request(
    client_id: UUID,
    data: DocumentRequestCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client = client_service.require_client(db, session.org_id, client_id)
    return client_service.create_document_request(db, client, data)


@router.patch(
    "/document-requests/{doc_id}",
    response_model=DocumentRequestRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_document_request(
    doc_id: UUID,
    data: DocumentRequestUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Edit or deactivate (active=false) a document request."""
    doc = client_service.get_document_request(db, session.org_id, doc_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Document request not found")
    return client_service.update_document_request(db, doc, data)
