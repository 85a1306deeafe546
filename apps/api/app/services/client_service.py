"""Client and document-request management (staff, organization-scoped)."""

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.db.models import Client, DocumentRequest
from app.schemas.client import (
    ClientCreate,
    ClientUpdate,
    DocumentRequestCreate,
    DocumentRequestUpdate,
)
from app.utils.due_dates import is_valid_timezone


def _clean_mime_types(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    cleaned = sorted({v.strip().lower() for v in values if v and v.strip()})
    return cleaned or None


# =============================================================================
# Clients
# =============================================================================

def create_client(db: Session, org_id: UUID, data: ClientCreate) -> Client:
    if not is_valid_timezone(data.due_timezone):
        raise ValidationError(f"Unknown timezone: {data.due_timezone}")
    client = Client(
        organization_id=org_id,
        name=data.name.strip(),
        email=(str(data.email).lower() if data.email else None),
        active=data.active,
        portal_enabled=data.portal_enabled,
        due_day_of_month=data.due_day_of_month,
        due_timezone=data.due_timezone,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def get_client(db: Session, org_id: UUID, client_id: UUID) -> Client | None:
    """Get a client by ID (org-scoped)."""
    return db.query(Client).filter(
        Client.id == client_id,
        Client.organization_id == org_id,
    ).first()


def require_client(db: Session, org_id: UUID, client_id: UUID) -> Client:
    client = get_client(db, org_id, client_id)
    if not client:
        raise NotFoundError("Client not found")
    return client


def list_clients(db: Session, org_id: UUID, include_inactive: bool = False) -> list[Client]:
    query = db.query(Client).filter(Client.organization_id == org_id)
    if not include_inactive:
        query = query.filter(Client.active.is_(True))
    return query.order_by(Client.name).all()


def update_client(db: Session, client: Client, data: ClientUpdate) -> Client:
    updates = data.model_dump(exclude_unset=True)
    if "due_timezone" in updates and not is_valid_timezone(updates["due_timezone"]):
        raise ValidationError(f"Unknown timezone: {updates['due_timezone']}")
    if "email" in updates and updates["email"]:
        updates["email"] = str(updates["email"]).lower()
    for field in ("name", "active", "portal_enabled", "due_day_of_month", "due_timezone"):
        if field in updates and updates[field] is None:
            updates.pop(field)
    for field, value in updates.items():
        setattr(client, field, value)
    db.commit()
    db.refresh(client)
    return client


# =============================================================================
# Document requests
# =============================================================================

def create_document_request(
    db: Session, client: Client, data: DocumentRequestCreate
) -> DocumentRequest:
    doc = DocumentRequest(
        organization_id=client.organization_id,
        client_id=client.id,
        title=data.title.strip(),
        description=data.description,
        required=data.required,
        sort_order=data.sort_order,
        max_files=data.max_files,
        allowed_mime_types=_clean_mime_types(data.allowed_mime_types),
    )
    db.add(doc)
    db.commit()
    db.refresh(doc)
    return doc


def get_document_request(db: Session, org_id: UUID, doc_id: UUID) -> DocumentRequest | None:
    return db.query(DocumentRequest).filter(
        DocumentRequest.id == doc_id,
        DocumentRequest.organization_id == org_id,
    ).first()


def list_document_requests(
    db: Session, org_id: UUID, client_id: UUID, include_inactive: bool = False
) -> list[DocumentRequest]:
    query = db.query(DocumentRequest).filter(
        DocumentRequest.organization_id == org_id,
        DocumentRequest.client_id == client_id,
    )
    if not include_inactive:
        query = query.filter(DocumentRequest.active.is_(True))
    return query.order_by(DocumentRequest.sort_order, DocumentRequest.created_at).all()


def update_document_request(
    db: Session, doc: DocumentRequest, data: DocumentRequestUpdate
) -> DocumentRequest:
    """Apply a partial update. Setting active=False is the soft delete."""
    updates = data.model_dump(exclude_unset=True)
    if "allowed_mime_types" in updates:
        updates["allowed_mime_types"] = _clean_mime_types(updates["allowed_mime_types"])
    for field in ("title", "required", "active", "sort_order", "max_files"):
        if field in updates and updates[field] is None:
            updates.pop(field)
    for field, value in updates.items():
        setattr(doc, field, value)
    db.commit()
    db.refresh(doc)
    return doc
