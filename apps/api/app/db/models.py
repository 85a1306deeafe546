"""SQLAlchemy ORM models for tenants, clients, document requests, sessions, uploads and the email outbox."""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Date, ForeignKey, Index, Integer, String,
    Text, UniqueConstraint, Uuid, func, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.enums import (
    DEFAULT_EMAIL_STATUS, DEFAULT_SENT_VIA, DEFAULT_SESSION_STATUS,
    DEFAULT_TEMPLATE_FREQUENCY, DEFAULT_UPLOAD_STATUS,
)


JSONType = JSON().with_variant(JSONB(), "postgresql")

OPEN_TEMPLATE_SESSION_WHERE = "status = 'OPEN' AND request_template_id IS NOT NULL"


# =============================================================================
# Tenant Models
# =============================================================================

class Organization(Base):
    """
    The provider firm (tenant).

    All domain entities belong to an organization
    and must be scoped by organization_id in all queries.
    """
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    users: Mapped[list["User"]] = relationship(back_populates="organization")


class User(Base):
    """Staff member who reviews uploads. Receives "ready for review" notices."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    organization: Mapped["Organization"] = relationship(back_populates="users")


# =============================================================================
# Clients & Document Requests
# =============================================================================

class Client(Base):
    """A provider's customer who uploads documents through the portal."""
    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_clients_org", "organization_id"),
        CheckConstraint(
            "due_day_of_month BETWEEN 1 AND 31", name="due_day_range"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    portal_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    due_day_of_month: Mapped[int] = mapped_column(Integer, default=25, nullable=False)
    due_timezone: Mapped[str] = mapped_column(
        String(64), default="Africa/Johannesburg", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    document_requests: Mapped[list["DocumentRequest"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )


class DocumentRequest(Base):
    """
    A named document type a client must supply (e.g. "Bank statement").

    Deactivated instead of deleted so past sessions keep their history.
    """
    __tablename__ = "document_requests"
    __table_args__ = (
        Index("idx_document_requests_client", "organization_id", "client_id", "active"),
        CheckConstraint("max_files >= 1", name="max_files_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_files: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # None means "no allow-list" (portal defaults still apply)
    allowed_mime_types: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    client: Mapped["Client"] = relationship(back_populates="document_requests")


# =============================================================================
# Recurring Templates
# =============================================================================

class RequestTemplate(Base):
    """
    Recurring monthly request configuration for one client.

    The monthly scheduler reads the document set only when it opens a session;
    edits never touch sessions that are already open.
    """
    __tablename__ = "request_templates"
    __table_args__ = (
        Index("idx_request_templates_enabled", "enabled"),
        Index("idx_request_templates_client", "organization_id", "client_id"),
        CheckConstraint(
            "due_day_of_month IS NULL OR due_day_of_month BETWEEN 1 AND 31",
            name="due_day_range",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    frequency: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_TEMPLATE_FREQUENCY.value, nullable=False
    )
    silent_auto_send: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    start_next_month: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    due_day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    client: Mapped["Client"] = relationship()
    document_links: Mapped[list["RequestTemplateDocument"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="RequestTemplateDocument.position",
    )


class RequestTemplateDocument(Base):
    """Join row: a document request included in a template."""
    __tablename__ = "request_template_document_requests"
    __table_args__ = (
        UniqueConstraint(
            "request_template_id", "document_request_id", name="uq_template_document"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    request_template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("request_templates.id", ondelete="CASCADE"), nullable=False
    )
    document_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_requests.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    template: Mapped["RequestTemplate"] = relationship(back_populates="document_links")


# =============================================================================
# Submission Sessions
# =============================================================================

class SubmissionSession(Base):
    """
    One collection round ("please submit these documents").

    The public_token is a capability: whoever holds it can upload.
    At most one OPEN session may exist per (client, template); the partial
    unique index is the authority, the service pre-check is a courtesy.
    """
    __tablename__ = "submission_sessions"
    __table_args__ = (
        UniqueConstraint("public_token", name="uq_submission_sessions_public_token"),
        Index(
            "uq_submission_sessions_open_template",
            "client_id",
            "request_template_id",
            unique=True,
            postgresql_where=text(OPEN_TEMPLATE_SESSION_WHERE),
            sqlite_where=text(OPEN_TEMPLATE_SESSION_WHERE),
        ),
        Index("idx_submission_sessions_client", "organization_id", "client_id", "status"),
        Index("idx_submission_sessions_due", "status", "due_on"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    request_template_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("request_templates.id", ondelete="SET NULL"), nullable=True
    )
    replaces_session_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("submission_sessions.id", ondelete="SET NULL"), nullable=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_SESSION_STATUS.value, nullable=False
    )
    public_token: Mapped[str] = mapped_column(String(255), nullable=False)
    opened_at: Mapped[datetime] = mapped_column(nullable=False)
    due_on: Mapped[date] = mapped_column(Date, nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sent_via: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_SENT_VIA.value, nullable=False
    )
    request_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Idempotency stamps (set only while NULL)
    reminder_14d_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accepted_confirmation_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    client: Mapped["Client"] = relationship()
    template: Mapped["RequestTemplate | None"] = relationship()
    document_links: Mapped[list["SubmissionSessionDocument"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SubmissionSessionDocument.position",
    )


class SubmissionSessionDocument(Base):
    """Join row: a document request a session asks for (fixed at creation)."""
    __tablename__ = "submission_session_document_requests"
    __table_args__ = (
        UniqueConstraint(
            "submission_session_id", "document_request_id", name="uq_session_document"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    submission_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("submission_sessions.id", ondelete="CASCADE"), nullable=False
    )
    document_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_requests.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    session: Mapped["SubmissionSession"] = relationship(back_populates="document_links")
    document_request: Mapped["DocumentRequest"] = relationship()


# =============================================================================
# Uploads
# =============================================================================

class Upload(Base):
    """
    One submitted file instance.

    Review is one-way: PENDING -> ACCEPTED | DENIED.
    uploaded_at stays NULL until the client confirms the byte upload.
    """
    __tablename__ = "uploads"
    __table_args__ = (
        Index("idx_uploads_session", "submission_session_id", "document_request_id"),
        Index("idx_uploads_org_status", "organization_id", "status"),
        Index("idx_uploads_retention", "delete_after_at"),
        CheckConstraint(
            "(status = 'DENIED' AND denial_reason IS NOT NULL)"
            " OR (status <> 'DENIED' AND denial_reason IS NULL)",
            name="denial_reason_matches_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    submission_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("submission_sessions.id", ondelete="CASCADE"), nullable=False
    )
    document_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_requests.id", ondelete="CASCADE"), nullable=False
    )

    # File metadata
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Review
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_UPLOAD_STATUS.value, nullable=False
    )
    denial_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    viewed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Lifecycle
    uploaded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delete_after_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    session: Mapped["SubmissionSession"] = relationship()
    document_request: Mapped["DocumentRequest"] = relationship()


# =============================================================================
# Email Outbox
# =============================================================================

class EmailOutboxEntry(Base):
    """
    Durable queue of outbound emails.

    idempotency_key is unique: a second enqueue with the same key is a no-op.
    """
    __tablename__ = "email_outbox"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_email_outbox_idempotency_key"),
        Index("idx_email_outbox_pending", "status", "run_after"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    submission_session_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("submission_sessions.id", ondelete="SET NULL"), nullable=True
    )

    to_email: Mapped[str] = mapped_column(String(255), nullable=False)
    template: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    run_after: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_EMAIL_STATUS.value, nullable=False
    )
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


# =============================================================================
# Audit
# =============================================================================

class AuditEvent(Base):
    """Append-only audit trail. Written best-effort; never blocks a request."""
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_events_org", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    target_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
