"""Enum definitions for application constants."""

from app.db.enums.audit import AuditEventType
from app.db.enums.defaults import (
    DEFAULT_EMAIL_STATUS,
    DEFAULT_SENT_VIA,
    DEFAULT_SESSION_STATUS,
    DEFAULT_TEMPLATE_FREQUENCY,
    DEFAULT_UPLOAD_STATUS,
)
from app.db.enums.email import EmailStatus, OutboxTemplate
from app.db.enums.sessions import SentVia, SessionStatus, TemplateFrequency
from app.db.enums.uploads import ReviewDecision, UploadStatus

__all__ = [
    "AuditEventType",
    "DEFAULT_EMAIL_STATUS",
    "DEFAULT_SENT_VIA",
    "DEFAULT_SESSION_STATUS",
    "DEFAULT_TEMPLATE_FREQUENCY",
    "DEFAULT_UPLOAD_STATUS",
    "EmailStatus",
    "OutboxTemplate",
    "ReviewDecision",
    "SentVia",
    "SessionStatus",
    "TemplateFrequency",
    "UploadStatus",
]
