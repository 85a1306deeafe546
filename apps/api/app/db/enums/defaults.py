"""Centralized defaults for enums."""

from app.db.enums.email import EmailStatus
from app.db.enums.sessions import SentVia, SessionStatus, TemplateFrequency
from app.db.enums.uploads import UploadStatus


DEFAULT_SESSION_STATUS: SessionStatus = SessionStatus.OPEN
DEFAULT_SENT_VIA: SentVia = SentVia.MANUAL
DEFAULT_TEMPLATE_FREQUENCY: TemplateFrequency = TemplateFrequency.MONTHLY
DEFAULT_UPLOAD_STATUS: UploadStatus = UploadStatus.PENDING
DEFAULT_EMAIL_STATUS: EmailStatus = EmailStatus.PENDING
