"""Audit enums."""

from enum import Enum


class AuditEventType(str, Enum):
    """
    Audit events for the document portal.

    Groups:
    - SESSION_*: Submission session lifecycle
    - UPLOAD_*: Client uploads and staff review
    - TEMPLATE_*: Recurring request configuration
    """

    # Sessions
    SESSION_CREATED = "session_created"
    SESSION_FINALIZED = "session_finalized"
    SESSION_EXPIRED = "session_expired"
    SESSION_REPLACEMENT_CREATED = "session_replacement_created"

    # Uploads
    UPLOAD_CREATED = "upload_created"
    UPLOAD_COMPLETED = "upload_completed"
    UPLOAD_ACCEPTED = "upload_accepted"
    UPLOAD_DENIED = "upload_denied"
    UPLOAD_PURGED = "upload_purged"

    # Templates
    TEMPLATE_CREATED = "template_created"
    TEMPLATE_UPDATED = "template_updated"
    TEMPLATE_DELETED = "template_deleted"
