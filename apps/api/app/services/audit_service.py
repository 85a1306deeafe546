"""Audit logging service - portal and review event tracking.

Security guidelines:
- NEVER log portal tokens in full (use structured_logging.token_hint)
- Hash emails in details (use hash_email)
- Use IDs instead of raw data where possible

Audit writes are best-effort: a failure is logged and never fails the request.
"""

import hashlib
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.enums import AuditEventType
from app.db.models import AuditEvent

logger = logging.getLogger(__name__)


def hash_email(email: str) -> str:
    """Hash email for audit log (prefix + SHA256 suffix for debugging)."""
    if not email:
        return ""
    prefix = email.split("@")[0][:3] if "@" in email else email[:3]
    suffix = hashlib.sha256(email.lower().encode()).hexdigest()[:12]
    return f"{prefix}...@[hash:{suffix}]"


def log_event(
    db: Session,
    org_id: UUID | None,
    event_type: AuditEventType,
    actor_user_id: UUID | None = None,
    target_type: str | None = None,
    target_id: UUID | None = None,
    details: dict[str, Any] | None = None,
) -> AuditEvent | None:
    """
    Add an audit event to the current transaction.

    Caller owns the commit. Returns None if the event could not be recorded.
    """
    try:
        event = AuditEvent(
            organization_id=org_id,
            event_type=event_type.value,
            actor_user_id=actor_user_id,
            target_type=target_type,
            target_id=target_id,
            details=details or None,
        )
        db.add(event)
        return event
    except Exception:
        logger.warning("Audit event %s could not be recorded", event_type.value, exc_info=True)
        return None
