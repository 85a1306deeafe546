"""Retention cleanup - delete stored files whose retention deadline has passed."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.db.enums import AuditEventType
from app.db.models import Upload
from app.services import audit_service, storage_service
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


def purge_expired_uploads(db: Session, batch_size: int = 200) -> int:
    """
    Delete objects for up to `batch_size` expired uploads and soft-delete
    their rows. Rows whose objects could not be removed stay for the next run.
    """
    now = utcnow()
    rows = db.execute(
        select(Upload.id, Upload.organization_id, Upload.storage_key)
        .where(
            Upload.deleted_at.is_(None),
            Upload.delete_after_at.is_not(None),
            Upload.delete_after_at <= now,
        )
        .order_by(Upload.delete_after_at)
        .limit(max(1, batch_size))
    ).all()
    if not rows:
        return 0

    removed = set(storage_service.delete_objects([row.storage_key for row in rows]))
    purged = [row for row in rows if row.storage_key in removed]

    for row in purged:
        db.execute(
            update(Upload)
            .where(
                Upload.id == row.id,
                Upload.organization_id == row.organization_id,
                Upload.deleted_at.is_(None),
            )
            .values(deleted_at=now)
        )
        audit_service.log_event(
            db,
            org_id=row.organization_id,
            event_type=AuditEventType.UPLOAD_PURGED,
            target_type="upload",
            target_id=row.id,
        )
    db.commit()

    if len(purged) < len(rows):
        logger.warning("Retention cleanup left %d uploads for retry", len(rows) - len(purged))
    return len(purged)
