"""Client portal endpoints (public, authenticated by the link token).

Errors never reveal whether a token almost matched: missing, closed and
disabled links all produce the same response.
"""

import logging
from contextlib import contextmanager
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_db
from app.core.errors import AuthorizationError, NotFoundError, PortalError
from app.core.rate_limit import PORTAL_LIMIT, limiter
from app.core.structured_logging import token_hint
from app.db.enums import SessionStatus
from app.schemas.portal import (
    PortalInfo,
    PortalSessionState,
    PortalUploadCompleteResponse,
    PortalUploadCreate,
    PortalUploadCreateResponse,
)
from app.schemas.upload import UploadRead
from app.services import portal_upload_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["portal"])

ACCESS_ERROR = "This link is invalid or no longer available"


def _limits() -> portal_upload_service.PortalLimits:
    return portal_upload_service.PortalLimits(
        max_size_bytes=settings.MAX_UPLOAD_SIZE_BYTES,
        upload_url_expiry_seconds=settings.UPLOAD_URL_EXPIRY_SECONDS,
        pending_retention_days=settings.PENDING_RETENTION_DAYS,
    )


@contextmanager
def _portal_errors(token: str):
    try:
        yield
    except (NotFoundError, AuthorizationError):
        logger.info("Portal access denied: token=%s", token_hint(token))
        raise HTTPException(status_code=404, detail=ACCESS_ERROR)
    except PortalError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)


@router.get("/{token}/info", response_model=PortalInfo)
@limiter.limit(PORTAL_LIMIT)
def portal_info(request: Request, token: str, db: Session = Depends(get_db)):
    with _portal_errors(token):
        return portal_upload_service.get_portal_info(db, token)


@router.post("/{token}/uploads", response_model=PortalUploadCreateResponse)
@limiter.limit(PORTAL_LIMIT)
def create_upload(
    request: Request,
    token: str,
    data: PortalUploadCreate,
    db: Session = Depends(get_db),
):
    """Register an upload and get a presigned URL to PUT the bytes to."""
    with _portal_errors(token):
        upload, signed_url = portal_upload_service.create_upload(
            db,
            token,
            document_request_id=data.document_request_id,
            filename=data.filename,
            mime_type=data.mime_type,
            size_bytes=data.size_bytes,
            limits=_limits(),
        )
    return PortalUploadCreateResponse(
        upload=UploadRead.model_validate(upload), signed_url=signed_url
    )


@router.post(
    "/{token}/uploads/{upload_id}/complete",
    response_model=PortalUploadCompleteResponse,
)
@limiter.limit(PORTAL_LIMIT)
def complete_upload(
    request: Request,
    token: str,
    upload_id: UUID,
    db: Session = Depends(get_db),
):
    """Confirm the byte upload finished. Safe to retry."""
    with _portal_errors(token):
        upload, session, _ = portal_upload_service.complete_upload(
            db, token, upload_id, base_url=settings.app_base_url or None
        )
    return PortalUploadCompleteResponse(
        upload=UploadRead.model_validate(upload),
        session=PortalSessionState(
            id=session.id, finalized=session.status == SessionStatus.FINALIZED.value
        ),
    )
