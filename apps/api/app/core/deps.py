"""FastAPI dependencies for authentication, shared-secret gates, and database access."""

from typing import Generator

import jwt
from fastapi import Depends, Header, HTTPException, Query, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import decode_session_token, secrets_match
from app.db.models import User
from app.db.session import SessionLocal
from app.schemas.auth import TokenPayload, UserSession


# Cookie and header names
COOKIE_NAME = "portal_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"
CRON_SECRET_HEADER = "X-Cron-Secret"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> tuple[User, TokenPayload]:
    """
    Get authenticated staff user from session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists, is active and belongs to the token's organization
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = TokenPayload(**decode_session_token(token))
    except (jwt.InvalidTokenError, PydanticValidationError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.get(User, payload.sub)
    if not user or user.organization_id != payload.org_id:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    if user.token_version != payload.token_version:
        raise HTTPException(status_code=401, detail="Session revoked")

    return user, payload


def get_current_session(request: Request, db: Session = Depends(get_db)) -> UserSession:
    """
    Get session context: user_id, org_id.

    This is the PRIMARY auth dependency for staff endpoints.
    """
    user, _ = get_current_user(request, db)
    return UserSession(
        user_id=user.id,
        org_id=user.organization_id,
        email=user.email,
        display_name=user.display_name,
    )


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PUT, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def require_cron_secret(
    secret: str | None = Query(default=None),
    x_cron_secret: str | None = Header(default=None, alias=CRON_SECRET_HEADER),
) -> None:
    """
    Gate scheduled endpoints on the shared cron secret (query or header).

    Fails closed: an unconfigured secret is a server error, not an open gate.
    """
    if not settings.CRON_SECRET:
        raise HTTPException(status_code=500, detail="CRON_SECRET not configured")
    if not secrets_match(x_cron_secret or secret, settings.CRON_SECRET):
        raise HTTPException(status_code=401, detail="Unauthorized")
