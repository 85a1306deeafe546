"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    org_id: UUID
    token_version: int


class UserSession(BaseModel):
    """
    Session context for authenticated staff requests.

    Returned by the get_current_session dependency; org_id scopes
    every query the request makes.
    """
    user_id: UUID
    org_id: UUID
    email: str
    display_name: str
