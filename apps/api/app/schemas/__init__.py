"""Pydantic schemas for API request/response models."""

from app.schemas.auth import TokenPayload, UserSession
from app.schemas.client import ClientCreate, ClientRead, ClientUpdate

__all__ = [
    # Auth
    "TokenPayload",
    "UserSession",
    # Clients
    "ClientCreate",
    "ClientRead",
    "ClientUpdate",
]
