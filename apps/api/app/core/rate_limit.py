"""Rate limiting configuration for the portal API."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# Shared storage (e.g. redis://) is needed for multi-worker deployments;
# tests and single-worker dev use process memory.
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
STORAGE_URI = "memory://" if IS_TESTING else os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

PORTAL_LIMIT = f"{settings.RATE_LIMIT_PORTAL}/minute"

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=STORAGE_URI,
    enabled=not IS_TESTING and settings.RATE_LIMIT_PORTAL > 0,
)
