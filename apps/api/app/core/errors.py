"""Domain error taxonomy shared by services and routers."""


class PortalError(Exception):
    """Base exception for document portal errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """Bad input: missing/invalid id, invalid enum, missing required reason."""

    status_code = 422

    def __init__(self, message: str, invalid_ids: list[str] | None = None):
        super().__init__(message)
        self.invalid_ids = invalid_ids or []


class ConflictError(PortalError):
    """Uniqueness or idempotency violation (e.g. duplicate open session)."""

    status_code = 409


class StateError(PortalError):
    """Operation not allowed in the current state (e.g. re-review)."""

    status_code = 409


class AuthorizationError(PortalError):
    """Actor may not perform this action (disabled portal, bad secret)."""

    status_code = 403


class NotFoundError(PortalError):
    """Row missing or owned by another tenant."""

    status_code = 404


class TransientInfraError(PortalError):
    """Storage/network failure. Safe to retry at the caller's discretion."""

    status_code = 500
