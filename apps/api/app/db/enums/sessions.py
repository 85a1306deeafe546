"""Submission session enums."""

from enum import Enum


class SessionStatus(str, Enum):
    """
    Lifecycle of a submission session.

    OPEN -> FINALIZED (every requested document has a submitted file)
    OPEN -> EXPIRED (staff action or compensation for a failed create)
    """

    OPEN = "OPEN"
    FINALIZED = "FINALIZED"
    EXPIRED = "EXPIRED"


class SentVia(str, Enum):
    """How a session's request link was issued."""

    MANUAL = "manual"
    AUTO = "auto"


class TemplateFrequency(str, Enum):
    """Recurrence of a request template (monthly only)."""

    MONTHLY = "monthly"
