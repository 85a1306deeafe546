"""Email-related enums."""

from enum import Enum


class EmailStatus(str, Enum):
    """Status of queued outbound emails."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxTemplate(str, Enum):
    """Named email templates the outbox can render."""

    MANUAL_REQUEST_LINK = "manual_request_link"
    REPLACEMENT_LINK = "replacement_link"
    SESSION_FINALIZED_NOTIFY = "session_finalized_notify"
    ALL_DOCS_ACCEPTED = "all_docs_accepted"
    DUE_REMINDER_14D = "due_reminder_14d"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_
