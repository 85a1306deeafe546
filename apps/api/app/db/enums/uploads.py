"""Upload review enums."""

from enum import Enum


class UploadStatus(str, Enum):
    """
    Review state of a single uploaded file.

    PENDING -> ACCEPTED | DENIED. Reviewed states are terminal; a denied
    document is resolved by a new upload in a replacement session.
    """

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DENIED = "DENIED"

    @classmethod
    def reviewed(cls) -> set[str]:
        return {cls.ACCEPTED.value, cls.DENIED.value}


class ReviewDecision(str, Enum):
    """Staff review decision."""

    ACCEPTED = "ACCEPTED"
    DENIED = "DENIED"
