"""
Event Types - The closed set of event tags.

The store rejects any tag not listed here (Postgres enum ``event_type``).
"""

from enum import Enum


class EventType(str, Enum):
    """
    Known event types.

    The tag decides which handler processes the event. Payload shape is
    owned by that handler; the store treats it as an opaque document.
    """

    ACCOUNT = "ACCOUNT"
    BLOCK = "BLOCK"
    TRANSACTION = "TRANSACTION"

    def __str__(self) -> str:
        return self.value


class MarkResult(str, Enum):
    """Outcome of the conditional unprocessed -> processed transition."""

    SUCCESS = "success"
    ALREADY_PROCESSED = "already_processed"
    NOT_FOUND = "not_found"

    def __str__(self) -> str:
        return self.value
