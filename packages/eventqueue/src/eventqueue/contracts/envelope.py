"""
Event - Detached view of a row in the events table.

Handlers receive this object, never the ORM row, so nothing they do can
leak back into the session that claims the event.
"""

from dataclasses import dataclass, field
from typing import Any

from eventqueue.contracts.types import EventType


@dataclass(frozen=True)
class Event:
    """
    A stored event.

    Attributes:
        id: Store-assigned, strictly increasing identifier
        event_type: Tag selecting the handler
        event_data: Opaque payload document
        is_processed: Whether a consumer has completed the event
    """

    id: int
    event_type: EventType
    event_data: dict[str, Any] = field(default_factory=dict)
    is_processed: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "event_type": self.event_type.value,
            "event_data": self.event_data,
            "is_processed": self.is_processed,
        }
