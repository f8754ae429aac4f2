"""Event contracts - event record, types and mark results."""

from eventqueue.contracts.envelope import Event
from eventqueue.contracts.types import EventType, MarkResult

__all__ = ["Event", "EventType", "MarkResult"]
