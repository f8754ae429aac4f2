"""
Event Store Persistence

SQLAlchemy model and repository for the events table.
"""

from eventqueue.persistence.models import EventRecord
from eventqueue.persistence.repo import EventStore, coerce_event_type, emit_event
from eventqueue.persistence.schema import NOTIFY_CHANNEL, check_schema

__all__ = [
    "NOTIFY_CHANNEL",
    "EventRecord",
    "EventStore",
    "check_schema",
    "coerce_event_type",
    "emit_event",
]
