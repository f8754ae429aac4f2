"""
Event Store - append, scan and claim operations on the events table.

The store is bound to a caller-owned session and never commits. Writers
append inside their own transaction so the event exists only if the
business change that produced it commits.
"""

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from eventqueue.contracts import Event, EventType, MarkResult
from eventqueue.errors import UnknownEventTypeError
from eventqueue.persistence.models import EventRecord

logger = logging.getLogger(__name__)


def coerce_event_type(event_type: EventType | str) -> EventType:
    """Return the EventType for a tag, raising UnknownEventTypeError if unknown."""
    if isinstance(event_type, EventType):
        return event_type
    try:
        return EventType(event_type)
    except ValueError:
        raise UnknownEventTypeError(event_type) from None


class EventStore:
    """Repository for the events table."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, event_type: EventType | str, event_data: Mapping[str, Any] | None = None) -> int:
        """
        Append an event inside the caller's transaction.

        The row is flushed to obtain its id but not committed. Rolling back
        the caller's transaction removes the event and suppresses its
        notification.

        Args:
            event_type: One of the known event types
            event_data: Opaque payload document

        Returns:
            The store-assigned event id

        Raises:
            UnknownEventTypeError: If event_type is not a known tag
        """
        record = EventRecord(
            event_type=coerce_event_type(event_type),
            event_data=dict(event_data or {}),
            is_processed=False,
        )
        self.db.add(record)
        self.db.flush()

        logger.debug(
            f"Appended event {record.id}",
            extra={"event_id": record.id, "event_type": record.event_type.value},
        )
        return record.id

    def fetch_unprocessed(self, after_id: int = 0, limit: int = 100) -> list[Event]:
        """
        Get unprocessed events with id strictly greater than after_id.

        Events are returned in ascending id order, at most ``limit`` of them,
        so callers can page through a backlog by passing the last id seen.
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        stmt = (
            select(EventRecord)
            .where(EventRecord.id > after_id, EventRecord.is_processed.is_(False))
            .order_by(EventRecord.id.asc())
            .limit(limit)
        )
        return [record.to_event() for record in self.db.execute(stmt).scalars()]

    def mark_processed(self, event_id: int) -> MarkResult:
        """
        Transition an event from unprocessed to processed.

        Uses a conditional UPDATE so concurrent callers for the same id are
        serialized by the row lock: exactly one observes SUCCESS, the others
        observe ALREADY_PROCESSED once the winner commits.
        """
        result = self.db.execute(
            update(EventRecord)
            .where(EventRecord.id == event_id, EventRecord.is_processed.is_(False))
            .values(is_processed=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return MarkResult.SUCCESS

        exists = self.db.execute(
            select(EventRecord.id).where(EventRecord.id == event_id)
        ).first()
        if exists is None:
            return MarkResult.NOT_FOUND
        return MarkResult.ALREADY_PROCESSED

    def get(self, event_id: int) -> Event | None:
        """Get a single event by id."""
        record = self.db.get(EventRecord, event_id)
        return record.to_event() if record else None

    def count_unprocessed(self) -> int:
        """Count events still waiting for a consumer."""
        return self.db.execute(
            select(func.count()).select_from(EventRecord).where(EventRecord.is_processed.is_(False))
        ).scalar_one()

    def max_id(self) -> int:
        """Highest id ever stored that is still in the table (0 if empty)."""
        return self.db.execute(select(func.max(EventRecord.id))).scalar() or 0

    def purge_processed(self, before_id: int) -> int:
        """
        Delete processed events with id lower than before_id.

        Ids are never reused, so removing processed rows cannot confuse a
        cursor. Unprocessed rows are never deleted.

        Returns:
            Number of rows deleted
        """
        result = self.db.execute(
            delete(EventRecord)
            .where(EventRecord.id < before_id, EventRecord.is_processed.is_(True))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


def emit_event(db: Session, event_type: EventType | str, event_data: Mapping[str, Any] | None = None) -> int:
    """
    Convenience function for writers to append an event.

    Args:
        db: The writer's session (its transaction owns the event)
        event_type: Event type tag
        event_data: Payload document

    Returns:
        The new event id
    """
    return EventStore(db).append(event_type, event_data)
