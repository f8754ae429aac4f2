"""
Event Store Database Models

The ``events`` table is the durable event log and the only shared mutable
resource between writers and consumers.
"""

from sqlalchemy import JSON, BigInteger, Boolean, Column, Index, Integer, false, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB

from basecore.db import Base
from eventqueue.contracts import Event, EventType

EVENT_TYPE_ENUM_NAME = "event_type"


class EventRecord(Base):
    """
    A row in the events table.

    ``is_processed`` starts false and is flipped exactly once by the
    conditional update in ``EventStore.mark_processed``.
    """

    __tablename__ = "events"

    # SQLite only autoincrements INTEGER PRIMARY KEY
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    event_type = Column(
        SAEnum(
            EventType,
            name=EVENT_TYPE_ENUM_NAME,
            create_constraint=True,
            validate_strings=True,
        ),
        nullable=False,
    )
    event_data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    is_processed = Column(Boolean, nullable=False, default=False, server_default=false())

    __table_args__ = (
        Index(
            "idx_events_unprocessed",
            "id",
            postgresql_where=text("NOT is_processed"),
            sqlite_where=text("NOT is_processed"),
        ),
        # Never hand out an id again, even after purging the newest rows
        {"sqlite_autoincrement": True},
    )

    def to_event(self) -> Event:
        return Event(
            id=self.id,
            event_type=EventType(self.event_type),
            event_data=dict(self.event_data or {}),
            is_processed=bool(self.is_processed),
        )

    def __repr__(self) -> str:
        return f"<EventRecord id={self.id} type={self.event_type} processed={self.is_processed}>"
