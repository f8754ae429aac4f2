"""
Event Queue - Transactional Outbox with Notify-Wake Delivery

This package provides:
- Event contracts (event record, event types, mark results)
- The durable event store (``events`` table)
- Notification listeners (Postgres LISTEN/NOTIFY, Redis pub/sub)
- The poll fallback that rescans for unprocessed events
- The dispatcher that hands events to per-type handlers

Writers append events inside their own transaction. Consumers are woken by
the notification channel but the table is the only source of truth: every
event is eventually found by the poll fallback even if no notification is
ever delivered.
"""

from eventqueue.contracts import Event, EventType, MarkResult
from eventqueue.consumer import EventConsumer
from eventqueue.dispatcher import DispatchReport, EventDispatcher
from eventqueue.handlers import HandlerRouter
from eventqueue.persistence import EventStore, emit_event

__all__ = [
    "DispatchReport",
    "Event",
    "EventConsumer",
    "EventDispatcher",
    "EventStore",
    "EventType",
    "HandlerRouter",
    "MarkResult",
    "emit_event",
]
