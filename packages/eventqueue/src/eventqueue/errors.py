"""Exceptions raised by the event queue."""


class EventQueueError(Exception):
    """Base class for event queue errors."""


class UnknownEventTypeError(EventQueueError, ValueError):
    """An event was appended with a tag outside the known event types."""

    def __init__(self, event_type: object):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type!r}")


class HandlerNotFoundError(EventQueueError, LookupError):
    """No handler is registered for an event type."""

    def __init__(self, event_type: object):
        self.event_type = event_type
        super().__init__(f"No handler registered for event type: {event_type}")


class SchemaNotReadyError(EventQueueError):
    """The events table or its notification trigger is missing."""
