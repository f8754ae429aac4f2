"""
Handler Router - Routes events to the handler for their type.

One handler per event type. Handlers must be idempotent: the same event can
be delivered more than once (notification and poll racing, two consumers,
or a crash between handler success and the processed commit).
"""

import logging
from collections.abc import Callable
from typing import Any

from eventqueue.contracts import Event, EventType
from eventqueue.errors import HandlerNotFoundError
from eventqueue.persistence.repo import coerce_event_type

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], Any]


class HandlerRouter:
    """
    Maps event types to handlers.

    Usage:
        router = HandlerRouter()

        @router.on(EventType.BLOCK)
        def handle_block(event):
            ...
    """

    def __init__(self, handlers: dict[EventType, EventHandler] | None = None):
        self._handlers: dict[EventType, EventHandler] = {}
        for event_type, handler in (handlers or {}).items():
            self.register(event_type, handler)

    def register(self, event_type: EventType | str, handler: EventHandler) -> None:
        """
        Register the handler for an event type.

        Raises:
            ValueError: If a handler is already registered for the type
        """
        event_type = coerce_event_type(event_type)
        if event_type in self._handlers:
            raise ValueError(f"Handler already registered for event type: {event_type}")
        self._handlers[event_type] = handler
        logger.debug(f"Registered handler for {event_type}: {getattr(handler, '__name__', handler)!r}")

    def on(self, event_type: EventType | str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of register()."""

        def decorator(handler: EventHandler) -> EventHandler:
            self.register(event_type, handler)
            return handler

        return decorator

    def get(self, event_type: EventType | str) -> EventHandler:
        """
        Get the handler for an event type.

        Raises:
            UnknownEventTypeError: If the tag is not an event type
            HandlerNotFoundError: If nothing is registered for the type
        """
        handler = self._handlers.get(coerce_event_type(event_type))
        if handler is None:
            raise HandlerNotFoundError(event_type)
        return handler

    def handle(self, event: Event) -> Any:
        """Run the handler for an event and return its result."""
        return self.get(event.event_type)(event)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._handlers

    @property
    def event_types(self) -> list[EventType]:
        return list(self._handlers)
