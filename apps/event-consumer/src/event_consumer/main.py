"""
Event Consumer Worker - LISTEN/NOTIFY + Poll Fallback

This worker uses ONLY:
- basecore (DB, settings, logging, redis)
- eventqueue (store, listeners, poller, dispatcher)

Features:
- Wakes on event_channel notifications (Postgres or Redis transport)
- Poll fallback sweep for dropped notifications and crashed consumers
- Catch-up scan after every (re)subscription
- Safe with multiple replicas (conditional processed transition)
- Graceful shutdown
"""

import functools
import logging
import os
import signal
import socket
import sys
import threading

from sqlalchemy.exc import OperationalError

from basecore.db import get_engine, get_sessionmaker
from basecore.logging import setup_logging
from basecore.settings import get_settings
from eventqueue.consumer import EventConsumer
from eventqueue.contracts import Event, EventType
from eventqueue.errors import SchemaNotReadyError
from eventqueue.handlers import HandlerRouter
from eventqueue.notify import (
    PostgresNotificationListener,
    RedisNotificationListener,
    install_configured_publisher,
)
from eventqueue.persistence import NOTIFY_CHANNEL, check_schema

setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

# Configuration
CONSUMER_NAME = settings.EVENTS_CONSUMER_NAME or f"event-consumer-{socket.gethostname()}-{os.getpid()}"
NOTIFY_BACKEND = settings.EVENTS_NOTIFY_BACKEND.lower()

# Startup retry while the store is unreachable
STARTUP_BASE_BACKOFF = 0.5

consumer: EventConsumer | None = None
shutdown_requested = threading.Event()


def signal_handler(signum, frame):
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested.set()
    if consumer is not None:
        consumer.stop()


def build_router() -> HandlerRouter:
    """
    Reference handlers: log every event type.

    Real deployments register their own idempotent handlers.
    """
    router = HandlerRouter()

    def log_event(event: Event) -> None:
        logger.info(
            f"Handling {event.event_type.value} event {event.id}",
            extra={"event_id": event.id, "event_type": event.event_type.value},
        )

    for event_type in EventType:
        router.register(event_type, log_event)

    return router


def build_listener_factory():
    """Pick the notification transport from settings."""
    common = {
        "timeout": settings.EVENTS_LISTEN_TIMEOUT,
        "max_backoff": settings.EVENTS_MAX_BACKOFF,
    }

    if NOTIFY_BACKEND == "postgres":
        if settings.EVENTS_CHANNEL != NOTIFY_CHANNEL:
            raise ValueError(
                f"EVENTS_CHANNEL={settings.EVENTS_CHANNEL!r} but the notify trigger publishes on "
                f"{NOTIFY_CHANNEL!r}; other channels are only supported with the redis backend"
            )
        return functools.partial(
            PostgresNotificationListener,
            settings.DATABASE_URL,
            channel=NOTIFY_CHANNEL,
            **common,
        )
    if NOTIFY_BACKEND == "redis":
        return functools.partial(RedisNotificationListener, channel=settings.EVENTS_CHANNEL, **common)

    raise ValueError(f"Unknown EVENTS_NOTIFY_BACKEND: {NOTIFY_BACKEND!r} (expected 'postgres' or 'redis')")


def wait_for_schema(engine, require_notify_trigger: bool) -> bool:
    """
    Check the schema, retrying while the store is unreachable.

    A missing schema is fatal (SchemaNotReadyError propagates); an
    unreachable store is retried with capped exponential backoff.

    Returns:
        True once the schema is in place, False if shutdown was requested first
    """
    failures = 0
    while not shutdown_requested.is_set():
        try:
            check_schema(engine, require_notify_trigger=require_notify_trigger)
            return True
        except OperationalError as e:
            failures += 1
            delay = min(STARTUP_BASE_BACKOFF * 2 ** (failures - 1), settings.EVENTS_MAX_BACKOFF)
            logger.warning(f"Store unavailable at startup (attempt {failures}): {e}; retrying in {delay:.1f}s")
            shutdown_requested.wait(delay)
    return False


def main():
    """Main worker loop."""
    global consumer

    logger.info(
        f"Starting event consumer (consumer={CONSUMER_NAME}, backend={NOTIFY_BACKEND}, "
        f"channel={settings.EVENTS_CHANNEL}, poll={settings.EVENTS_POLL_INTERVAL}s, "
        f"batch={settings.EVENTS_BATCH_SIZE})"
    )

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        listener_factory = build_listener_factory()
        ready = wait_for_schema(get_engine(), require_notify_trigger=NOTIFY_BACKEND == "postgres")
    except (SchemaNotReadyError, ValueError) as e:
        logger.error(f"Cannot start consumer: {e}")
        sys.exit(1)

    if not ready:
        logger.info("Shutdown requested before the store became available")
        return

    session_factory = get_sessionmaker()
    # Writers sharing this process publish on commit when the backend is redis
    install_configured_publisher(session_factory, settings)

    consumer = EventConsumer(
        session_factory,
        build_router(),
        listener_factory=listener_factory,
        poll_interval=settings.EVENTS_POLL_INTERVAL,
        batch_size=settings.EVENTS_BATCH_SIZE,
        max_backoff=settings.EVENTS_MAX_BACKOFF,
        purge_keep=settings.EVENTS_PURGE_KEEP,
        purge_interval=settings.EVENTS_PURGE_INTERVAL,
        name=CONSUMER_NAME,
    )
    if shutdown_requested.is_set():
        consumer.stop()

    consumer.run()

    logger.info("Event consumer shutting down gracefully")


if __name__ == "__main__":
    main()
