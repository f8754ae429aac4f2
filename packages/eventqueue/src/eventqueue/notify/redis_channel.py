"""
Redis pub/sub transport for event notifications.

For stores without LISTEN/NOTIFY, the publisher plays the part of the
database trigger: after a session commits, the ids of the events it
inserted are published on the channel. Nothing is published for rolled
back transactions. Delivery is at-most-once, exactly like NOTIFY.
"""

import logging
import weakref
from collections.abc import Callable

import redis
from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from basecore.redis import get_redis_client, publish_to_channel, subscribe
from basecore.settings import Settings, get_settings
from eventqueue.notify.base import NotificationListener
from eventqueue.persistence.models import EventRecord

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "event_channel"

# Session.info key for event ids inserted in the current transaction
PENDING_IDS_KEY = "eventqueue.pending_notify_ids"

# Uninstall functions of publishers installed from settings, per sessionmaker
_configured_publishers = weakref.WeakKeyDictionary()


def install_redis_publisher(
    session_factory: sessionmaker,
    client: redis.Redis | None = None,
    channel: str = DEFAULT_CHANNEL,
) -> Callable[[], None]:
    """
    Publish appended event ids on Redis after each commit.

    Args:
        session_factory: Sessionmaker used by writers
        client: Redis client (defaults to the cached client)
        channel: Channel name

    Returns:
        A function that uninstalls the hooks
    """

    def collect_ids(session: Session, flush_context) -> None:
        ids = [obj.id for obj in session.new if isinstance(obj, EventRecord)]
        if ids:
            session.info.setdefault(PENDING_IDS_KEY, []).extend(ids)

    def publish_ids(session: Session) -> None:
        ids = session.info.pop(PENDING_IDS_KEY, [])
        if not ids:
            return
        publisher = client or get_redis_client()
        for event_id in ids:
            try:
                publish_to_channel(channel, str(event_id), client=publisher)
            except redis.RedisError as e:
                # Best-effort: the poll fallback picks the event up
                logger.warning(
                    f"Failed to publish notification for event {event_id}: {e}",
                    extra={"event_id": event_id},
                )

    def discard_ids(session: Session) -> None:
        session.info.pop(PENDING_IDS_KEY, None)

    event.listen(session_factory, "after_flush", collect_ids)
    event.listen(session_factory, "after_commit", publish_ids)
    event.listen(session_factory, "after_rollback", discard_ids)

    def uninstall() -> None:
        event.remove(session_factory, "after_flush", collect_ids)
        event.remove(session_factory, "after_commit", publish_ids)
        event.remove(session_factory, "after_rollback", discard_ids)

    return uninstall


def install_configured_publisher(session_factory: sessionmaker, settings: Settings | None = None) -> bool:
    """
    Install the Redis publisher on a writer sessionmaker when EVENTS_NOTIFY_BACKEND=redis.

    With the postgres backend the database trigger publishes and nothing is
    installed. Installing twice on the same sessionmaker is a no-op.

    Returns:
        True if the publisher is active on the sessionmaker
    """
    settings = settings or get_settings()
    if settings.EVENTS_NOTIFY_BACKEND.lower() != "redis":
        return False

    if session_factory not in _configured_publishers:
        _configured_publishers[session_factory] = install_redis_publisher(
            session_factory, channel=settings.EVENTS_CHANNEL
        )
        logger.info(f"Publishing appended event ids on redis channel {settings.EVENTS_CHANNEL}")
    return True


def uninstall_configured_publisher(session_factory: sessionmaker) -> None:
    uninstall = _configured_publishers.pop(session_factory, None)
    if uninstall is not None:
        uninstall()


class RedisNotificationListener(NotificationListener):
    """Listens on a Redis pub/sub channel."""

    transport = "redis"

    def __init__(self, on_wake, client: redis.Redis | None = None, channel: str = DEFAULT_CHANNEL, **kwargs):
        super().__init__(on_wake, **kwargs)
        self.client = client
        self.channel = channel
        self._pubsub = None

    def open(self) -> None:
        self._pubsub = subscribe(self.channel, client=self.client or get_redis_client())

    def receive(self, timeout: float) -> list[str]:
        payloads = []
        message = self._pubsub.get_message(timeout=timeout)
        while message is not None:
            if message.get("type") == "message":
                payloads.append(message["data"])
            message = self._pubsub.get_message(timeout=0)
        return payloads

    def close(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            pubsub.close()
        except redis.RedisError as e:
            logger.debug(f"Error closing pubsub: {e}")
