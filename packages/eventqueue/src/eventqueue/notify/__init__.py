"""
Notification transports.

Listeners turn channel messages into wake-ups; they never decide what is
processed. Postgres LISTEN/NOTIFY is the default transport, Redis pub/sub
is available for stores without a notify trigger.
"""

from eventqueue.notify.base import NotificationListener, parse_event_id
from eventqueue.notify.listener import PostgresNotificationListener, to_libpq_dsn
from eventqueue.notify.redis_channel import (
    RedisNotificationListener,
    install_configured_publisher,
    install_redis_publisher,
    uninstall_configured_publisher,
)

__all__ = [
    "NotificationListener",
    "PostgresNotificationListener",
    "RedisNotificationListener",
    "install_configured_publisher",
    "install_redis_publisher",
    "parse_event_id",
    "to_libpq_dsn",
    "uninstall_configured_publisher",
]
