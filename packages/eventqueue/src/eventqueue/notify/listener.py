"""
Postgres LISTEN/NOTIFY listener.

Uses a dedicated psycopg2 connection in autocommit mode: LISTEN only takes
effect once committed and notifications are only read outside a transaction.
"""

import logging
import select

import psycopg2
import psycopg2.extensions
from sqlalchemy.engine import URL, make_url

from eventqueue.notify.base import NotificationListener
from eventqueue.persistence.schema import NOTIFY_CHANNEL

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = NOTIFY_CHANNEL

# Detect dead peers while blocked in select()
KEEPALIVE_OPTIONS = {
    "keepalives": 1,
    "keepalives_idle": 30,
    "keepalives_interval": 10,
    "keepalives_count": 3,
}


def to_libpq_dsn(database_url: str | URL) -> str:
    """Convert a SQLAlchemy URL (e.g. postgresql+psycopg2://...) to a libpq URI."""
    url = make_url(database_url).set(drivername="postgresql")
    return url.render_as_string(hide_password=False)


class PostgresNotificationListener(NotificationListener):
    """Listens on a Postgres channel filled by the notify_event_listener trigger."""

    transport = "postgres"

    def __init__(self, database_url: str | URL, on_wake, channel: str = DEFAULT_CHANNEL, **kwargs):
        super().__init__(on_wake, **kwargs)
        self.dsn = to_libpq_dsn(database_url)
        self.channel = channel
        self._conn = None

    def open(self) -> None:
        conn = psycopg2.connect(self.dsn, **KEEPALIVE_OPTIONS)
        conn.set_isolation_level(psycopg2.extensions.ISOLATION_LEVEL_AUTOCOMMIT)
        self._conn = conn
        with conn.cursor() as cursor:
            cursor.execute(f"LISTEN {psycopg2.extensions.quote_ident(self.channel, conn)}")
        logger.debug(f"LISTEN {self.channel}")

    def receive(self, timeout: float) -> list[str]:
        conn = self._conn
        ready, _, _ = select.select([conn], [], [], timeout)
        if not ready:
            return []

        # poll() raises OperationalError when the server went away
        conn.poll()
        payloads = [notify.payload for notify in conn.notifies]
        conn.notifies.clear()
        return payloads

    def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None or conn.closed:
            return
        try:
            conn.close()
        except psycopg2.Error as e:
            logger.debug(f"Error closing listener connection: {e}")
