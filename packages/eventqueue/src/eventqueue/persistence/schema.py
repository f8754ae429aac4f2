"""Startup checks for the event queue schema."""

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from eventqueue.errors import SchemaNotReadyError
from eventqueue.persistence.models import EventRecord

logger = logging.getLogger(__name__)

NOTIFY_TRIGGER_NAME = "notify_event_listener"
# Channel the trigger publishes on (fixed in the migration)
NOTIFY_CHANNEL = "event_channel"


def check_schema(engine: Engine, require_notify_trigger: bool = True) -> None:
    """
    Verify the events table (and on Postgres the notify trigger) exist.

    Raises:
        SchemaNotReadyError: If migrations have not been applied
    """
    table_name = EventRecord.__tablename__

    if not inspect(engine).has_table(table_name):
        raise SchemaNotReadyError(
            f"Table '{table_name}' does not exist; run 'alembic upgrade head'"
        )

    if require_notify_trigger and engine.dialect.name == "postgresql":
        with engine.connect() as conn:
            row = conn.execute(
                text(
                    "SELECT 1 FROM pg_trigger "
                    "WHERE tgname = :name AND tgrelid = CAST(:table AS regclass) AND NOT tgisinternal"
                ),
                {"name": NOTIFY_TRIGGER_NAME, "table": table_name},
            ).first()
        if row is None:
            raise SchemaNotReadyError(
                f"Trigger '{NOTIFY_TRIGGER_NAME}' is missing on '{table_name}'; run 'alembic upgrade head'"
            )

    logger.debug(f"Schema check passed for '{table_name}'")
