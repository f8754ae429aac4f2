"""Event Queue Tables

Revision ID: 0001_event_queue
Revises: 
Create Date: 2026-10-19

Creates the event log and its notification trigger:
- event_type: enum of accepted event tags
- events: durable event log with processing flag
- notify_event_listener: AFTER INSERT trigger, pg_notify('event_channel', id)
- force_unprocessed_on_insert: BEFORE INSERT trigger, is_processed always starts false
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, JSONB

revision = '0001_event_queue'
down_revision = None
branch_labels = None
depends_on = None

EVENT_TYPES = ('ACCOUNT', 'BLOCK', 'TRANSACTION')


def upgrade():
    # =========================================================================
    # EVENTS
    # =========================================================================

    event_type = ENUM(*EVENT_TYPES, name='event_type', create_type=False)
    event_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'events',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),  # BIGSERIAL
        sa.Column('event_type', event_type, nullable=False),
        sa.Column('event_data', JSONB(), nullable=False),
        sa.Column('is_processed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_events_unprocessed',
        'events',
        ['id'],
        postgresql_where=sa.text('NOT is_processed'),
    )

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    # NOTIFY is queued by the inserting transaction and delivered at commit;
    # a rollback discards it.
    op.execute("""
        CREATE OR REPLACE FUNCTION notify_event_channel() RETURNS TRIGGER AS $$
        BEGIN
            PERFORM pg_notify('event_channel', NEW.id::text);
            RETURN NULL;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER notify_event_listener
        AFTER INSERT ON events
        FOR EACH ROW EXECUTE PROCEDURE notify_event_channel();
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION force_unprocessed_on_insert() RETURNS TRIGGER AS $$
        BEGIN
            NEW.is_processed := false;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER force_unprocessed_on_insert
        BEFORE INSERT ON events
        FOR EACH ROW EXECUTE PROCEDURE force_unprocessed_on_insert();
    """)


def downgrade():
    op.execute("DROP TRIGGER IF EXISTS force_unprocessed_on_insert ON events")
    op.execute("DROP FUNCTION IF EXISTS force_unprocessed_on_insert()")
    op.execute("DROP TRIGGER IF EXISTS notify_event_listener ON events")
    op.execute("DROP FUNCTION IF EXISTS notify_event_channel()")
    op.drop_index('idx_events_unprocessed', table_name='events')
    op.drop_table('events')
    ENUM(name='event_type').drop(op.get_bind(), checkfirst=True)
