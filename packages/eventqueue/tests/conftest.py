"""
Pytest fixtures for event queue tests.

Unit tests run against a SQLite file database. Every transaction starts with
BEGIN IMMEDIATE so concurrent writers queue on the database lock instead of
failing on a lock upgrade.
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from basecore.db import Base
from eventqueue.contracts import EventType
from eventqueue.handlers import HandlerRouter
import eventqueue.persistence.models  # noqa: F401

from support import RecordingHandler


@pytest.fixture
def engine(tmp_path):
    """SQLite engine with the events table created."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'events.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def router(handler):
    return HandlerRouter({event_type: handler for event_type in EventType})

