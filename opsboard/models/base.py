"""
SQLAlchemy base configuration and session management.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
Designed to be portable between SQLite (dev) and PostgreSQL (prod).
"""

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from opsboard.config import config


class Base(DeclarativeBase):
    """Base class for all models."""

    # Columns exposed to clients, in serialization order
    __public_columns__: tuple = ()

    def to_dict(self) -> dict:
        """Convert to JSON-serializable row for API responses."""
        row = {}
        for name in self.__public_columns__:
            value = getattr(self, name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif hasattr(value, 'value'):
                value = value.value
            row[name] = value
        return row


def new_id() -> str:
    """Generate a row identifier."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as naive UTC, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Create engine with configuration appropriate for the database type
engine_kwargs = {
    'echo': config.debug,  # Log SQL in debug mode
}

if config.database.is_sqlite:
    engine_kwargs['connect_args'] = {'check_same_thread': False}

engine = create_engine(config.database.url, **engine_kwargs)


if config.database.is_sqlite:
    @event.listens_for(engine, 'connect')
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """
        Configure SQLite for concurrent reads and cascading deletes.

        WAL mode lets change-feed listeners read while a write commits;
        foreign keys are needed so deleting a profile drops its roles.
        """
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA journal_mode=WAL')
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Rows are serialized after commit
)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_session() as session:
            session.query(...)

    Automatically handles commit/rollback and session cleanup.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist. For production,
    use Alembic migrations instead.
    """
    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    """Drop every table. Used by the test suite."""
    Base.metadata.drop_all(bind=engine)
