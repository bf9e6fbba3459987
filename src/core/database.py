# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up SQLAlchemy database connection, session management,
and provides dependency injection for database sessions in FastAPI routes.

Two backends are supported. PostgreSQL is the production store and enforces
the booking invariants with exclusion constraints. SQLite is used for local
development and tests; there the invariants are enforced by triggers and every
transaction is opened with ``BEGIN IMMEDIATE`` so writers are serialized.
"""

import logging
from typing import Generator

from fastapi import HTTPException
from sqlalchemy import TIMESTAMP, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.types import TypeDecorator

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS
from utils.datetime_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def configure_engine(engine: Engine) -> Engine:
    """
    Apply backend-specific connection settings to an engine.

    For SQLite this turns on foreign keys and takes over transaction control
    from pysqlite so that each transaction starts with ``BEGIN IMMEDIATE``
    (the write lock is taken up front, so concurrent writers queue instead of
    interleaving). PostgreSQL needs nothing here.
    """
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):  # type: ignore
        # Disable pysqlite's own BEGIN handling; we emit BEGIN ourselves below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_on_begin(conn):  # type: ignore
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str, **kwargs) -> Engine:  # type: ignore
    """Create an engine for ``url`` with the application's settings applied."""
    options = {"echo": False, "future": True}
    if not url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_recycle=DB_POOL_RECYCLE_SECONDS)
    options.update(kwargs)
    return configure_engine(create_engine(url, **options))


# Create SQLAlchemy engine with optimized settings
engine = build_engine(DATABASE_URL)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Create Base class for declarative models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class UTCDateTime(TypeDecorator):
    """
    Timestamp column that is written and read as timezone-aware UTC.

    SQLite keeps only the wall-clock part of a datetime, so values are
    converted to UTC on the way in (query parameters included) and tagged as
    UTC on the way out. On PostgreSQL this maps to ``timestamptz``.
    """
    impl = TIMESTAMP
    cache_ok = True

    def __init__(self, *args, **kwargs):  # type: ignore
        kwargs.setdefault("timezone", True)
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):  # type: ignore
        return ensure_utc(value)

    def process_result_value(self, value, dialect):  # type: ignore
        return ensure_utc(value)


# SQLAlchemy event listeners to automatically set created_at and updated_at
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    now = utc_now()
    for column_name in ("created_at", "updated_at"):
        if column_name in mapper.columns and getattr(target, column_name, None) is None:  # type: ignore
            setattr(target, column_name, now)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    if "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", utc_now())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to provide database sessions.

    Yields a database session that is automatically closed after the request.
    Handles cleanup even if an exception occurs during request processing.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    except HTTPException:
        # Don't log HTTPExceptions as errors - they're expected business logic
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in database session: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def create_tables(bind: Engine = engine) -> None:
    """
    Create all database tables defined in SQLAlchemy models.

    Dialect-specific invariants (exclusion constraints on PostgreSQL, overlap
    triggers on SQLite) are attached to the table metadata and created here
    too. In production, prefer the Alembic migrations.
    """
    import models  # noqa: F401  # register all tables on Base.metadata
    try:
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create database tables: {e}")
        raise


def drop_tables(bind: Engine = engine) -> None:
    """
    Drop all database tables defined in SQLAlchemy models.

    WARNING: This will permanently delete all data in the tables!
    """
    import models  # noqa: F401
    try:
        Base.metadata.drop_all(bind=bind)
        logger.info("Database tables dropped successfully")
    except SQLAlchemyError as e:
        logger.exception(f"Failed to drop database tables: {e}")
        raise
