"""
Database connection and session management module.

Uses SQLAlchemy for ORM operations. Supports PostgreSQL (production/Docker)
and SQLite (local development and tests). The engine and session factory
are built from Settings by the app factory and stored on app.state.
"""

from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from answerdesk.config import Settings
from answerdesk.errors import ConflictError


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (SQLite returns naive values)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_engine(settings: Settings) -> Engine:
    """
    Create the SQLAlchemy engine for the configured database URL.

    SQLite does not support pool_size, max_overflow, or pool_pre_ping.
    An in-memory SQLite URL gets a StaticPool so every session sees the
    same database.
    """
    url = settings.database_url
    engine_kwargs = {"echo": settings.db_echo}

    if url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
        })
    elif url.startswith("sqlite"):
        # SQLite needs check_same_thread=False for FastAPI (multi-threaded)
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **engine_kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    """
    FastAPI dependency that provides a database session.

    Yields a session from the app's session factory and ensures it is
    closed after the request, even if an exception occurs.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def create_tables(engine: Engine):
    """
    Create all database tables directly (used for SQLite local dev and tests).
    For PostgreSQL, use Alembic migrations instead.
    """
    # Import models so they are registered with Base.metadata
    import answerdesk.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def commit_or_conflict(db: Session, message: str = "Record was modified by another request"):
    """
    Commit the session, translating an optimistic-version mismatch into
    ConflictError after rolling back.
    """
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConflictError(message)
