"""Database connection and session management."""
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings
from .models import Base

settings = get_settings()


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # SQLite connections are shared across FastAPI's worker threads
        return {"connect_args": {"check_same_thread": False}}
    # Conservative pool settings for hosted Postgres
    return {
        "pool_pre_ping": True,       # Verify connections before using
        "pool_size": 3,              # Base pool of 3 connections
        "max_overflow": 7,           # Allow up to 10 total connections
        "pool_recycle": 3600,        # Recycle connections every hour
        "pool_timeout": 30,          # Timeout after 30 seconds
    }


def enable_sqlite_foreign_keys(target: Engine) -> None:
    """Turn on FK enforcement (and ON DELETE actions) for SQLite connections."""
    if target.dialect.name != "sqlite":
        return

    @event.listens_for(target, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create database engine
engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
enable_sqlite_foreign_keys(engine)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create any missing tables (development convenience; production uses Alembic)."""
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
