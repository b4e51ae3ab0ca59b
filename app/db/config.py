"""Database configuration for the Task Tracker."""
from typing import Generator
from sqlmodel import create_engine, Session
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
import logging

from app.config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create the SQLModel engine for the given URL."""
    if not database_url.startswith("sqlite"):
        logger.info("Using PostgreSQL database")
        return create_engine(database_url, echo=SQL_ECHO, pool_pre_ping=True)

    logger.info(f"Using SQLite database: {database_url}")
    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        sqlite_engine = create_engine(
            database_url, echo=SQL_ECHO, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        sqlite_engine = create_engine(database_url, echo=SQL_ECHO, connect_args=connect_args)

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # ON DELETE CASCADE from user to task needs foreign keys enabled
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = build_engine(DATABASE_URL)


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session
