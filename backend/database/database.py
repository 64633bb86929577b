"""
Relational database connection and utilities.

Provides the engine lifecycle, per-request sessions and scoped
transactions. All database operations are logged for observability.
"""

from contextlib import contextmanager
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config.logging_config import get_logger
from database.tables import Base

logger = get_logger(__name__)


class Database:
    """
    Owns the SQLAlchemy engine and session factory.

    Created once per application in the lifespan handler and shared
    through ``app.state``; call ``connect()`` before use and
    ``disconnect()`` on shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    def connect(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return

        kwargs: dict = {"echo": self.echo, "pool_pre_ping": True}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            # In-memory databases must share one connection across threads
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool

        self._engine = create_engine(self.url, **kwargs)
        self._session_factory = sessionmaker(
            bind=self._engine, autoflush=True, expire_on_commit=False
        )
        logger.info("Database engine created", dialect=self._engine.dialect.name)

    def create_tables(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables ensured", tables=len(Base.metadata.tables))

    def disconnect(self) -> None:
        """Dispose of the engine and its connection pool."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        return self._session_factory()

    def ping(self) -> bool:
        """Run a trivial query to check connectivity."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning("Database ping failed", error=str(e))
            return False


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """
    Scoped unit of work.

    Commits when the block exits cleanly and rolls back every change made
    inside it when the block raises.

    Yields:
        The same session, for convenience.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a session bound to the app's database.

    Yields:
        Session closed after the request completes.
    """
    database: Database = request.app.state.database
    session = database.session()
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error("Database error", error=str(e))
        session.rollback()
        raise
    finally:
        session.close()
