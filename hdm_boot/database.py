"""
SQLite persistence via SQLAlchemy.

One Database instance per application holds the engine and the session
factory. Request handlers receive a session through the get_db dependency;
scripts and background code use Database.session().
"""

import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite stores datetimes without zone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """Engine and session factory for one SQLite database."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        connect_args: dict[str, object] = {}
        if url.startswith("sqlite"):
            # Sessions are used from FastAPI's threadpool
            connect_args = {"check_same_thread": False}
            self._ensure_directory(url)

        self.engine: Engine = create_engine(
            url,
            echo=echo,
            future=True,
            connect_args=connect_args,
        )
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            class_=Session,
        )

    @staticmethod
    def _ensure_directory(url: str) -> None:
        path = url.split("sqlite:///", 1)[-1]
        if path and path != ":memory:" and not url.startswith("sqlite://:memory"):
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def file_path(self) -> Optional[Path]:
        """Path of the database file, None when in-memory."""
        database = self.engine.url.database
        if not database or database == ":memory:":
            return None
        return Path(database)

    def create_all(self) -> None:
        """Create all tables registered on Base."""
        # Import models so their tables are registered
        from hdm_boot.models import security, user  # noqa: F401

        Base.metadata.create_all(self.engine)
        logger.info("database_schema_ready", url=self.url)

    def ping(self) -> None:
        """Run SELECT 1, raising on failure."""
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    def sqlite_version(self) -> Optional[str]:
        with self.engine.connect() as connection:
            return connection.execute(text("SELECT sqlite_version()")).scalar()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for non-request usage, e.g. scripts or startup tasks.

            with database.session() as db:
                ...
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def attach_query_monitor(self, monitor) -> None:
        """Report each statement and its duration to monitor.record_database_query()."""

        @event.listens_for(self.engine, "before_cursor_execute")
        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            conn.info.setdefault("query_started", []).append(time.perf_counter())

        @event.listens_for(self.engine, "after_cursor_execute")
        def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            started = conn.info["query_started"].pop()
            monitor.record_database_query(statement, time.perf_counter() - started)

        @event.listens_for(self.engine, "handle_error")
        def handle_error(exception_context):
            conn = exception_context.connection
            if conn is None or not conn.info.get("query_started"):
                return
            started = conn.info["query_started"].pop()
            monitor.record_database_query(
                exception_context.statement or "", time.perf_counter() - started, success=False
            )

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("database_disposed")


__all__ = ["Base", "Database", "utcnow"]
