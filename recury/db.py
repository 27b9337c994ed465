"""Database access for the instance store.

The store is a relational database reached through SQLAlchemy. The engine
relies on two guarantees: the UNIQUE constraint on ``(template_id, date)`` and
real transactions with SAVEPOINT support. For SQLite the pysqlite driver's own
transaction handling is disabled and SQLAlchemy emits ``BEGIN`` itself so that
nested transactions behave.
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

logger = logging.getLogger(__name__)


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            with contextlib.suppress(Exception):
                cursor.execute("PRAGMA journal_mode=WAL")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN")


class Database:
    """Engine plus session factory for one database URL."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(url, echo=echo, future=True)
        if self.engine.dialect.name == "sqlite":
            _configure_sqlite(self.engine)
        self._sessionmaker = sessionmaker(
            bind=self.engine, expire_on_commit=False, future=True
        )

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Database ready url=%s", self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self.engine.dispose()

    @contextlib.contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error."""

        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# ---------------------------------------------------------------------------
# Default database accessor

_default_database: Database | None = None


def set_default_database(database: Database | None) -> None:
    """Set the global default database instance."""

    global _default_database
    _default_database = database


def get_default_database() -> Database:
    """Return the configured default database."""

    if _default_database is None:
        raise RuntimeError("Default database has not been initialised")
    return _default_database


__all__ = ["Database", "set_default_database", "get_default_database"]
