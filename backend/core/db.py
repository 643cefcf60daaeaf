"""SQLAlchemy engine factory and shared metadata."""

from __future__ import annotations

from functools import lru_cache

import sqlalchemy as sa
from sqlalchemy import MetaData, event
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Engine

from backend.core.config import settings

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

METADATA = MetaData(naming_convention=NAMING_CONVENTION)

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _install_sqlite_locking(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    SQLite has no row locks; ``BEGIN IMMEDIATE`` serialises writers on the
    database file, which is what ``SELECT ... FOR UPDATE`` gives us elsewhere.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _install_postgres_lock_timeout(engine: Engine, timeout_s: int) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute(f"SET lock_timeout = {int(timeout_s * 1000)}")
        cursor.close()


def create_engine(url: str | None = None, *, lock_timeout_s: int | None = None) -> Engine:
    """Create an engine with the locking behaviour invoice numbering relies on."""
    url = url or settings.database_url
    timeout = settings.DB_LOCK_TIMEOUT_S if lock_timeout_s is None else lock_timeout_s
    backend = sa.engine.make_url(url).get_backend_name()

    if backend == "sqlite":
        engine = sa.create_engine(url, future=True, connect_args={"timeout": timeout})
        _install_sqlite_locking(engine)
    else:
        engine = sa.create_engine(url, future=True)
        if backend == "postgresql":
            _install_postgres_lock_timeout(engine, timeout)
    return engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Create (and cache) the process-wide engine from settings."""
    return create_engine(settings.database_url)


__all__ = ["JSONType", "METADATA", "NAMING_CONVENTION", "create_engine", "get_engine"]
