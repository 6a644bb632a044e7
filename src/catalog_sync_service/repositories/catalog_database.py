"""Catalog database engine and session factory.

The catalog lives in a relational store so a whole import batch can commit or
roll back as one transaction spanning every entity table.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from catalog_sync_service.models.catalog_tables import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let pysqlite emit BEGIN itself so SAVEPOINT works inside a transaction."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")


def create_catalog_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the SQLAlchemy engine for the catalog.

    ``sqlite://`` (in-memory) uses a static pool so every session shares the
    same connection and data.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log emitted SQL

    Returns:
        Engine: Configured engine
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}, "echo": echo}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(database_url, pool_pre_ping=True, echo=echo)

    logger.info(f"Catalog engine created for dialect {engine.dialect.name}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create the session factory used for one unit of work per session."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def create_catalog_tables(engine: Engine) -> None:
    """Create every catalog table that does not exist yet."""
    Base.metadata.create_all(bind=engine)
