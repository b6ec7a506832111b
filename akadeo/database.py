"""Database configuration and session management.

Two stores back the service: the credentials store (users, pending
verifications, setup profiles, sessions) and the billing store (plans,
subscriptions, payments). They may point at the same database. Connection
pools are built explicitly by ``Database`` and attached to the application,
so tests can hand in their own instance.
"""

import logging
from collections.abc import Generator
from typing import Any

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from akadeo.config import Settings

logger = logging.getLogger(__name__)

Base: Any = declarative_base()

# Tables owned by each store
CREDENTIAL_TABLES = ("users", "account_verifications", "user_setup_responses", "user_sessions")
BILLING_TABLES = ("plans", "subscriptions", "payments")

_PG_UNDEFINED_TABLE = "42P01"
_MYSQL_NO_SUCH_TABLE = 1146


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let pysqlite honour SAVEPOINT by taking over transaction control."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs: Any) -> Engine:
    """Create an engine with pool settings suited to the backend."""
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10, **kwargs)


class Database:
    """Owns the engines and session factories for both stores."""

    def __init__(self, credentials_engine: Engine, billing_engine: Engine | None = None):
        self.credentials_engine = credentials_engine
        self.billing_engine = billing_engine or credentials_engine
        self.CredentialsSession = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.credentials_engine
        )
        self.BillingSession = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.billing_engine
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        credentials_engine = build_engine(settings.database_url)
        billing_url = settings.resolved_billing_database_url
        if billing_url == settings.database_url:
            return cls(credentials_engine)
        return cls(credentials_engine, build_engine(billing_url))

    @property
    def shares_engine(self) -> bool:
        return self.billing_engine is self.credentials_engine

    def create_all(self) -> None:
        """Create every table in its owning store."""
        # Import all models here so they are registered with Base.metadata
        from akadeo import models  # noqa: F401

        if self.shares_engine:
            Base.metadata.create_all(bind=self.credentials_engine)
            return
        Base.metadata.create_all(bind=self.credentials_engine, tables=_tables(CREDENTIAL_TABLES))
        Base.metadata.create_all(bind=self.billing_engine, tables=_tables(BILLING_TABLES))

    def dispose(self) -> None:
        self.credentials_engine.dispose()
        if not self.shares_engine:
            self.billing_engine.dispose()


def _tables(names: tuple[str, ...]) -> list:
    return [Base.metadata.tables[name] for name in names]


def tables_for_store(settings: Settings, store: str) -> set[str]:
    """Tables a migration run against ``store`` is responsible for."""
    if store == "billing":
        return set(BILLING_TABLES)
    if settings.resolved_billing_database_url == settings.database_url:
        return set(CREDENTIAL_TABLES) | set(BILLING_TABLES)
    return set(CREDENTIAL_TABLES)


def is_missing_table_error(exc: Exception) -> bool:
    """Check whether a DBAPI error means the target table does not exist."""
    if not isinstance(exc, DBAPIError):
        return False
    original = exc.orig
    if getattr(original, "pgcode", None) == _PG_UNDEFINED_TABLE:
        return True
    args = getattr(original, "args", ()) or ()
    if args and args[0] == _MYSQL_NO_SUCH_TABLE:
        return True
    message = str(original).lower()
    return "no such table" in message or ("relation" in message and "does not exist" in message)


def get_database(request: Request) -> Database:
    """Get the database attached to the running application."""
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency that provides a credentials store session."""
    db = get_database(request).CredentialsSession()
    try:
        yield db
    finally:
        db.close()


def get_billing_db(request: Request) -> Generator[Session, None, None]:
    """Dependency that provides a billing store session."""
    db = get_database(request).BillingSession()
    try:
        yield db
    finally:
        db.close()
