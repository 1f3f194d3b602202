"""
Database session management (SQLAlchemy)

A ``Database`` handle is created at startup, threaded through every caller and
closed on shutdown. There is no process-wide engine: tests open as many
independent handles as they need.
"""
import logging
import os

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from envelope.config import get_settings
from envelope.errors import StoreInitError, StoreNotInitializedError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all ORM models
    """
    pass


def sqlite_file_path(url: str) -> str | None:
    """File path of a SQLite URL, or None for in-memory / non-SQLite URLs"""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return None
    if not parsed.database or parsed.database == ":memory:":
        return None
    return os.path.abspath(os.path.expanduser(parsed.database))


def validate_db_path(path: str) -> None:
    """
    Make sure the SQLite file can be written (or created)

    Raises:
        StoreInitError: file/directory not writable or directory not creatable
    """
    directory = os.path.dirname(path)

    if os.path.exists(path):
        if not os.access(path, os.W_OK):
            raise StoreInitError(f"Cannot write to database at {path}: permission denied")
        return

    if os.path.isdir(directory):
        if not os.access(directory, os.W_OK):
            raise StoreInitError(f"Cannot create database at {path}: directory is not writable")
        return

    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as exc:
        raise StoreInitError(
            f"Cannot create directory for database at {path}: {exc}"
        ) from exc


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on pysqlite
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """
    Store handle: engine + session factory

    Usage:
        database = Database("sqlite:///budget.sqlite").open()
        with database.session() as db:
            ...
        database.close()
    """

    def __init__(self, url: str | None = None):
        self.url = url or get_settings().get_sqlalchemy_url()
        self._engine: Engine | None = None
        self._session_factory = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreNotInitializedError("Store not initialized. Call Database.open() first.")
        return self._engine

    def open(self) -> "Database":
        """
        Create engine and schema

        Returns:
            self (for chaining)

        Raises:
            StoreInitError: path not writable, directory not creatable,
                database unreadable
        """
        if self._engine is not None:
            return self

        path = sqlite_file_path(self.url)
        if path is not None:
            validate_db_path(path)

        if make_url(self.url).get_backend_name() == "sqlite":
            kwargs = {"connect_args": {"check_same_thread": False}}
            if path is None:
                # In-memory database must live on a single shared connection
                kwargs["poolclass"] = StaticPool
        else:
            kwargs = {"pool_pre_ping": True}

        engine = create_engine(self.url, **kwargs)
        if make_url(self.url).get_backend_name() == "sqlite":
            _enable_sqlite_savepoints(engine)
        try:
            # Import models so that every table is registered on Base.metadata
            from envelope.infrastructure.db import models  # noqa: F401
            Base.metadata.create_all(engine)
        except SQLAlchemyError as exc:
            engine.dispose()
            raise StoreInitError(f"Database at {path or self.url} is corrupted or invalid: {exc}") from exc

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        logger.info("Ledger store opened: %s", path or make_url(self.url).render_as_string(hide_password=True))
        return self

    def session(self) -> Session:
        """New session bound to this store"""
        if self._session_factory is None:
            raise StoreNotInitializedError("Store not initialized. Call Database.open() first.")
        return self._session_factory()

    def check_connection(self) -> None:
        """
        Health check - SELECT 1

        Raises:
            StoreNotInitializedError: handle not opened
            SQLAlchemyError: database unreachable
        """
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Ledger store closed")
        self._engine = None
        self._session_factory = None
