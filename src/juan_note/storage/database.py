"""Connection and resource management for the note store.

A ``Database`` owns exactly one SQLite connection (through a ``StaticPool``)
and one re-entrant lock. Every store operation runs inside the lock, so
callers on different threads observe operations as if they ran one at a
time.
"""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from juan_note.config import config
from juan_note.exceptions import ErrorCode, StorageError

logger = logging.getLogger(__name__)

IN_MEMORY_URL = "sqlite://"


class Database:
    """Single-connection SQLite store guarded by one lock.

    Args:
        database_url: SQLAlchemy URL. Defaults to the configured database path.
        database_path: Convenience alternative to ``database_url``.
        cache_size_kb: Page cache size applied as ``PRAGMA cache_size=-N``.
        echo: Log every SQL statement (debugging aid).

    Raises:
        StorageError: If the database cannot be opened.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        database_path: Optional[Union[str, Path]] = None,
        cache_size_kb: Optional[int] = None,
        echo: bool = False,
    ) -> None:
        if database_url is None and database_path is not None:
            path = Path(database_path)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    "Failed to create database directory",
                    operation="connect",
                    path=str(path),
                    code=ErrorCode.STORAGE_CONNECTION_FAILED,
                    original_error=e,
                ) from e
            database_url = f"sqlite:///{path}"
        self.database_url = database_url or config.get_db_url()
        self.cache_size_kb = (
            cache_size_kb if cache_size_kb is not None else config.sqlite_cache_size_kb
        )
        self._lock = threading.RLock()
        self._init_lock = threading.Lock()
        self._initialized = False

        self.engine = create_engine(
            self.database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
        event.listen(self.engine, "connect", self._set_sqlite_pragma)
        event.listen(self.engine, "begin", self._begin)

        try:
            # Open the single connection now so a bad path fails at startup
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except (sqlite3.Error, SQLAlchemyError) as e:
            self.engine.dispose()
            raise StorageError(
                "Failed to open database",
                operation="connect",
                path=self.database_url,
                code=ErrorCode.STORAGE_CONNECTION_FAILED,
                original_error=e,
            ) from e

        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.debug(f"Opened database {self.database_url}")

    @classmethod
    def in_memory(cls, cache_size_kb: Optional[int] = None) -> "Database":
        """Create an isolated in-memory store."""
        return cls(database_url=IN_MEMORY_URL, cache_size_kb=cache_size_kb)

    def _set_sqlite_pragma(self, dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        # In-memory databases report "memory" and keep their journal mode
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        # Negative value means KB rather than pages
        cursor.execute(f"PRAGMA cache_size=-{int(self.cache_size_kb)}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        # Let SQLAlchemy emit BEGIN itself so DDL in a migration step rolls back too
        dbapi_connection.isolation_level = None

    @staticmethod
    def _begin(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")

    @property
    def lock(self) -> threading.RLock:
        """The lock that serialises all access to the connection."""
        return self._lock

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Hold the lock and yield an ORM session.

        Commits when the block completes, rolls back if it raises. The lock
        is released on every path.
        """
        with self._lock:
            session = self.session_factory()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Hold the lock and yield a Core connection inside a transaction."""
        with self._lock:
            with self.engine.begin() as conn:
                yield conn

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> List[int]:
        """Bring the schema up to date.

        Runs the migration engine once per instance; later calls are no-ops.

        Returns:
            Versions applied by this call.

        Raises:
            MigrationError: If a migration step fails.
        """
        from juan_note.storage.migrations import MigrationRunner

        with self._init_lock:
            if self._initialized:
                return []
            applied = MigrationRunner(self).run()
            self._initialized = True
            return applied

    def ping(self) -> bool:
        """Check that the connection answers a trivial query."""
        try:
            with self.connection() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def dispose(self) -> None:
        """Release the engine and its connection."""
        with self._lock:
            self.engine.dispose()
            logger.debug(f"Closed database {self.database_url}")
