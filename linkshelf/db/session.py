"""Database session management.

``DatabaseSessionManager`` owns the SQLite connection and runs blocking
peewee work off the event loop with a timeout, retrying transient
"database is locked" errors. Writes are serialized by an asyncio lock;
reads rely on WAL for concurrency.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase

from linkshelf.db.models import ALL_MODELS, database_proxy

DB_OPERATION_TIMEOUT = 30.0
DB_MAX_RETRIES = 3


class RowSqliteDatabase(SqliteExtDatabase):
    """SQLite database subclass that configures the row factory for dict-like access."""

    def _connect(self) -> sqlite3.Connection:
        conn = super()._connect()
        conn.row_factory = sqlite3.Row
        return conn


@dataclass
class DatabaseSessionManager:
    """Peewee-backed session manager used by the SQLite repository adapters.

    Attributes:
        path: Path to the SQLite database file
        operation_timeout: Default timeout for database operations in seconds
        max_retries: Maximum retries for locked/busy errors
    """

    path: str
    operation_timeout: float = field(default=DB_OPERATION_TIMEOUT)
    max_retries: int = field(default=DB_MAX_RETRIES)
    _logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _database: peewee.SqliteDatabase = field(init=False)
    _write_lock: asyncio.Lock = field(init=False)

    def __post_init__(self) -> None:
        # Each worker thread opens its own connection; an in-memory database
        # would give every thread a separate empty store.
        if self.path == ":memory:" or self.path.startswith("file::memory:"):
            msg = "In-memory SQLite databases are not supported; use a file path"
            raise ValueError(msg)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._database = RowSqliteDatabase(
            self.path,
            pragmas={
                "journal_mode": "wal",
                "synchronous": "normal",
                "foreign_keys": 1,
            },
            check_same_thread=False,
        )
        database_proxy.initialize(self._database)
        self._write_lock = asyncio.Lock()

    @property
    def database(self) -> peewee.SqliteDatabase:
        return self._database

    def connection_context(self) -> Any:
        return self._database.connection_context()

    def migrate(self) -> None:
        """Create tables if they do not exist yet."""
        with self._database.connection_context(), self._database.bind_ctx(ALL_MODELS):
            self._database.create_tables(ALL_MODELS, safe=True)
        self._logger.info("db_migrated", extra={"path": self._mask_path(self.path)})

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()

    async def _safe_db_operation(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_operation",
        read_only: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Execute a database operation with timeout and locked/busy retries.

        Raises:
            TimeoutError: If the operation times out
            peewee.OperationalError: If the database stays locked after retries
            peewee.IntegrityError: On constraint violations
        """

        def _op_wrapper() -> Any:
            with self._database.connection_context():
                return operation(*args, **kwargs)

        return await self._run_with_retry(
            _op_wrapper,
            timeout=timeout,
            operation_name=operation_name,
            exclusive=not read_only,
            event_prefix="db",
        )

    async def _safe_db_transaction(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_transaction",
        **kwargs: Any,
    ) -> Any:
        """Execute an operation inside one atomic transaction.

        Either every statement issued by ``operation`` commits or none does.
        """

        def _execute_in_transaction() -> Any:
            with self._database.connection_context(), self._database.atomic() as txn:
                try:
                    return operation(*args, **kwargs)
                except BaseException:
                    txn.rollback()
                    raise

        return await self._run_with_retry(
            _execute_in_transaction,
            timeout=timeout,
            operation_name=operation_name,
            exclusive=True,
            event_prefix="db_transaction",
        )

    async def _run_with_retry(
        self,
        func: Any,
        *,
        timeout: float | None,
        operation_name: str,
        exclusive: bool,
        event_prefix: str,
    ) -> Any:
        if timeout is None:
            timeout = self.operation_timeout

        retries = 0
        while True:
            try:
                if exclusive:

                    async def _locked() -> Any:
                        async with self._write_lock:
                            return await asyncio.to_thread(func)

                    return await asyncio.wait_for(_locked(), timeout=timeout)
                return await asyncio.wait_for(asyncio.to_thread(func), timeout=timeout)

            except TimeoutError:
                self._logger.exception(
                    f"{event_prefix}_timeout",
                    extra={"operation": operation_name, "timeout": timeout, "retries": retries},
                )
                raise

            except peewee.OperationalError as e:
                error_msg = str(e).lower()
                if ("locked" in error_msg or "busy" in error_msg) and retries < self.max_retries:
                    retries += 1
                    wait_time = 0.1 * (2**retries)
                    self._logger.warning(
                        f"{event_prefix}_locked_retrying",
                        extra={
                            "operation": operation_name,
                            "retry": retries,
                            "max_retries": self.max_retries,
                            "wait_time": wait_time,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(wait_time)
                    continue

                self._logger.exception(
                    f"{event_prefix}_operational_error",
                    extra={"operation": operation_name, "retries": retries, "error": str(e)},
                )
                raise

            except peewee.IntegrityError as e:
                self._logger.warning(
                    f"{event_prefix}_integrity_error",
                    extra={"operation": operation_name, "error": str(e)},
                )
                raise

    @staticmethod
    def _mask_path(path: str) -> str:
        """Mask a path for logging (show only parent/filename)."""
        try:
            p = Path(path)
            if not p.name:
                return str(p)
            parent = p.parent.name
            if parent:
                return f".../{parent}/{p.name}"
            return p.name
        except (OSError, ValueError, AttributeError):
            return "..."
