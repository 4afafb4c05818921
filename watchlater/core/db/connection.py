"""Database connection and transaction management."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import aiosqlite
import structlog

from .exceptions import DatabaseConnectionError, QueryError, TransactionError

logger = structlog.get_logger(__name__)


class DatabaseConnection:
    """
    Owns one async SQLite connection and its transaction state.

    Writes issued outside :meth:`transaction` are committed one statement
    at a time via :meth:`commit_if_idle`. Inside a transaction those
    commits are deferred until the outermost block exits.
    """

    def __init__(
        self,
        db_path: Path,
        enable_wal: bool = True,
        timeout: int = 30,
    ):
        """
        Initialize database connection manager.

        Args:
            db_path: Path to SQLite database file
            enable_wal: Enable Write-Ahead Logging mode
            timeout: Seconds to wait on a locked database
        """
        self.db_path = db_path
        self.enable_wal = enable_wal
        self.timeout = timeout
        self._connection: Optional[aiosqlite.Connection] = None
        self._depth = 0

    @property
    def connection(self) -> aiosqlite.Connection:
        """Active connection; raises QueryError when not connected."""
        if self._connection is None:
            raise QueryError("No active connection")
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    async def connect(self) -> aiosqlite.Connection:
        """
        Establish database connection.

        Returns:
            Active database connection

        Raises:
            DatabaseConnectionError: If connection fails
        """
        if self._connection is not None:
            return self._connection

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._connection = await aiosqlite.connect(
                str(self.db_path),
                timeout=self.timeout,
            )
            self._connection.row_factory = aiosqlite.Row

            # State, tag, comment and membership rows rely on cascade deletes
            await self._connection.execute("PRAGMA foreign_keys = ON")

            if self.enable_wal:
                await self._connection.execute("PRAGMA journal_mode = WAL")

            logger.info(
                "database_connected",
                db_path=str(self.db_path),
                wal_mode=self.enable_wal,
            )
            return self._connection

        except Exception as e:
            logger.error(
                "database_connection_failed",
                db_path=str(self.db_path),
                error=str(e),
            )
            raise DatabaseConnectionError(
                f"Failed to connect to database: {e}",
                path=self.db_path,
            ) from e

    async def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._depth = 0
            logger.info("database_closed", db_path=str(self.db_path))

    async def commit_if_idle(self) -> None:
        """Commit the pending statement unless an explicit transaction is open."""
        if not self.in_transaction:
            await self.connection.commit()

    @asynccontextmanager
    async def transaction(self, operation: str = "transaction") -> AsyncIterator[aiosqlite.Connection]:
        """
        All-or-nothing block. Nested blocks join the outermost one.

        Raises:
            TransactionError: If any statement in the block fails; the whole
                block has been rolled back when this is raised.
        """
        conn = self.connection
        if self._depth > 0:
            self._depth += 1
            try:
                yield conn
            finally:
                self._depth -= 1
            return

        # Flush any implicit transaction left open by a previous statement
        if conn.in_transaction:
            await conn.commit()

        await conn.execute("BEGIN")
        self._depth = 1
        logger.debug("transaction_started", operation=operation)
        try:
            yield conn
        except Exception as e:
            self._depth = 0
            await conn.rollback()
            logger.error("transaction_rolled_back", operation=operation, error=str(e))
            raise TransactionError(f"{operation} failed: {e}", operation=operation) from e
        else:
            self._depth = 0
            await conn.commit()
            logger.debug("transaction_committed", operation=operation)

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Read block whose statements all observe the same database state.

        Errors are not wrapped: a failed read propagates unchanged.
        """
        conn = self.connection
        if self._depth > 0:
            yield conn
            return

        if conn.in_transaction:
            await conn.commit()

        await conn.execute("BEGIN")
        self._depth = 1
        try:
            yield conn
        finally:
            self._depth = 0
            await conn.commit()

    async def __aenter__(self) -> aiosqlite.Connection:
        """Context manager entry."""
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        await self.close()
