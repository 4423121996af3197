"""
Database connection and query utilities.

Wraps a psycopg connection pool and exposes a small set of helpers that
return rows as dictionaries. A Database is created once at the application
boundary and handed to every repository that needs it.

Transactions bind a single pooled connection to the current context: every
helper called inside a ``with db.transaction():`` block runs on that
connection, so the statements commit or roll back together. Tests can use
bind() to inject a connection the same way.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from correlator.config import Config

logger = logging.getLogger(__name__)


class Database:
    """Pooled access to the PostgreSQL store."""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool
        self._bound: ContextVar[psycopg.Connection | None] = ContextVar(
            f"correlator_db_{id(self)}", default=None
        )

    @classmethod
    def from_config(cls, config: Config) -> "Database":
        """Open a connection pool using the given configuration."""
        pool = ConnectionPool(
            config.database_url,
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            timeout=config.pool_timeout,
            max_idle=config.pool_max_idle,
            open=True,
        )
        logger.info(
            "Connection pool opened min_size=%s max_size=%s",
            config.pool_min_size,
            config.pool_max_size,
        )
        return cls(pool)

    def close(self) -> None:
        self.pool.close()
        logger.info("Connection pool closed")

    # =========================================================================
    # Connection Binding
    # =========================================================================

    def bind(self, conn: psycopg.Connection) -> None:
        """
        Use ``conn`` for all subsequent operations in this context.

        The caller owns the connection: nothing here commits, rolls back
        or closes it.
        """
        self._bound.set(conn)

    def unbind(self) -> None:
        """Clear the bound connection, restoring pooled behavior."""
        self._bound.set(None)

    @property
    def bound_connection(self) -> psycopg.Connection | None:
        return self._bound.get()

    # =========================================================================
    # Connection Management
    # =========================================================================

    @contextmanager
    def connection(self):
        """
        Context manager for a database connection.

        Without a bound connection a connection is borrowed from the pool,
        committed on successful exit, rolled back on exception and returned
        to the pool. With a bound connection that connection is yielded
        untouched.
        """
        conn = self._bound.get()
        if conn is not None:
            yield conn
            return

        with self.pool.connection() as conn:
            yield conn

    @contextmanager
    def cursor(self):
        """
        Context manager for a cursor with dict rows.

        Usage:
            with db.cursor() as cur:
                cur.execute("SELECT * FROM datasets")
                rows = cur.fetchall()  # List of dicts
        """
        with self.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                yield cur

    @contextmanager
    def transaction(self):
        """
        Run a block on one connection, atomically.

        The connection is bound for the duration of the block so helpers
        called inside it join the transaction. Commits on success, rolls
        back on any exception, and always releases the connection. Nested
        blocks create a savepoint on the already bound connection.
        """
        conn = self._bound.get()
        if conn is not None:
            with conn.transaction():
                yield conn
            return

        with self.pool.connection() as conn:
            token = self._bound.set(conn)
            try:
                with conn.transaction():
                    yield conn
            finally:
                self._bound.reset(token)

    # =========================================================================
    # Query Helpers
    # =========================================================================

    def execute(self, query: str, params: tuple | list = None) -> int:
        """
        Execute a query without returning results.

        Returns:
            Number of rows affected
        """
        with self.cursor() as cur:
            cur.execute(query, params)
            return cur.rowcount

    def fetch_one(self, query: str, params: tuple | list = None) -> dict[str, Any] | None:
        """
        Execute a query and return a single row as dict.

        Returns:
            Dict of column names to values, or None if no row found
        """
        with self.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchone()

    def fetch_all(self, query: str, params: tuple | list = None) -> list[dict[str, Any]]:
        """
        Execute a query and return all rows as list of dicts.

        Returns:
            List of dicts, empty list if no rows found
        """
        with self.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def fetch_value(self, query: str, params: tuple | list = None) -> Any:
        """Execute a query and return the first column of the first row."""
        row = self.fetch_one(query, params)
        if not row:
            return None
        return next(iter(row.values()))

    # =========================================================================
    # Schema
    # =========================================================================

    def apply_migrations(self, path: Path) -> list[str]:
        """
        Apply every ``*.sql`` file under ``path`` in name order.

        All files run in a single transaction.

        Returns:
            Names of the applied files
        """
        files = sorted(Path(path).glob("*.sql"))
        if not files:
            raise FileNotFoundError(f"No migration files found in {path}")

        with self.transaction() as conn:
            for file in files:
                logger.info("Applying migration file=%s", file.name)
                conn.execute(file.read_text())
        return [file.name for file in files]
