"""
db/connection.py
----------------
Manages the PostgreSQL connection pool and hands out transactional resources.
Uses psycopg2's ThreadedConnectionPool so concurrent inserts on separate
threads each borrow their own connection.
"""

from typing import Optional

import psycopg2
from psycopg2 import extensions, pool

from config import DATABASE_URL, DB_POOL_MAX, DB_POOL_MIN
from db.errors import ResourceError
from db.resource import PgResource
from utils.logger import get_logger

logger = get_logger(__name__)


class ConnectionPoolProvider:
    """
    ResourceProvider backed by a psycopg2 connection pool.

    Every `acquire()` borrows one connection and wraps it in a `PgResource`
    whose `release()` hands the connection back.
    """

    def __init__(self, dsn: str = DATABASE_URL, min_conn: int = DB_POOL_MIN,
                 max_conn: int = DB_POOL_MAX, connection_pool=None):
        if connection_pool is not None:
            self._pool = connection_pool
            return
        try:
            self._pool = pool.ThreadedConnectionPool(min_conn, max_conn, dsn)
            logger.info("Database connection pool initialized successfully.")
        except psycopg2.OperationalError as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise ResourceError(f"Database unreachable: {e}") from e

    def acquire(self) -> PgResource:
        """
        Borrow a connection from the pool.

        Raises:
            ResourceError: If the pool is closed, exhausted or the server is down.
        """
        if self._pool is None:
            raise ResourceError("Connection pool is closed")
        try:
            conn = self._pool.getconn()
        except (pool.PoolError, psycopg2.Error) as e:
            logger.error(f"Failed to get connection from pool: {e}")
            raise ResourceError(f"Failed to get connection: {e}") from e
        return PgResource(conn, self._putconn)

    def _putconn(self, conn) -> None:
        if self._pool is None:
            conn.close()
            return
        # Anything left open (e.g. after a failed rollback) must not leak into the next borrower.
        try:
            if not conn.closed:
                if conn.get_transaction_status() != extensions.TRANSACTION_STATUS_IDLE:
                    conn.rollback()
                conn.autocommit = False
        except psycopg2.Error as e:
            logger.error(f"Discarding broken connection: {e}")
            self._pool.putconn(conn, close=True)
            raise
        self._pool.putconn(conn)

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("Database connection pool closed.")


_provider: Optional[ConnectionPoolProvider] = None


def init_pool(min_conn: int = DB_POOL_MIN, max_conn: int = DB_POOL_MAX) -> ConnectionPoolProvider:
    """
    Initialize the process-wide connection pool.

    Args:
        min_conn: Minimum number of connections to keep open.
        max_conn: Maximum number of connections allowed.

    Raises:
        ResourceError: If the database is unreachable.
    """
    global _provider
    if _provider is None:
        _provider = ConnectionPoolProvider(DATABASE_URL, min_conn, max_conn)
    return _provider


def get_provider() -> ConnectionPoolProvider:
    """
    Get the process-wide provider.

    Raises:
        RuntimeError: If the pool has not been initialized.
    """
    if _provider is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return _provider


def close_pool() -> None:
    """Close the process-wide pool."""
    global _provider
    if _provider is not None:
        _provider.close()
        _provider = None
