"""
PCP Database Connections

The engine only ever reads from the PCP database, so every connection handed
out here is put in a read-only, autocommit session. Connections come from a
psycopg2 ThreadedConnectionPool; when the pool is unavailable or exhausted a
one-off direct connection is opened and closed after use.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

import psycopg2
from psycopg2 import pool

from utils.config import get_database_config

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10


class DatabasePool:
    """Read-only connection provider for the PCP database."""

    def __init__(self, db_config: Optional[Dict[str, Any]] = None):
        """
        Args:
            db_config: psycopg2 connection arguments, read from the
                environment (PCPDB_*) when omitted

        Raises:
            ValueError: If required configuration is missing
        """
        self.db_config = dict(db_config) if db_config is not None else get_database_config()
        self.db_config.setdefault("sslmode", "prefer")
        self.db_config.setdefault("connect_timeout", CONNECT_TIMEOUT_SECONDS)

        self.pool: Optional[pool.AbstractConnectionPool] = None
        self.pool_lock = threading.Lock()
        self.stats = {
            "checkouts": 0,
            "checkins": 0,
            "exhausted": 0,
            "direct": 0,
            "errors": 0,
        }

    def initialize_pool(self, min_connections: int = 1, max_connections: int = 5) -> bool:
        """
        Open the pooled connections.

        A failure is not fatal: get_connection() then opens direct connections.

        Returns:
            bool: True if the pool is available
        """
        with self.pool_lock:
            if self.pool is not None:
                return True
            try:
                self.pool = psycopg2.pool.ThreadedConnectionPool(
                    min_connections, max_connections, **self.db_config
                )
            except psycopg2.Error as e:
                self.stats["errors"] += 1
                logger.error(f"Could not open PCP pool ({self.db_config.get('host')}): {e}")
                return False

        logger.info(f"PCP pool open: {min_connections}-{max_connections} connections to {self.db_config.get('host')}")
        return True

    def _checkout(self):
        """Return (connection, pooled)."""
        if self.pool is not None:
            try:
                connection = self.pool.getconn()
                self.stats["checkouts"] += 1
                return connection, True
            except pool.PoolError:
                self.stats["exhausted"] += 1
                logger.warning("PCP pool exhausted, opening a direct connection")

        self.stats["direct"] += 1
        return psycopg2.connect(**self.db_config), False

    def _checkin(self, connection, pooled: bool):
        try:
            if pooled and self.pool is not None:
                self.pool.putconn(connection)
                self.stats["checkins"] += 1
            else:
                connection.close()
        except psycopg2.Error as e:
            self.stats["errors"] += 1
            logger.warning(f"Could not release PCP connection: {e}")

    @contextmanager
    def get_connection(self):
        """
        Borrow a read-only connection.

        Yields:
            psycopg2.connection in a read-only autocommit session

        Example:
            >>> with DatabasePool().get_connection() as conn:
            ...     with conn.cursor() as cursor:
            ...         cursor.execute("SELECT id, name FROM products")
        """
        connection = None
        pooled = False
        started = time.monotonic()

        try:
            connection, pooled = self._checkout()
            connection.set_session(readonly=True, autocommit=True)
            yield connection
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(f"PCP query failed after {time.monotonic() - started:.2f}s: {e}")
            raise
        finally:
            if connection is not None:
                self._checkin(connection, pooled)

    def close_pool(self):
        with self.pool_lock:
            if self.pool is None:
                return
            try:
                self.pool.closeall()
                logger.info("PCP pool closed")
            except psycopg2.Error as e:
                self.stats["errors"] += 1
                logger.warning(f"Error closing PCP pool: {e}")
            finally:
                self.pool = None

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.copy()
        stats["pooled"] = self.pool is not None
        return stats

    def health_check(self) -> bool:
        """True when a trivial query round-trips."""
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                    return cursor.fetchone() is not None
        except Exception as e:
            logger.error(f"PCP health check failed: {e}")
            return False


_pcp_pool: Optional[DatabasePool] = None
_pcp_pool_lock = threading.Lock()


def get_pool() -> DatabasePool:
    """
    Shared PCP pool, created on first use.

    Raises:
        ValueError: If database configuration is missing
    """
    global _pcp_pool

    with _pcp_pool_lock:
        if _pcp_pool is None:
            _pcp_pool = DatabasePool()
            _pcp_pool.initialize_pool()
        return _pcp_pool


def close_all_pools():
    global _pcp_pool

    with _pcp_pool_lock:
        if _pcp_pool is not None:
            _pcp_pool.close_pool()
            _pcp_pool = None


@contextmanager
def get_pcp_connection():
    """Borrow a read-only connection from the shared PCP pool."""
    with get_pool().get_connection() as conn:
        yield conn
