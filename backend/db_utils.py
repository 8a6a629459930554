#!/usr/bin/env python3
"""
Database Utilities

Wraps a psycopg_pool connection pool in an explicitly constructed Database
object. The app creates one at startup, hands it to EventStore, and closes it
at process exit; nothing here is module-level state.

Usage:
    database = Database(conninfo, min_size=2, max_size=5)
    database.open()
    with database.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
    database.close()
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)


class Database:
    """Connection pool lifecycle plus a connection context manager"""

    def __init__(self, conninfo: str, min_size: int = 2, max_size: int = 5,
                 timeout: float = 30):
        """
        Args:
            conninfo: PostgreSQL connection string
            min_size: Connections kept warm
            max_size: Upper bound on pooled connections
            timeout: Seconds to wait for a free connection
        """
        self.conninfo = conninfo
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.pool: Optional[ConnectionPool] = None
        self._lock = threading.Lock()

    def open(self, max_retries=3, retry_delay=2):
        """
        Open the connection pool, retrying with backoff

        Returns:
            bool: True if the pool is open

        Raises:
            RuntimeError: If the pool could not be opened after all retries
        """
        with self._lock:
            if self.pool is not None:
                logger.debug("Connection pool already initialized")
                return True

            for attempt in range(max_retries):
                try:
                    logger.info(f"Initializing connection pool (attempt {attempt + 1}/{max_retries})...")
                    pool = ConnectionPool(
                        self.conninfo,
                        min_size=self.min_size,
                        max_size=self.max_size,
                        open=True,
                        timeout=self.timeout,
                        max_lifetime=1800,
                        max_idle=600,
                        kwargs={
                            'row_factory': dict_row,
                            'connect_timeout': 10,
                            'autocommit': False,
                        }
                    )

                    with pool.connection() as conn:
                        with conn.cursor() as cur:
                            cur.execute("SELECT 1 AS test")
                            cur.fetchone()

                    self.pool = pool
                    logger.info(f"Connection pool initialized: {self.get_pool_stats()}")
                    return True

                except psycopg.Error as e:
                    logger.error(f"Connection pool initialization failed (attempt {attempt + 1}/{max_retries}): {e}")
                    if attempt < max_retries - 1:
                        wait_time = retry_delay * (1.5 ** attempt)
                        logger.info(f"Retrying in {wait_time:.1f} seconds...")
                        time.sleep(wait_time)

            raise RuntimeError("Failed to initialize connection pool after all retries")

    def close(self):
        """Close the connection pool"""
        with self._lock:
            if self.pool is None:
                return
            logger.info("Closing connection pool...")
            try:
                self.pool.close()
                logger.info("Connection pool closed")
            except psycopg.Error as e:
                logger.error(f"Error closing connection pool: {e}")
            self.pool = None

    @contextmanager
    def connection(self):
        """
        Borrow a pooled connection

        The transaction commits when the block exits normally and rolls back
        if it raises.
        """
        if self.pool is None:
            raise RuntimeError("Connection pool is not open")

        try:
            with self.pool.connection() as conn:
                yield conn
        except psycopg.OperationalError as e:
            logger.error(f"Database operational error: {e}")
            raise

    def get_pool_stats(self):
        """Get current connection pool statistics"""
        if self.pool is None:
            return None

        stats = self.pool.get_stats()
        return {
            'pool_size': stats.get('pool_size', 0),
            'pool_available': stats.get('pool_available', 0),
            'requests_waiting': stats.get('requests_waiting', 0)
        }

    def health(self):
        """
        Run a trivial query against the database

        Returns:
            Dict with database version and server time
        """
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT version() AS version, current_timestamp AS now")
                row = cur.fetchone()
        return {
            'db_version': row['version'],
            'db_time': str(row['now']),
            'pool_stats': self.get_pool_stats(),
        }
