"""PostgreSQL connection pool for the badge store.

Page tasks run on several threads and all of them write records, so the
pool is a psycopg2 ThreadedConnectionPool created once, on first use,
under a lock. ThreadedConnectionPool raises PoolError instead of waiting
when every connection is checked out, so checkouts go through a semaphore
with one slot per connection.
"""

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
from psycopg2.extensions import cursor as psycopg_cursor
from psycopg2.pool import ThreadedConnectionPool

from env_config import get_crawl_page_workers, get_database_url

logger = logging.getLogger(__name__)

# Connections beyond one per page worker (CLI, health check)
SPARE_CONNECTIONS = 2

_pool: ThreadedConnectionPool | None = None
_slots: threading.BoundedSemaphore | None = None
_pool_lock = threading.Lock()


def pool_size_for(page_workers: int | None = None) -> int:
    """Connections needed so every page worker can hold one at once."""
    return (page_workers or get_crawl_page_workers()) + SPARE_CONNECTIONS


def init_connection_pool(
    min_connections: int = 1, max_connections: int | None = None
) -> ThreadedConnectionPool:
    """Return the shared pool, creating it on first call.

    Args:
        min_connections: Connections opened up front.
        max_connections: Upper bound (default: pool_size_for() the
            configured CRAWL_PAGE_WORKERS). Only the first call sizes the pool.

    Raises:
        psycopg2.Error: If the database cannot be reached.
    """
    global _pool, _slots

    with _pool_lock:
        if _pool is None:
            size = max_connections or pool_size_for()
            _pool = ThreadedConnectionPool(
                minconn=min(min_connections, size),
                maxconn=size,
                dsn=get_database_url(),
            )
            _slots = threading.BoundedSemaphore(size)
            logger.debug(f"Opened connection pool (max {size})")
        elif max_connections and max_connections > _pool.maxconn:
            logger.warning(
                f"Connection pool already open with {_pool.maxconn} connections; "
                f"{max_connections} requested, extra callers will wait"
            )
        return _pool


@contextmanager
def get_cursor(max_connections: int | None = None) -> Generator[psycopg_cursor, None, None]:
    """Run a block as one transaction on a pooled connection.

    Commits when the block exits normally; rolls back and re-raises when
    anything inside it raises. Blocks while every pooled connection is in use.

    Args:
        max_connections: Pool size to use if this call creates the pool.

    Yields:
        A database cursor.

    Example:
        >>> with get_cursor() as cur:
        ...     cur.execute("SELECT value FROM buttons WHERE hash = %s", (h,))
        ...     row = cur.fetchone()
    """
    pool = init_connection_pool(max_connections=max_connections)
    slots = _slots
    slots.acquire()
    try:
        conn = pool.getconn()
        try:
            with conn.cursor() as cursor:
                try:
                    yield cursor
                except BaseException:
                    conn.rollback()
                    raise
                conn.commit()
        finally:
            pool.putconn(conn)
    finally:
        slots.release()


def check_database_available(max_connections: int | None = None) -> bool:
    """Check that the database at DATABASE_URL answers a trivial query.

    Args:
        max_connections: Pool size to use if this call creates the pool.

    Returns:
        True if reachable, False otherwise.
    """
    try:
        with get_cursor(max_connections=max_connections) as cur:
            cur.execute("SELECT 1")
            return cur.fetchone() is not None
    except psycopg2.Error as e:
        logger.warning(f"Database not available: {e}")
        return False


def close_all_connections() -> None:
    """Close every pooled connection and forget the pool."""
    global _pool, _slots

    with _pool_lock:
        if _pool is not None:
            _pool.closeall()
            _pool = None
            _slots = None
