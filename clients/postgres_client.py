"""
PostgreSQL client with connection pooling and unit-of-work transactions.

Uses psycopg2 with ThreadedConnectionPool. Outside a transaction every
statement runs on a pooled connection and commits immediately. Inside
`transaction()` all statements share one pinned connection and commit (or
roll back) together when the outermost block exits.
"""

import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Tuple

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

# Connection pinned by the innermost active transaction() block
_pinned_connection: ContextVar[Any | None] = ContextVar("pinned_connection", default=None)


class PostgresClient:
    """
    PostgreSQL client for the auth tables (users, verification_tokens,
    mfa_codes, security_events).

    Usage:
        db = PostgresClient(database_url)

        row = db.execute_single("SELECT * FROM users WHERE email = %s", (email,))

        with db.transaction():
            db.execute("DELETE FROM verification_tokens WHERE user_id = %s", (1,))
            db.execute_returning("INSERT INTO verification_tokens ... RETURNING id", ...)
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=2,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )
                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        """Borrow a pooled connection; returns it to the pool afterwards."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")
            yield conn
        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run every statement in the block as one atomic unit of work.

        Re-entrant: nested blocks join the outer transaction and only the
        outermost block commits. Any exception rolls the whole unit back.
        """
        if _pinned_connection.get() is not None:
            yield
            return

        with self.get_connection() as conn:
            marker = _pinned_connection.set(conn)
            try:
                yield
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                _pinned_connection.reset(marker)

    @contextmanager
    def _cursor(self, dict_rows: bool = True) -> Iterator[Any]:
        """Cursor on the pinned connection if in a transaction, else autocommit per call."""
        factory = psycopg2.extras.RealDictCursor if dict_rows else None
        pinned = _pinned_connection.get()

        if pinned is not None:
            with pinned.cursor(cursor_factory=factory) as cur:
                yield cur
            return

        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=factory) as cur:
                    yield cur
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self._cursor() as cur:
            cur.execute(query, params)
            if cur.description:
                return [dict(row) for row in cur.fetchall()]
            return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        with self._cursor(dict_rows=False) as cur:
            cur.execute(query, params)
            result = cur.fetchone()
            return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE/DELETE with RETURNING, return the returned rows."""
        with self._cursor() as cur:
            cur.execute(query, params)
            return [dict(row) for row in cur.fetchall()]

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
