# db.py
from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from uuid import UUID

import psycopg2
import psycopg2.extras
from psycopg2.extensions import cursor as Cursor
from psycopg2.pool import ThreadedConnectionPool

from services.db_errors import raise_portal_error_from_db


class ConnectionPool:
    """
    PostgreSQL connection pool, one per process.
    Built lazily so importing the app never opens a socket.
    """

    def __init__(
        self,
        dsn: str,
        *,
        minconn: int = 1,
        maxconn: int = 10,
        application_name: str = "applicant_portal",
    ):
        self.dsn = dsn
        self.minconn = minconn
        self.maxconn = maxconn
        self.application_name = application_name
        self._pool: ThreadedConnectionPool | None = None
        self._lock = Lock()

    def _ensure(self) -> ThreadedConnectionPool:
        with self._lock:
            if self._pool is None:
                psycopg2.extras.register_uuid()
                self._pool = ThreadedConnectionPool(
                    minconn=self.minconn,
                    maxconn=self.maxconn,
                    dsn=self.dsn,
                    connect_timeout=5,
                )
            return self._pool

    def close(self) -> None:
        with self._lock:
            if self._pool:
                self._pool.closeall()
                self._pool = None

    @contextmanager
    def connection(self):
        """
        Provides a transactional DB connection.
        Auto-commits on success, rolls back on error.
        """
        try:
            pool = self._ensure()
            conn = pool.getconn()
        except psycopg2.Error as e:
            raise_portal_error_from_db(e)
            raise

        try:
            # never allow long-running queries
            with conn.cursor() as cur:
                cur.execute("SET statement_timeout = '5000ms';")
                cur.execute("SET idle_in_transaction_session_timeout = '5000ms';")
                cur.execute("SET application_name = %s;", (self.application_name,))

            yield conn
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            pool.putconn(conn)


def set_db_actor(cur: Cursor, user_id: UUID) -> None:
    """
    Sets the transaction-local actor so row-level security policies can see the caller.
    Must be called inside the same transaction as the statements it guards.
    """
    cur.execute("SELECT set_config('app.user_id', %s, true);", (str(user_id),))
