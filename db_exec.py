# db_exec.py
from __future__ import annotations

from typing import Any, Optional, Sequence

import psycopg2
from psycopg2.extensions import connection as Connection
from psycopg2.extras import RealDictCursor

from services.db_errors import raise_portal_error_from_db


def db_fetchone(conn: Connection, sql: str, params: Optional[Sequence[Any] | dict] = None) -> Optional[dict]:
    """
    Execute on the provided connection (preserves the app.user_id session var).
    """
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params or ())
            row = cur.fetchone()
            return dict(row) if row else None
    except psycopg2.Error as e:
        raise_portal_error_from_db(e)
        raise


def db_fetchall(conn: Connection, sql: str, params: Optional[Sequence[Any] | dict] = None) -> list[dict]:
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(sql, params or ())
            return [dict(r) for r in cur.fetchall()]
    except psycopg2.Error as e:
        raise_portal_error_from_db(e)
        raise


def db_execute(conn: Connection, sql: str, params: Optional[Sequence[Any] | dict] = None) -> int:
    """
    Returns the affected row count so callers can detect a failed conditional update.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(sql, params or ())
            return cur.rowcount
    except psycopg2.Error as e:
        raise_portal_error_from_db(e)
        raise
