# services/db_errors.py
from __future__ import annotations

import logging

import psycopg2
from psycopg2 import errorcodes

from app.applications.errors import Conflict, Forbidden, NotFound, UpstreamError, ValidationFailed

logger = logging.getLogger("portal.db")

# SQLSTATE -> (error class, client-safe message)
DB_ERROR_MAP = {
    errorcodes.UNIQUE_VIOLATION: (Conflict, "Duplicate record"),
    errorcodes.FOREIGN_KEY_VIOLATION: (NotFound, "Referenced record not found"),
    errorcodes.CHECK_VIOLATION: (ValidationFailed, "Value not allowed"),
    errorcodes.INSUFFICIENT_PRIVILEGE: (Forbidden, "Forbidden"),
    errorcodes.QUERY_CANCELED: (UpstreamError, "Database timeout"),
}


def _sqlstate(exc: Exception) -> str | None:
    code = getattr(exc, "pgcode", None)
    if code:
        return code
    diag = getattr(exc, "diag", None)
    return getattr(diag, "sqlstate", None) if diag is not None else None


def raise_portal_error_from_db(exc: Exception) -> None:
    """
    Convert a driver error into a typed portal error; unknown errors fail closed as upstream errors.
    The raw driver message is logged, never returned.
    """
    code = _sqlstate(exc)
    if code and code in DB_ERROR_MAP:
        cls, message = DB_ERROR_MAP[code]
        raise cls(message) from exc

    if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        logger.warning("db_unavailable error=%s", type(exc).__name__)
        raise UpstreamError("Database unavailable") from exc

    logger.error("db_error sqlstate=%s error=%s", code, type(exc).__name__)
    raise UpstreamError("Database error") from exc
