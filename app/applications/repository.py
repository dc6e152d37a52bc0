# app/applications/repository.py
from __future__ import annotations

from dataclasses import fields
from enum import Enum
from typing import Any, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from db import ConnectionPool, set_db_actor
from db_exec import db_execute, db_fetchall, db_fetchone
from app.applications.model import (
    Application,
    ApplicationDocument,
    ApplicationFilter,
    ApplicationStatus,
    Decision,
    DocumentType,
    HistoryReason,
    PaymentMethod,
    ProcessorStatus,
    Profile,
    ReviewerAssignment,
    Role,
    StatusHistoryEntry,
)
from app.applications.store import IS_SET

APPLICATION_COLUMNS = frozenset(f.name for f in fields(Application))
# written by the database, never by callers
_MANAGED_COLUMNS = frozenset({"id", "version", "created_at", "updated_at"})

_ENUM_COLUMNS = {
    "current_status": ApplicationStatus,
    "payment_method": PaymentMethod,
    "processor_status": ProcessorStatus,
    "decision": Decision,
}


def _adapt(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _row_to_application(row: dict) -> Application:
    data = {k: row.get(k) for k in APPLICATION_COLUMNS if k in row}
    for col, enum_cls in _ENUM_COLUMNS.items():
        if data.get(col) is not None:
            data[col] = enum_cls(data[col])
    return Application(**data)


def _row_to_document(row: dict) -> ApplicationDocument:
    return ApplicationDocument(
        id=row["id"],
        application_id=row["application_id"],
        file_path=row["file_path"],
        file_name=row["file_name"],
        file_type=DocumentType(row["file_type"]),
        uploaded_at=row.get("uploaded_at"),
    )


def _row_to_history(row: dict) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        id=row["id"],
        application_id=row["application_id"],
        old_status=ApplicationStatus(row["old_status"]) if row.get("old_status") else None,
        new_status=ApplicationStatus(row["new_status"]),
        changed_by=row["changed_by"],
        reason=HistoryReason(row.get("reason") or HistoryReason.GUARDED.value),
        changed_at=row.get("changed_at"),
    )


def _row_to_profile(row: dict) -> Profile:
    return Profile(
        id=row["id"],
        email=row["email"],
        role=Role(row["role"]),
        full_name=row.get("full_name"),
        created_at=row.get("created_at"),
    )


def _check_columns(names) -> None:
    unknown = set(names) - APPLICATION_COLUMNS
    if unknown:
        raise ValueError(f"Unknown application columns: {sorted(unknown)}")


def _where_clause(expect: Mapping[str, Any], params: dict[str, Any]) -> str:
    parts = []
    for i, (col, wanted) in enumerate(expect.items()):
        if wanted is IS_SET:
            parts.append(f"{col} IS NOT NULL")
        elif wanted is None:
            parts.append(f"{col} IS NULL")
        else:
            key = f"expect_{i}"
            params[key] = _adapt(wanted)
            parts.append(f"{col} = %({key})s")
    return "".join(f"\n  AND {p}" for p in parts)


class PostgresApplicationStore:
    """
    psycopg2 store. Every call runs in its own transaction with app.user_id set,
    so the row-level security policies from the schema migration apply.
    """

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    # ---------------- profiles ----------------

    def get_profile(self, user_id: UUID) -> Optional[Profile]:
        with self.pool.connection() as conn:
            row = db_fetchone(
                conn,
                "SELECT id, email, full_name, role, created_at FROM profiles WHERE id = %s",
                (user_id,),
            )
        return _row_to_profile(row) if row else None

    def upsert_profile(self, profile: Profile) -> Profile:
        with self.pool.connection() as conn:
            row = db_fetchone(
                conn,
                """
                INSERT INTO profiles (id, email, full_name, role)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE
                  SET email = EXCLUDED.email,
                      full_name = EXCLUDED.full_name,
                      role = EXCLUDED.role
                RETURNING id, email, full_name, role, created_at
                """,
                (profile.id, profile.email, profile.full_name, profile.role.value),
            )
        return _row_to_profile(row)

    def ensure_profile(self, user_id: UUID, email: str) -> Profile:
        with self.pool.connection() as conn:
            db_execute(
                conn,
                """
                INSERT INTO profiles (id, email, role)
                VALUES (%s, %s, 'applicant')
                ON CONFLICT (id) DO NOTHING
                """,
                (user_id, email),
            )
            row = db_fetchone(
                conn,
                "SELECT id, email, full_name, role, created_at FROM profiles WHERE id = %s",
                (user_id,),
            )
        return _row_to_profile(row)

    # ---------------- applications ----------------

    def insert_application(self, application: Application, *, actor_id: UUID) -> Application:
        values = {
            k: _adapt(getattr(application, k))
            for k in APPLICATION_COLUMNS - {"version", "created_at", "updated_at"}
        }
        cols = sorted(values)
        placeholders = ", ".join(f"%({c})s" for c in cols)
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                set_db_actor(cur, actor_id)
            row = db_fetchone(
                conn,
                f"INSERT INTO applications ({', '.join(cols)}) VALUES ({placeholders}) RETURNING *",
                values,
            )
        return _row_to_application(row)

    def get_application(self, application_id: UUID) -> Optional[Application]:
        with self.pool.connection() as conn:
            row = db_fetchone(conn, "SELECT * FROM applications WHERE id = %s", (application_id,))
        return _row_to_application(row) if row else None

    def latest_application_for_owner(self, owner_id: UUID) -> Optional[Application]:
        with self.pool.connection() as conn:
            row = db_fetchone(
                conn,
                """
                SELECT * FROM applications
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (owner_id,),
            )
        return _row_to_application(row) if row else None

    def list_applications(self, flt: ApplicationFilter) -> list[Application]:
        where = []
        params: dict[str, Any] = {}
        limit_sql = ""
        if flt.limit is not None:
            params["limit"] = max(1, int(flt.limit))
            limit_sql = "LIMIT %(limit)s"

        if flt.status is not None:
            where.append("a.current_status = %(status)s")
            params["status"] = flt.status.value
        if flt.pending_payment:
            where.append("a.current_status = 'submitted' AND NOT a.payment_verified")
        if flt.with_decision is True:
            where.append("a.decision IS NOT NULL")
        if flt.with_decision is False:
            where.append("a.decision IS NULL")
        if flt.owner_id is not None:
            where.append("a.user_id = %(owner_id)s")
            params["owner_id"] = flt.owner_id
        if flt.reviewer_id is not None:
            where.append(
                "EXISTS (SELECT 1 FROM reviewer_assignments ra"
                " WHERE ra.application_id = a.id AND ra.reviewer_id = %(reviewer_id)s)"
            )
            params["reviewer_id"] = flt.reviewer_id

        where_sql = ("WHERE " + " AND ".join(where)) if where else ""
        with self.pool.connection() as conn:
            rows = db_fetchall(
                conn,
                f"""
                SELECT a.* FROM applications a
                {where_sql}
                ORDER BY a.created_at DESC
                {limit_sql}
                """,
                params,
            )
        return [_row_to_application(r) for r in rows]

    def apply_update(
        self,
        application_id: UUID,
        *,
        actor_id: UUID,
        expect: Mapping[str, Any],
        changes: Mapping[str, Any],
        history: Sequence[StatusHistoryEntry] = (),
    ) -> Optional[Application]:
        _check_columns(expect)
        _check_columns(changes)
        if set(changes) & _MANAGED_COLUMNS:
            raise ValueError("Managed columns cannot be set directly")

        params: dict[str, Any] = {"id": application_id}
        sets = []
        for i, (col, value) in enumerate(changes.items()):
            key = f"set_{i}"
            params[key] = _adapt(value)
            sets.append(f"{col} = %({key})s")
        sets.append("version = version + 1")

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                set_db_actor(cur, actor_id)

            # conditional update: preconditions are re-checked under the row lock
            row = db_fetchone(
                conn,
                f"""
                UPDATE applications
                SET {', '.join(sets)}
                WHERE id = %(id)s{_where_clause(expect, params)}
                RETURNING *
                """,
                params,
            )
            if not row:
                return None

            for entry in history:
                db_execute(
                    conn,
                    """
                    INSERT INTO application_status_history
                      (id, application_id, old_status, new_status, changed_by, reason)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        entry.id or uuid4(),
                        entry.application_id,
                        _adapt(entry.old_status),
                        _adapt(entry.new_status),
                        entry.changed_by,
                        _adapt(entry.reason),
                    ),
                )

        return _row_to_application(row)

    # ---------------- documents ----------------

    def insert_document(
        self, document: ApplicationDocument, *, actor_id: UUID, require_status: ApplicationStatus
    ) -> Optional[ApplicationDocument]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                set_db_actor(cur, actor_id)
            # lock the owner row so a concurrent submit cannot slip between check and insert
            owner = db_fetchone(
                conn,
                "SELECT current_status FROM applications WHERE id = %s FOR UPDATE",
                (document.application_id,),
            )
            if not owner or owner["current_status"] != require_status.value:
                return None
            row = db_fetchone(
                conn,
                """
                INSERT INTO application_documents (id, application_id, file_path, file_name, file_type)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    document.id,
                    document.application_id,
                    document.file_path,
                    document.file_name,
                    document.file_type.value,
                ),
            )
        return _row_to_document(row)

    def get_document(self, document_id: UUID) -> Optional[ApplicationDocument]:
        with self.pool.connection() as conn:
            row = db_fetchone(conn, "SELECT * FROM application_documents WHERE id = %s", (document_id,))
        return _row_to_document(row) if row else None

    def list_documents(self, application_id: UUID) -> list[ApplicationDocument]:
        with self.pool.connection() as conn:
            rows = db_fetchall(
                conn,
                "SELECT * FROM application_documents WHERE application_id = %s ORDER BY uploaded_at",
                (application_id,),
            )
        return [_row_to_document(r) for r in rows]

    def delete_document(self, document_id: UUID, *, actor_id: UUID, require_status: ApplicationStatus) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                set_db_actor(cur, actor_id)
            deleted = db_execute(
                conn,
                """
                DELETE FROM application_documents d
                USING applications a
                WHERE d.id = %s
                  AND a.id = d.application_id
                  AND a.current_status = %s
                """,
                (document_id, require_status.value),
            )
        return deleted == 1

    # ---------------- history ----------------

    def list_history(self, application_id: UUID) -> list[StatusHistoryEntry]:
        with self.pool.connection() as conn:
            rows = db_fetchall(
                conn,
                """
                SELECT * FROM application_status_history
                WHERE application_id = %s
                ORDER BY changed_at, id
                """,
                (application_id,),
            )
        return [_row_to_history(r) for r in rows]

    # ---------------- assignments ----------------

    def is_assigned(self, application_id: UUID, reviewer_id: UUID) -> bool:
        with self.pool.connection() as conn:
            row = db_fetchone(
                conn,
                "SELECT 1 AS ok FROM reviewer_assignments WHERE application_id = %s AND reviewer_id = %s",
                (application_id, reviewer_id),
            )
        return row is not None

    def assign_reviewer(self, application_id: UUID, reviewer_id: UUID, *, actor_id: UUID) -> ReviewerAssignment:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                set_db_actor(cur, actor_id)
            db_execute(
                conn,
                """
                INSERT INTO reviewer_assignments (application_id, reviewer_id)
                VALUES (%s, %s)
                ON CONFLICT (application_id, reviewer_id) DO NOTHING
                """,
                (application_id, reviewer_id),
            )
            row = db_fetchone(
                conn,
                """
                SELECT application_id, reviewer_id, assigned_at FROM reviewer_assignments
                WHERE application_id = %s AND reviewer_id = %s
                """,
                (application_id, reviewer_id),
            )
        return ReviewerAssignment(**row)

    def ping(self) -> bool:
        with self.pool.connection() as conn:
            row = db_fetchone(conn, "SELECT 1 AS ok")
        return bool(row and row.get("ok") == 1)
