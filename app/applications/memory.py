# app/applications/memory.py
from __future__ import annotations

from dataclasses import fields, replace
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from app.applications.errors import Conflict
from app.applications.model import (
    Application,
    ApplicationDocument,
    ApplicationFilter,
    ApplicationStatus,
    Profile,
    ReviewerAssignment,
    Role,
    StatusHistoryEntry,
)
from app.applications.store import matches_expectations


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_row(application: Application) -> dict[str, Any]:
    return {f.name: getattr(application, f.name) for f in fields(application)}


class InMemoryApplicationStore:
    """
    Test/dev store.

    Every check-and-set runs under one lock, which gives the same
    at-most-once guarantee the Postgres conditional UPDATE gives.
    """

    def __init__(self):
        self._lock = RLock()
        self._profiles: dict[UUID, Profile] = {}
        self._applications: dict[UUID, Application] = {}
        self._documents: dict[UUID, ApplicationDocument] = {}
        self._history: list[StatusHistoryEntry] = []
        self._assignments: dict[tuple[UUID, UUID], ReviewerAssignment] = {}
        # number of successful writes, handy for "no mutation" assertions
        self.write_count = 0

    # ---------------- profiles ----------------

    def get_profile(self, user_id: UUID) -> Optional[Profile]:
        with self._lock:
            return self._profiles.get(user_id)

    def upsert_profile(self, profile: Profile) -> Profile:
        with self._lock:
            if profile.created_at is None:
                profile = replace(profile, created_at=_utcnow())
            self._profiles[profile.id] = profile
            self.write_count += 1
            return profile

    def ensure_profile(self, user_id: UUID, email: str) -> Profile:
        with self._lock:
            existing = self._profiles.get(user_id)
            if existing:
                return existing
            return self.upsert_profile(Profile(id=user_id, email=email, role=Role.APPLICANT))

    # ---------------- applications ----------------

    def insert_application(self, application: Application, *, actor_id: UUID) -> Application:
        with self._lock:
            active = [
                a
                for a in self._applications.values()
                if a.user_id == application.user_id and a.current_status != ApplicationStatus.DECISION_RELEASED
            ]
            if active:
                raise Conflict("Applicant already has an active application")
            now = _utcnow()
            application = replace(application, created_at=now, updated_at=now)
            self._applications[application.id] = application
            self.write_count += 1
            return application

    def get_application(self, application_id: UUID) -> Optional[Application]:
        with self._lock:
            return self._applications.get(application_id)

    def latest_application_for_owner(self, owner_id: UUID) -> Optional[Application]:
        with self._lock:
            owned = [a for a in self._applications.values() if a.user_id == owner_id]
        if not owned:
            return None
        return max(owned, key=lambda a: a.created_at)

    def list_applications(self, flt: ApplicationFilter) -> list[Application]:
        with self._lock:
            items = list(self._applications.values())
            assigned = {app_id for (app_id, reviewer_id) in self._assignments if reviewer_id == flt.reviewer_id}

        out = []
        for a in items:
            if flt.status is not None and a.current_status != flt.status:
                continue
            if flt.pending_payment and not (a.current_status == ApplicationStatus.SUBMITTED and not a.payment_verified):
                continue
            if flt.with_decision is True and a.decision is None:
                continue
            if flt.with_decision is False and a.decision is not None:
                continue
            if flt.owner_id is not None and a.user_id != flt.owner_id:
                continue
            if flt.reviewer_id is not None and a.id not in assigned:
                continue
            out.append(a)

        out.sort(key=lambda a: a.created_at, reverse=True)
        return out if flt.limit is None else out[: flt.limit]

    def apply_update(
        self,
        application_id: UUID,
        *,
        actor_id: UUID,
        expect: Mapping[str, Any],
        changes: Mapping[str, Any],
        history: Sequence[StatusHistoryEntry] = (),
    ) -> Optional[Application]:
        with self._lock:
            current = self._applications.get(application_id)
            if current is None:
                return None
            if not matches_expectations(_as_row(current), expect):
                return None

            now = _utcnow()
            updated = replace(current, **dict(changes), version=current.version + 1, updated_at=now)
            self._applications[application_id] = updated
            for entry in history:
                self._history.append(replace(entry, id=entry.id or uuid4(), changed_at=entry.changed_at or now))
            self.write_count += 1
            return updated

    # ---------------- documents ----------------

    def insert_document(
        self, document: ApplicationDocument, *, actor_id: UUID, require_status: ApplicationStatus
    ) -> Optional[ApplicationDocument]:
        with self._lock:
            owner = self._applications.get(document.application_id)
            if owner is None or owner.current_status != require_status:
                return None
            if any(
                d.application_id == document.application_id and d.file_type == document.file_type
                for d in self._documents.values()
            ):
                raise Conflict(f"A {document.file_type.value} document is already uploaded; delete it first")
            document = replace(document, uploaded_at=document.uploaded_at or _utcnow())
            self._documents[document.id] = document
            self.write_count += 1
            return document

    def get_document(self, document_id: UUID) -> Optional[ApplicationDocument]:
        with self._lock:
            return self._documents.get(document_id)

    def list_documents(self, application_id: UUID) -> list[ApplicationDocument]:
        with self._lock:
            docs = [d for d in self._documents.values() if d.application_id == application_id]
        return sorted(docs, key=lambda d: d.uploaded_at)

    def delete_document(self, document_id: UUID, *, actor_id: UUID, require_status: ApplicationStatus) -> bool:
        with self._lock:
            doc = self._documents.get(document_id)
            if doc is None:
                return False
            owner = self._applications.get(doc.application_id)
            if owner is None or owner.current_status != require_status:
                return False
            del self._documents[document_id]
            self.write_count += 1
            return True

    # ---------------- history ----------------

    def list_history(self, application_id: UUID) -> list[StatusHistoryEntry]:
        with self._lock:
            return [h for h in self._history if h.application_id == application_id]

    # ---------------- assignments ----------------

    def is_assigned(self, application_id: UUID, reviewer_id: UUID) -> bool:
        with self._lock:
            return (application_id, reviewer_id) in self._assignments

    def assign_reviewer(self, application_id: UUID, reviewer_id: UUID, *, actor_id: UUID) -> ReviewerAssignment:
        with self._lock:
            key = (application_id, reviewer_id)
            existing = self._assignments.get(key)
            if existing:
                return existing
            assignment = ReviewerAssignment(application_id=application_id, reviewer_id=reviewer_id, assigned_at=_utcnow())
            self._assignments[key] = assignment
            self.write_count += 1
            return assignment

    def ping(self) -> bool:
        return True
