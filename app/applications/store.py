# app/applications/store.py
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence
from uuid import UUID

from app.applications.model import (
    Application,
    ApplicationDocument,
    ApplicationFilter,
    ApplicationStatus,
    Profile,
    ReviewerAssignment,
    StatusHistoryEntry,
)


class _IsSet:
    def __repr__(self) -> str:
        return "IS_SET"


# Precondition value meaning "column is not null"
IS_SET: Any = _IsSet()


class ApplicationStore(Protocol):
    """
    Data-access contract for the portal.

    `apply_update` is the only way status/payment fields change: it applies `changes`
    only if every column in `expect` still holds its expected value, and appends
    `history` in the same transaction. Returns the updated row, or None when the
    row is missing or a precondition no longer holds (nothing is written then).
    """

    # profiles
    def get_profile(self, user_id: UUID) -> Optional[Profile]: ...
    def upsert_profile(self, profile: Profile) -> Profile: ...
    def ensure_profile(self, user_id: UUID, email: str) -> Profile: ...

    # applications
    def insert_application(self, application: Application, *, actor_id: UUID) -> Application: ...
    def get_application(self, application_id: UUID) -> Optional[Application]: ...
    def latest_application_for_owner(self, owner_id: UUID) -> Optional[Application]: ...
    def list_applications(self, flt: ApplicationFilter) -> list[Application]: ...
    def apply_update(
        self,
        application_id: UUID,
        *,
        actor_id: UUID,
        expect: Mapping[str, Any],
        changes: Mapping[str, Any],
        history: Sequence[StatusHistoryEntry] = (),
    ) -> Optional[Application]: ...

    # documents
    def insert_document(
        self, document: ApplicationDocument, *, actor_id: UUID, require_status: ApplicationStatus
    ) -> Optional[ApplicationDocument]: ...
    def get_document(self, document_id: UUID) -> Optional[ApplicationDocument]: ...
    def list_documents(self, application_id: UUID) -> list[ApplicationDocument]: ...
    def delete_document(
        self, document_id: UUID, *, actor_id: UUID, require_status: ApplicationStatus
    ) -> bool: ...

    # history
    def list_history(self, application_id: UUID) -> list[StatusHistoryEntry]: ...

    # reviewer assignments
    def is_assigned(self, application_id: UUID, reviewer_id: UUID) -> bool: ...
    def assign_reviewer(self, application_id: UUID, reviewer_id: UUID, *, actor_id: UUID) -> ReviewerAssignment: ...

    def ping(self) -> bool: ...


def matches_expectations(row: Mapping[str, Any], expect: Mapping[str, Any]) -> bool:
    for key, wanted in expect.items():
        current = row.get(key)
        if wanted is IS_SET:
            if current is None:
                return False
        elif current != wanted:
            return False
    return True
