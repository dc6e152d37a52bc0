# app/applications/model.py
from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PAYMENT_RECEIVED = "payment_received"
    IN_REVIEW = "in_review"
    DECISION_RELEASED = "decision_released"


STATUS_ORDER: tuple[ApplicationStatus, ...] = tuple(ApplicationStatus)


class PaymentMethod(str, Enum):
    ATTESTATION = "attestation"
    PROCESSOR = "processor"


class ProcessorStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Decision(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DocumentType(str, Enum):
    APPLICATION = "application"
    SUPPORTING = "supporting_document"


class Role(str, Enum):
    APPLICANT = "applicant"
    REVIEWER = "reviewer"
    ADMIN = "admin"


class HistoryReason(str, Enum):
    GUARDED = "guarded"
    ADMIN_OVERRIDE = "admin_override"


CLASS_YEARS = ("2025", "2026", "2027", "2028", "2029")

# Applicant-editable payload
FORM_FIELDS = (
    "first_name",
    "last_name",
    "date_of_birth",
    "high_school",
    "gpa",
    "country",
    "state",
    "class_year",
    "applying_for_financial_aid",
    "financial_circumstances_overview",
    "financial_documentation_consent",
    "payment_certification",
    "payment_method",
)

# Still editable after submission, until payment is verified
POST_SUBMIT_FIELDS = ("payment_method", "payment_certification")

REQUIRED_INFO_FIELDS = (
    "first_name",
    "last_name",
    "date_of_birth",
    "high_school",
    "gpa",
    "country",
    "class_year",
)


@dataclass(frozen=True)
class Application:
    id: UUID
    user_id: UUID
    current_status: ApplicationStatus = ApplicationStatus.DRAFT

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    high_school: Optional[str] = None
    gpa: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    class_year: Optional[str] = None
    applying_for_financial_aid: Optional[bool] = None
    financial_circumstances_overview: Optional[str] = None
    financial_documentation_consent: Optional[str] = None
    payment_certification: Optional[str] = None

    payment_method: Optional[PaymentMethod] = None
    payment_verified: bool = False
    payment_verified_at: Optional[datetime] = None
    payment_verified_by: Optional[UUID] = None
    processor_payment_id: Optional[str] = None
    processor_status: Optional[ProcessorStatus] = None

    decision: Optional[Decision] = None
    decision_released_at: Optional[datetime] = None

    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def applicant_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def visible_decision(self) -> Optional[Decision]:
        # recorded decisions stay hidden from the applicant until released
        if self.current_status == ApplicationStatus.DECISION_RELEASED:
            return self.decision
        return None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, (datetime, date)):
                value = value.isoformat()
            elif isinstance(value, UUID):
                value = str(value)
            out[f.name] = value
        return out


@dataclass(frozen=True)
class ApplicationDocument:
    id: UUID
    application_id: UUID
    file_path: str
    file_name: str
    file_type: DocumentType
    uploaded_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "application_id": str(self.application_id),
            "file_path": self.file_path,
            "file_name": self.file_name,
            "file_type": self.file_type.value,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


@dataclass(frozen=True)
class StatusHistoryEntry:
    application_id: UUID
    old_status: Optional[ApplicationStatus]
    new_status: ApplicationStatus
    changed_by: UUID
    reason: HistoryReason = HistoryReason.GUARDED
    id: Optional[UUID] = None
    changed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id) if self.id else None,
            "application_id": str(self.application_id),
            "old_status": self.old_status.value if self.old_status else None,
            "new_status": self.new_status.value,
            "changed_by": str(self.changed_by),
            "reason": self.reason.value,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }


@dataclass(frozen=True)
class Profile:
    id: UUID
    email: str
    role: Role = Role.APPLICANT
    full_name: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReviewerAssignment:
    application_id: UUID
    reviewer_id: UUID
    assigned_at: Optional[datetime] = None


@dataclass(frozen=True)
class Actor:
    """
    Identity a transition is requested under.
    `is_webhook` marks the payment provider, authenticated by signature rather than a token.
    """

    user_id: UUID
    role: Role
    email: Optional[str] = None
    is_webhook: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.REVIEWER, Role.ADMIN)


@dataclass(frozen=True)
class ApplicationFilter:
    status: Optional[ApplicationStatus] = None
    pending_payment: bool = False
    with_decision: Optional[bool] = None
    owner_id: Optional[UUID] = None
    reviewer_id: Optional[UUID] = None
    # None lists every match
    limit: Optional[int] = 500
