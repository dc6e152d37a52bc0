# schemas.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.applications.model import ApplicationStatus, Decision, PaymentMethod


# -------- APPLICANT --------
class ApplicationUpdateRequest(BaseModel):
    """
    Partial draft save. Only the fields present in the request body are written.
    """

    model_config = ConfigDict(extra="forbid")

    expected_version: Optional[int] = Field(default=None, ge=1)

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

    def form_fields(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        data.pop("expected_version", None)
        return data


class ApplicationResponse(BaseModel):
    application: Dict[str, Any]
    documents: List[Dict[str, Any]] = []
    created: Optional[bool] = None


class StatusStep(BaseModel):
    status: ApplicationStatus
    label: str
    completed: bool
    current: bool


class ApplicationStatusResponse(BaseModel):
    application_id: UUID
    status: ApplicationStatus
    label: str
    message: str
    payment_verified: bool
    decision: Optional[Decision] = None
    timeline: List[StatusStep]


class PaymentStatusResponse(BaseModel):
    application_id: UUID
    payment_verified: bool
    processor_status: Optional[str] = None
    outcome: Optional[Literal["verified", "timeout"]] = None
    attempts: Optional[int] = None


class DocumentUrlResponse(BaseModel):
    url: str
    expires_in: int


# -------- PAYMENTS --------
class CreatePaymentIntentRequest(BaseModel):
    applicationId: Optional[str] = None


class CreatePaymentIntentResponse(BaseModel):
    clientSecret: str


# -------- REVIEW --------
class DecisionRequest(BaseModel):
    decision: Decision


class ForceStatusRequest(BaseModel):
    status: ApplicationStatus


class AssignReviewerRequest(BaseModel):
    reviewer_id: UUID


class TransitionResponse(BaseModel):
    application: Dict[str, Any]
    applied: bool
    message: Optional[str] = None


class BulkReleaseResponse(BaseModel):
    released: int
    failed: int
    outcomes: Dict[str, str]
