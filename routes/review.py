# routes/review.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.applications.errors import ValidationFailed
from app.applications.model import Actor, ApplicationFilter, ApplicationStatus
from app.applications.review import ReviewController
from app.applications.service import TransitionResult
from deps.admin import require_admin, require_staff
from deps.portal import get_review
from schemas import (
    AssignReviewerRequest,
    BulkReleaseResponse,
    DecisionRequest,
    ForceStatusRequest,
    TransitionResponse,
)

router = APIRouter(prefix="/v1/review", tags=["review"])

PENDING_PAYMENT = "pending_payment"


def _filter_from_query(status: Optional[str], limit: int) -> ApplicationFilter:
    raw = (status or "").strip().lower()
    if not raw or raw == "all":
        return ApplicationFilter(limit=limit)
    if raw == PENDING_PAYMENT:
        return ApplicationFilter(pending_payment=True, limit=limit)
    try:
        return ApplicationFilter(status=ApplicationStatus(raw), limit=limit)
    except ValueError:
        raise ValidationFailed("Unknown status filter", fields=["status"])


def _transition(result: TransitionResult) -> dict:
    return {
        "application": result.application.to_dict(),
        "applied": result.applied,
        "message": result.message,
    }


@router.get("/applications")
def list_applications(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=500, ge=1, le=1000),
    actor: Actor = Depends(require_staff),
    review: ReviewController = Depends(get_review),
):
    apps = review.list_applications(actor, _filter_from_query(status, limit))
    return {"applications": [a.to_dict() for a in apps], "count": len(apps)}


@router.get("/summary")
def summary(actor: Actor = Depends(require_staff), review: ReviewController = Depends(get_review)):
    return review.status_counts(actor)


@router.get("/applications/{application_id}")
def get_application(
    application_id: UUID,
    actor: Actor = Depends(require_staff),
    review: ReviewController = Depends(get_review),
):
    detail = review.get_application(application_id, actor)
    return {
        "application": detail.application.to_dict(),
        "documents": [d.to_dict() for d in detail.documents],
        "history": [h.to_dict() for h in detail.history],
    }


@router.post("/applications/{application_id}/verify-payment", response_model=TransitionResponse)
def verify_payment(
    application_id: UUID,
    actor: Actor = Depends(require_staff),
    review: ReviewController = Depends(get_review),
):
    return _transition(review.request_verify_payment(application_id, actor))


@router.post("/applications/{application_id}/start-review", response_model=TransitionResponse)
def start_review(
    application_id: UUID,
    actor: Actor = Depends(require_staff),
    review: ReviewController = Depends(get_review),
):
    return _transition(review.request_advance_to_review(application_id, actor))


@router.post("/applications/{application_id}/decision", response_model=TransitionResponse)
def record_decision(
    application_id: UUID,
    body: DecisionRequest,
    actor: Actor = Depends(require_staff),
    review: ReviewController = Depends(get_review),
):
    return _transition(review.request_record_decision(application_id, body.decision, actor))


@router.post("/applications/{application_id}/release", response_model=TransitionResponse)
def release_decision(
    application_id: UUID,
    actor: Actor = Depends(require_staff),
    review: ReviewController = Depends(get_review),
):
    return _transition(review.request_release_decision(application_id, actor))


@router.post("/release-all", response_model=BulkReleaseResponse)
def release_all(actor: Actor = Depends(require_staff), review: ReviewController = Depends(get_review)):
    return review.request_release_all_pending_decisions(actor).to_dict()


@router.post("/applications/{application_id}/force-status", response_model=TransitionResponse)
def force_status(
    application_id: UUID,
    body: ForceStatusRequest,
    actor: Actor = Depends(require_admin),
    review: ReviewController = Depends(get_review),
):
    return _transition(review.request_force_status(application_id, body.status, actor))


@router.post("/applications/{application_id}/assignments", status_code=201)
def assign_reviewer(
    application_id: UUID,
    body: AssignReviewerRequest,
    actor: Actor = Depends(require_admin),
    review: ReviewController = Depends(get_review),
):
    assignment = review.assign_reviewer(application_id, body.reviewer_id, actor)
    return {
        "application_id": str(assignment.application_id),
        "reviewer_id": str(assignment.reviewer_id),
        "assigned_at": assignment.assigned_at.isoformat() if assignment.assigned_at else None,
    }
