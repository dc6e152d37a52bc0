# routes/applications.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from app.applications.form import FormController
from app.applications.model import Actor, Application
from app.applications.service import ApplicationCore
from app.applications.state_machine import status_label, status_message, timeline
from app.payments.polling import wait_for_payment_verification
from deps.auth import get_actor
from deps.portal import get_core, get_form
from schemas import (
    ApplicationResponse,
    ApplicationStatusResponse,
    ApplicationUpdateRequest,
    DocumentUrlResponse,
    PaymentStatusResponse,
    TransitionResponse,
)
from settings import settings

router = APIRouter(prefix="/v1", tags=["applications"])


def applicant_view(app: Application) -> dict:
    """
    What the applicant may see: the recorded decision stays hidden until released.
    """
    data = app.to_dict()
    decision = app.visible_decision
    data["decision"] = decision.value if decision else None
    data["status_label"] = status_label(app.current_status)
    return data


@router.post("/applications", response_model=ApplicationResponse)
def create_application(actor: Actor = Depends(get_actor), form: FormController = Depends(get_form)):
    app, created = form.create_application(actor)
    return {"application": applicant_view(app), "documents": [], "created": created}


@router.get("/applications/me", response_model=ApplicationResponse)
def my_application(actor: Actor = Depends(get_actor), form: FormController = Depends(get_form)):
    app = form.active_application(actor)
    _, docs = form.load_draft(app.id, actor)
    return {"application": applicant_view(app), "documents": [d.to_dict() for d in docs]}


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
def get_application(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    form: FormController = Depends(get_form),
):
    app, docs = form.load_draft(application_id, actor)
    return {"application": applicant_view(app), "documents": [d.to_dict() for d in docs]}


@router.patch("/applications/{application_id}", response_model=ApplicationResponse)
def save_draft(
    application_id: UUID,
    body: ApplicationUpdateRequest,
    actor: Actor = Depends(get_actor),
    form: FormController = Depends(get_form),
):
    app = form.save_draft(application_id, body.form_fields(), actor, expected_version=body.expected_version)
    return {"application": applicant_view(app)}


@router.post("/applications/{application_id}/documents", status_code=201)
async def upload_document(
    application_id: UUID,
    request: Request,
    file_type: str = Query(...),
    file_name: str = Query(..., min_length=1, max_length=255),
    actor: Actor = Depends(get_actor),
    form: FormController = Depends(get_form),
):
    data = await request.body()
    doc = form.upload_document(
        application_id,
        actor,
        file_name=file_name,
        content_type=request.headers.get("content-type"),
        data=data,
        file_type=file_type,
    )
    return {"document": doc.to_dict()}


@router.delete("/documents/{document_id}", status_code=204)
def delete_document(
    document_id: UUID,
    actor: Actor = Depends(get_actor),
    form: FormController = Depends(get_form),
):
    form.delete_document(document_id, actor)


@router.get("/documents/{document_id}/url", response_model=DocumentUrlResponse)
def document_url(
    document_id: UUID,
    actor: Actor = Depends(get_actor),
    form: FormController = Depends(get_form),
):
    url = form.document_url(document_id, actor)
    return {"url": url, "expires_in": form.url_ttl_s}


@router.post("/applications/{application_id}/submit", response_model=TransitionResponse)
def submit_application(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    form: FormController = Depends(get_form),
):
    result = form.request_submit(application_id, actor)
    return {"application": applicant_view(result.application), "applied": result.applied, "message": result.message}


@router.get("/applications/{application_id}/status", response_model=ApplicationStatusResponse)
def application_status(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    form: FormController = Depends(get_form),
):
    app, _ = form.load_draft(application_id, actor)
    return {
        "application_id": app.id,
        "status": app.current_status,
        "label": status_label(app.current_status),
        "message": status_message(app.current_status, app.applying_for_financial_aid),
        "payment_verified": app.payment_verified,
        "decision": app.visible_decision,
        "timeline": timeline(app),
    }


@router.get("/applications/{application_id}/payment-status", response_model=PaymentStatusResponse)
def payment_status(
    application_id: UUID,
    wait: bool = Query(default=False),
    actor: Actor = Depends(get_actor),
    core: ApplicationCore = Depends(get_core),
):
    app = core.load(application_id)
    core.require_owner(actor, app)

    outcome = None
    attempts = None
    if wait and not app.payment_verified:
        polled = wait_for_payment_verification(
            core.store,
            application_id,
            max_attempts=settings.PAYMENT_POLL_MAX_ATTEMPTS,
            interval_s=settings.PAYMENT_POLL_INTERVAL_S,
        )
        app, outcome, attempts = polled.application, polled.outcome, polled.attempts

    return {
        "application_id": app.id,
        "payment_verified": app.payment_verified,
        "processor_status": app.processor_status.value if app.processor_status else None,
        "outcome": outcome,
        "attempts": attempts,
    }
