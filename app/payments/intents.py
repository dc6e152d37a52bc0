# app/payments/intents.py
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from app.applications.errors import NotFound, UpstreamError, ValidationFailed
from app.applications.model import Actor, ApplicationStatus
from app.applications.service import ApplicationCore
from app.payments.base import PaymentGateway, PaymentHandle
from services import metrics

logger = logging.getLogger("portal.payments")

# payment is collected on the form (draft) or right after submission
_PAYABLE_STATUSES = (ApplicationStatus.DRAFT, ApplicationStatus.SUBMITTED)


def _reusable_handle(gateway: PaymentGateway, handle_id: Optional[str]) -> Optional[PaymentHandle]:
    if not handle_id:
        return None
    try:
        handle = gateway.retrieve_handle(handle_id)
    except UpstreamError as e:
        # provider trouble during the reuse check just means "create a new one"
        logger.warning("payment_handle_reuse_check_failed handle_id=%s error=%s", handle_id, e.message)
        return None
    if handle.reusable and handle.client_secret:
        return handle
    logger.info("payment_handle_not_reusable handle_id=%s status=%s", handle_id, handle.status)
    return None


def create_or_reuse_payment_intent(
    core: ApplicationCore,
    gateway: PaymentGateway,
    *,
    application_id: UUID,
    actor: Actor,
    amount: int,
    currency: str,
) -> PaymentHandle:
    """
    Hand the applicant a payment handle for the application fee, reusing the stored
    one while the provider still considers it payable.
    """
    app = core.store.get_application(application_id)
    if app is None or app.user_id != actor.user_id:
        # other users' applications are indistinguishable from missing ones
        raise NotFound("Application not found")
    if app.payment_verified:
        raise ValidationFailed("Payment already verified", fields=["applicationId"])
    if app.current_status not in _PAYABLE_STATUSES:
        raise ValidationFailed(
            "Application is not awaiting payment",
            fields=["applicationId"],
            current_status=app.current_status.value,
        )

    existing = _reusable_handle(gateway, app.processor_payment_id)
    if existing is not None:
        metrics.increment_payment_handle("reused")
        logger.info("payment_handle_reused application_id=%s handle_id=%s", app.id, existing.handle_id)
        return existing

    handle = gateway.create_handle(
        amount=amount,
        currency=currency,
        metadata={
            "applicationId": str(app.id),
            "userId": str(actor.user_id),
            "applicantName": app.applicant_name,
        },
        receipt_email=actor.email,
    )
    core.record_payment_handle(app.id, handle.handle_id, actor)
    metrics.increment_payment_handle("created")
    logger.info("payment_handle_created application_id=%s handle_id=%s", app.id, handle.handle_id)
    return handle
