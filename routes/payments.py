# routes/payments.py
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

import rate_limit
from app.applications.errors import NotFound
from app.applications.model import Actor
from app.applications.service import ApplicationCore
from app.payments.base import PaymentGateway
from app.payments.intents import create_or_reuse_payment_intent
from deps.auth import get_actor
from deps.portal import get_core, get_gateway
from schemas import CreatePaymentIntentRequest, CreatePaymentIntentResponse
from settings import settings

router = APIRouter(tags=["payments"])


@router.post("/create-payment-intent", response_model=CreatePaymentIntentResponse)
def create_payment_intent(
    body: CreatePaymentIntentRequest,
    actor: Actor = Depends(get_actor),
    core: ApplicationCore = Depends(get_core),
    gateway: PaymentGateway = Depends(get_gateway),
):
    if rate_limit.rate_limit_enabled():
        rate_limit.rate_limit_or_429(
            key=f"payment_intent:{actor.user_id}",
            limit=settings.RATE_LIMIT_PAYMENT_INTENT_PER_MIN,
            window_seconds=60,
        )

    raw_id = (body.applicationId or "").strip()
    if not raw_id:
        raise HTTPException(status_code=400, detail="Application ID is required")
    try:
        application_id = UUID(raw_id)
    except ValueError:
        raise NotFound("Application not found")

    handle = create_or_reuse_payment_intent(
        core,
        gateway,
        application_id=application_id,
        actor=actor,
        amount=settings.APPLICATION_FEE_CENTS,
        currency=settings.APPLICATION_FEE_CURRENCY,
    )
    return {"clientSecret": handle.client_secret}
