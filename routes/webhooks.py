# routes/webhooks.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.webhooks.handler import PaymentWebhookHandler
from deps.portal import get_webhook_handler

router = APIRouter(tags=["webhooks"])


@router.post("/stripe-webhook")
async def stripe_webhook(request: Request, handler: PaymentWebhookHandler = Depends(get_webhook_handler)):
    # the signature covers the exact bytes, so read the raw body before anything parses it
    raw = await request.body()
    result = await run_in_threadpool(handler.handle_payment_event, raw, request.headers.get("Stripe-Signature"))
    return JSONResponse(status_code=result.status_code, content=result.body)
