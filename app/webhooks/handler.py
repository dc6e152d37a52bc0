# app/webhooks/handler.py
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from app.applications.errors import NotFound, PortalError
from app.applications.service import ApplicationCore
from app.webhooks.signature import SignatureError, verify_stripe_signature
from services.metrics import increment_webhook_event

logger = logging.getLogger("portal.webhooks")

EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"
HANDLED_EVENTS = (EVENT_SUCCEEDED, EVENT_FAILED)


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: dict[str, Any]


def _error(status_code: int, message: str) -> WebhookResult:
    return WebhookResult(status_code, {"error": message})


def _intent_from_event(event: dict) -> dict:
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else {}


def _application_id(intent: dict) -> Optional[str]:
    metadata = intent.get("metadata")
    if not isinstance(metadata, dict):
        return None
    value = metadata.get("applicationId")
    return str(value).strip() if value else None


class PaymentWebhookHandler:
    """
    Framework-independent handling of Stripe payment events.
    Nothing is written unless the signature checks out.
    """

    def __init__(self, core: ApplicationCore, *, secret: Optional[str], tolerance_s: int = 300, clock=time.time):
        self.core = core
        self.secret = secret
        self.tolerance_s = tolerance_s
        self._clock = clock

    def handle_payment_event(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResult:
        if not (self.secret or "").strip():
            logger.error("stripe_webhook_misconfigured reason=WEBHOOK_SECRET_NOT_CONFIGURED")
            return _error(500, "Webhook secret not configured")

        try:
            verify_stripe_signature(
                raw=raw_body,
                signature_header=signature_header,
                secret=self.secret,
                tolerance_s=self.tolerance_s,
                now=self._clock(),
            )
        except SignatureError as e:
            logger.warning("stripe_webhook_rejected reason=%s", e.reason)
            increment_webhook_event("unknown", signature_valid=False, applied=False)
            return _error(400, "Invalid signature")

        try:
            event = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return _error(400, "Malformed payload")
        if not isinstance(event, dict):
            return _error(400, "Malformed payload")

        event_type = str(event.get("type") or "")
        if event_type not in HANDLED_EVENTS:
            logger.info("stripe_webhook_ignored event_type=%s event_id=%s", event_type, event.get("id"))
            increment_webhook_event(event_type or "unknown", signature_valid=True, applied=False)
            return WebhookResult(200, {"received": True, "ignored": True})

        intent = _intent_from_event(event)
        raw_app_id = _application_id(intent)
        if not raw_app_id:
            logger.warning("stripe_webhook_missing_application_id event_type=%s intent_id=%s", event_type, intent.get("id"))
            return _error(400, "Missing application ID")

        try:
            application_id = UUID(raw_app_id)
        except ValueError:
            return _error(404, "Application not found")

        intent_id = str(intent.get("id") or "") or None
        try:
            if event_type == EVENT_SUCCEEDED:
                result = self.core.confirm_processor_payment(application_id, intent_id)
            else:
                result = self.core.mark_processor_payment_failed(application_id, intent_id)
        except NotFound:
            logger.warning("stripe_webhook_application_not_found application_id=%s", application_id)
            return _error(404, "Application not found")
        except PortalError as e:
            logger.warning("stripe_webhook_rejected application_id=%s error=%s", application_id, e.code)
            return WebhookResult(e.http_status, {"error": e.message})

        increment_webhook_event(event_type, signature_valid=True, applied=result.applied)
        logger.info(
            "stripe_webhook_processed event_type=%s application_id=%s intent_id=%s applied=%s",
            event_type,
            application_id,
            intent_id,
            result.applied,
        )
        body: dict[str, Any] = {"received": True, "applied": result.applied}
        if result.message:
            body["message"] = result.message
        return WebhookResult(200, body)
