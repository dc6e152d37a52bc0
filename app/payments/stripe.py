# app/payments/stripe.py
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from app.applications.errors import UpstreamError
from app.payments.base import PaymentHandle

logger = logging.getLogger("portal.payments")


class StripeGateway:
    """
    Stripe PaymentIntents over the REST API (form-encoded, bearer secret key).
    Every call is bounded by `timeout_s`; transport errors and non-2xx replies
    surface as UpstreamError.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        api_base: str = "https://api.stripe.com",
        timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not (secret_key or "").strip():
            raise ValueError("Stripe secret key is required")
        self._client = httpx.Client(
            base_url=api_base.rstrip("/"),
            timeout=timeout_s,
            headers={"Authorization": f"Bearer {secret_key.strip()}"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, *, data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        try:
            r = self._client.request(method, path, data=data)
        except httpx.TimeoutException as e:
            logger.warning("stripe_timeout method=%s path=%s", method, path)
            raise UpstreamError("Payment provider timed out") from e
        except httpx.HTTPError as e:
            logger.warning("stripe_transport_error method=%s path=%s error=%s", method, path, type(e).__name__)
            raise UpstreamError("Payment provider unavailable") from e

        try:
            payload = r.json()
        except ValueError:
            payload = None

        if r.status_code >= 400 or not isinstance(payload, dict):
            err = (payload or {}).get("error") if isinstance(payload, dict) else None
            code = err.get("code") if isinstance(err, dict) else None
            logger.warning("stripe_error method=%s path=%s status=%s code=%s", method, path, r.status_code, code)
            raise UpstreamError("Payment provider rejected the request", provider_status=r.status_code)

        return payload

    @staticmethod
    def _to_handle(payload: dict[str, Any]) -> PaymentHandle:
        return PaymentHandle(
            handle_id=str(payload.get("id") or ""),
            client_secret=payload.get("client_secret"),
            status=str(payload.get("status") or ""),
            amount=payload.get("amount"),
            currency=payload.get("currency"),
        )

    def create_handle(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        receipt_email: Optional[str] = None,
    ) -> PaymentHandle:
        form: dict[str, Any] = {
            "amount": int(amount),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = value
        if receipt_email:
            form["receipt_email"] = receipt_email

        handle = self._to_handle(self._request("POST", "/v1/payment_intents", data=form))
        logger.info("stripe_intent_created intent_id=%s status=%s", handle.handle_id, handle.status)
        return handle

    def retrieve_handle(self, handle_id: str) -> PaymentHandle:
        return self._to_handle(self._request("GET", f"/v1/payment_intents/{handle_id}"))
