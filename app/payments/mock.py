# app/payments/mock.py
from __future__ import annotations

from typing import Optional
from uuid import uuid4

from app.applications.errors import UpstreamError
from app.payments.base import PaymentHandle


class MockPaymentGateway:
    """
    Test/dev gateway. Handles live in a dict; tests flip their status or make
    the next retrieve fail to exercise the reuse policy.
    """

    def __init__(self, *, fail_create: bool = False, fail_retrieve: bool = False):
        self.fail_create = fail_create
        self.fail_retrieve = fail_retrieve
        self.handles: dict[str, PaymentHandle] = {}
        self.created: list[dict] = []

    def create_handle(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        receipt_email: Optional[str] = None,
    ) -> PaymentHandle:
        if self.fail_create:
            raise UpstreamError("Payment provider unavailable")
        handle_id = f"pi_mock_{uuid4().hex[:16]}"
        handle = PaymentHandle(
            handle_id=handle_id,
            client_secret=f"{handle_id}_secret_{uuid4().hex[:8]}",
            status="requires_payment_method",
            amount=amount,
            currency=currency,
        )
        self.handles[handle_id] = handle
        self.created.append(
            {"amount": amount, "currency": currency, "metadata": dict(metadata), "receipt_email": receipt_email}
        )
        return handle

    def retrieve_handle(self, handle_id: str) -> PaymentHandle:
        if self.fail_retrieve:
            raise UpstreamError("Payment provider timed out")
        handle = self.handles.get(handle_id)
        if handle is None:
            raise UpstreamError("No such payment intent")
        return handle

    def set_status(self, handle_id: str, status: str) -> None:
        h = self.handles[handle_id]
        self.handles[handle_id] = PaymentHandle(
            handle_id=h.handle_id,
            client_secret=h.client_secret,
            status=status,
            amount=h.amount,
            currency=h.currency,
        )
