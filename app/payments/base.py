# app/payments/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

# Provider statuses in which an existing handle can still be paid
REUSABLE_STATUSES = frozenset(
    {
        "requires_payment_method",
        "requires_confirmation",
        "requires_action",
        "processing",
    }
)


@dataclass(frozen=True)
class PaymentHandle:
    handle_id: str
    client_secret: Optional[str]
    status: str
    amount: Optional[int] = None
    currency: Optional[str] = None

    @property
    def reusable(self) -> bool:
        return self.status in REUSABLE_STATUSES


class PaymentGateway(Protocol):
    def create_handle(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        receipt_email: Optional[str] = None,
    ) -> PaymentHandle: ...

    def retrieve_handle(self, handle_id: str) -> PaymentHandle: ...
