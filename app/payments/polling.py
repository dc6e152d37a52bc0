# app/payments/polling.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal
from uuid import UUID

from app.applications.errors import NotFound
from app.applications.model import Application
from app.applications.store import ApplicationStore

logger = logging.getLogger("portal.payments")

PollOutcome = Literal["verified", "timeout"]


@dataclass(frozen=True)
class PollResult:
    outcome: PollOutcome
    attempts: int
    application: Application


def wait_for_payment_verification(
    store: ApplicationStore,
    application_id: UUID,
    *,
    max_attempts: int = 20,
    interval_s: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """
    Re-read the application until the webhook has marked it verified, at most
    `max_attempts` reads spaced `interval_s` apart.
    """
    attempts = 0
    app = None
    for attempts in range(1, max(1, max_attempts) + 1):
        app = store.get_application(application_id)
        if app is None:
            raise NotFound("Application not found")
        if app.payment_verified:
            return PollResult("verified", attempts, app)
        if attempts < max_attempts:
            sleep(interval_s)

    logger.info("payment_poll_timeout application_id=%s attempts=%s", application_id, attempts)
    return PollResult("timeout", attempts, app)
