# app/applications/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence
from uuid import UUID

from app.applications.errors import Forbidden, InvalidTransition, NotFound, PortalError, ValidationFailed
from app.applications.model import (
    Actor,
    Application,
    ApplicationDocument,
    ApplicationStatus,
    Decision,
    DocumentType,
    HistoryReason,
    PaymentMethod,
    ProcessorStatus,
    REQUIRED_INFO_FIELDS,
    Role,
    StatusHistoryEntry,
)
from app.applications.state_machine import assert_released_invariant, assert_transition
from app.applications.store import IS_SET, ApplicationStore
from services import metrics

logger = logging.getLogger("portal.core")

S = ApplicationStatus

# a conditional update that loses a race is re-evaluated against the fresh row this many times
_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class TransitionResult:
    application: Application
    applied: bool
    message: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_sections(application: Application, documents: Sequence[ApplicationDocument]) -> dict[str, list[str]]:
    """
    Submission completeness check, grouped the way the form is laid out:
    `info`, `documents`, `payment`. An empty dict means the application can be submitted.
    """
    problems: dict[str, list[str]] = {}

    info = [f for f in REQUIRED_INFO_FIELDS if _blank(getattr(application, f))]
    if info:
        problems["info"] = info

    primary = [d for d in documents if d.file_type == DocumentType.APPLICATION]
    if len(primary) != 1:
        problems["documents"] = ["application"]

    payment: list[str] = []
    aid = application.applying_for_financial_aid
    if aid is None:
        payment.append("applying_for_financial_aid")
    elif aid:
        if _blank(application.financial_circumstances_overview):
            payment.append("financial_circumstances_overview")
        if _blank(application.financial_documentation_consent):
            payment.append("financial_documentation_consent")
    elif not application.payment_verified:
        if application.payment_method is None:
            payment.append("payment_method")
        elif application.payment_method == PaymentMethod.ATTESTATION and _blank(application.payment_certification):
            payment.append("payment_certification")
    if payment:
        problems["payment"] = payment

    return problems


class ApplicationCore:
    """
    The only writer of status and payment fields.

    Every operation loads the row, checks authorization and the guarded edge, then
    asks the store for a conditional update whose `expect` restates the preconditions.
    If the row changed in between, the update writes nothing and the operation is
    re-evaluated against the fresh row.
    """

    def __init__(self, store: ApplicationStore, *, webhook_actor_id: UUID):
        self.store = store
        self.webhook_actor_id = webhook_actor_id

    def webhook_actor(self) -> Actor:
        return Actor(user_id=self.webhook_actor_id, role=Role.APPLICANT, is_webhook=True)

    # ---------------- helpers ----------------

    def load(self, application_id: UUID) -> Application:
        app = self.store.get_application(application_id)
        if app is None:
            raise NotFound("Application not found", application_id=str(application_id))
        return app

    def require_owner(self, actor: Actor, app: Application) -> None:
        if actor.is_webhook or actor.user_id != app.user_id:
            raise Forbidden("Not the owner of this application")

    def require_reviewer(self, actor: Actor, app: Application) -> None:
        if actor.is_webhook or not actor.is_staff:
            raise Forbidden("Reviewer or admin role required")
        if actor.is_admin:
            return
        if not self.store.is_assigned(app.id, actor.user_id):
            raise Forbidden("Reviewer is not assigned to this application")

    def require_admin(self, actor: Actor) -> None:
        if actor.is_webhook or not actor.is_admin:
            raise Forbidden("Admin role required")

    def require_webhook(self, actor: Actor) -> None:
        if not actor.is_webhook:
            raise Forbidden("Only the payment provider may report processor payments")

    def _history(
        self,
        app: Application,
        new_status: ApplicationStatus,
        actor: Actor,
        *,
        old_status: Optional[ApplicationStatus] = None,
        reason: HistoryReason = HistoryReason.GUARDED,
    ) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            application_id=app.id,
            old_status=old_status or app.current_status,
            new_status=new_status,
            changed_by=actor.user_id,
            reason=reason,
        )

    def _write(
        self,
        operation: str,
        app: Application,
        actor: Actor,
        *,
        expect: Mapping[str, Any],
        changes: Mapping[str, Any],
        history: Sequence[StatusHistoryEntry] = (),
    ) -> Optional[Application]:
        updated = self.store.apply_update(
            app.id, actor_id=actor.user_id, expect=expect, changes=changes, history=history
        )
        if updated is None:
            logger.info(
                "transition_precondition_lost operation=%s application_id=%s status=%s",
                operation,
                app.id,
                app.current_status.value,
            )
            return None

        for entry in history:
            metrics.increment_transition(
                entry.old_status.value if entry.old_status else "none",
                entry.new_status.value,
                entry.reason.value,
            )
            logger.info(
                "transition_applied operation=%s application_id=%s from=%s to=%s actor_id=%s reason=%s",
                operation,
                app.id,
                entry.old_status.value if entry.old_status else None,
                entry.new_status.value,
                actor.user_id,
                entry.reason.value,
            )
        return updated

    def _run(self, operation: str, application_id: UUID, actor: Actor, step) -> TransitionResult:
        """
        `step(app)` either returns a finished TransitionResult (no write needed, or a
        rejection raised), or a (expect, changes, history, message) tuple to apply.
        """
        last: Optional[Application] = None
        try:
            for _ in range(_MAX_ATTEMPTS):
                app = self.load(application_id)
                planned = step(app)
                if isinstance(planned, TransitionResult):
                    return planned
                expect, changes, history, message = planned
                updated = self._write(operation, app, actor, expect=expect, changes=changes, history=history)
                if updated is not None:
                    return TransitionResult(application=updated, applied=True, message=message)
                last = app
        except PortalError as e:
            metrics.increment_transition_rejected(operation, e.code)
            raise

        metrics.increment_transition_rejected(operation, InvalidTransition.code)
        raise InvalidTransition(
            "Application changed concurrently; retry the request",
            current_status=last.current_status.value if last else None,
        )

    # ---------------- applicant ----------------

    def submit(self, application_id: UUID, actor: Actor) -> TransitionResult:
        def step(app: Application):
            self.require_owner(actor, app)
            assert_transition(app.current_status, S.SUBMITTED)

            problems = missing_sections(app, self.store.list_documents(app.id))
            if problems:
                raise ValidationFailed(
                    "Application is incomplete",
                    sections=sorted(problems),
                    fields=problems,
                )

            history = [self._history(app, S.SUBMITTED, actor)]
            target = S.SUBMITTED
            if app.payment_verified:
                # processor payment landed while still a draft: chain straight through
                history.append(self._history(app, S.PAYMENT_RECEIVED, actor, old_status=S.SUBMITTED))
                target = S.PAYMENT_RECEIVED

            return (
                {"current_status": S.DRAFT, "payment_verified": app.payment_verified},
                {"current_status": target},
                history,
                None,
            )

        return self._run("submit", application_id, actor, step)

    def record_payment_handle(self, application_id: UUID, handle_id: str, actor: Actor) -> TransitionResult:
        """
        Store the processor handle the applicant is paying with. No-op once verified.
        """

        def step(app: Application):
            self.require_owner(actor, app)
            if app.payment_verified:
                return TransitionResult(app, applied=False, message="Payment already verified")
            if app.processor_payment_id == handle_id and app.processor_status == ProcessorStatus.PENDING:
                return TransitionResult(app, applied=False)
            return (
                {"payment_verified": False},
                {"processor_payment_id": handle_id, "processor_status": ProcessorStatus.PENDING},
                (),
                None,
            )

        return self._run("record_payment_handle", application_id, actor, step)

    # ---------------- payment ----------------

    def verify_payment(self, application_id: UUID, actor: Actor) -> TransitionResult:
        """
        Manual verification by a reviewer: an attestation payment, or the fee waiver
        for a financial-aid applicant.
        """

        def step(app: Application):
            self.require_reviewer(actor, app)
            if app.payment_verified:
                return TransitionResult(app, applied=False, message="Payment already verified")
            assert_transition(app.current_status, S.PAYMENT_RECEIVED)
            return (
                {"current_status": S.SUBMITTED, "payment_verified": False},
                {
                    "current_status": S.PAYMENT_RECEIVED,
                    "payment_verified": True,
                    "payment_verified_at": _utcnow(),
                    "payment_verified_by": actor.user_id,
                },
                [self._history(app, S.PAYMENT_RECEIVED, actor)],
                None,
            )

        return self._run("verify_payment", application_id, actor, step)

    def confirm_processor_payment(
        self, application_id: UUID, payment_intent_id: Optional[str], actor: Optional[Actor] = None
    ) -> TransitionResult:
        """
        Processor reported the fee as paid. Idempotent: the update is conditioned on
        `payment_verified = false`, so a redelivered event applies nothing.
        Only `submitted` moves to `payment_received`; in any other status the payment
        is recorded and the status left alone.
        """
        actor = actor or self.webhook_actor()

        def step(app: Application):
            self.require_webhook(actor)
            if app.payment_verified:
                return TransitionResult(app, applied=False, message="Payment already verified")

            changes: dict[str, Any] = {
                "payment_verified": True,
                "payment_verified_at": _utcnow(),
                "payment_verified_by": None,
                "payment_method": PaymentMethod.PROCESSOR,
                "processor_status": ProcessorStatus.SUCCEEDED,
            }
            if payment_intent_id:
                changes["processor_payment_id"] = payment_intent_id

            history: list[StatusHistoryEntry] = []
            if app.current_status == S.SUBMITTED:
                changes["current_status"] = S.PAYMENT_RECEIVED
                history.append(self._history(app, S.PAYMENT_RECEIVED, actor))

            return (
                {"current_status": app.current_status, "payment_verified": False},
                changes,
                history,
                None,
            )

        return self._run("confirm_processor_payment", application_id, actor, step)

    def mark_processor_payment_failed(
        self, application_id: UUID, payment_intent_id: Optional[str], actor: Optional[Actor] = None
    ) -> TransitionResult:
        actor = actor or self.webhook_actor()

        def step(app: Application):
            self.require_webhook(actor)
            if app.payment_verified:
                return TransitionResult(app, applied=False, message="Payment already verified")
            changes: dict[str, Any] = {"processor_status": ProcessorStatus.FAILED}
            if payment_intent_id:
                changes["processor_payment_id"] = payment_intent_id
            return ({"payment_verified": False}, changes, (), None)

        return self._run("mark_processor_payment_failed", application_id, actor, step)

    # ---------------- review ----------------

    def advance_to_review(self, application_id: UUID, actor: Actor) -> TransitionResult:
        def step(app: Application):
            self.require_reviewer(actor, app)
            assert_transition(app.current_status, S.IN_REVIEW)
            return (
                {"current_status": S.PAYMENT_RECEIVED},
                {"current_status": S.IN_REVIEW},
                [self._history(app, S.IN_REVIEW, actor)],
                None,
            )

        return self._run("advance_to_review", application_id, actor, step)

    def record_decision(self, application_id: UUID, decision: Decision, actor: Actor) -> TransitionResult:
        decision = Decision(decision)

        def step(app: Application):
            self.require_reviewer(actor, app)
            if app.current_status != S.IN_REVIEW:
                raise InvalidTransition(
                    "Decisions can only be recorded while in review",
                    current_status=app.current_status.value,
                )
            if app.decision == decision:
                return TransitionResult(app, applied=False)
            return ({"current_status": S.IN_REVIEW}, {"decision": decision}, (), None)

        return self._run("record_decision", application_id, actor, step)

    def release_decision(self, application_id: UUID, actor: Actor) -> TransitionResult:
        def step(app: Application):
            self.require_reviewer(actor, app)
            assert_transition(app.current_status, S.DECISION_RELEASED)
            assert_released_invariant(S.DECISION_RELEASED, app.decision)
            return (
                {"current_status": S.IN_REVIEW, "decision": IS_SET},
                {"current_status": S.DECISION_RELEASED, "decision_released_at": _utcnow()},
                [self._history(app, S.DECISION_RELEASED, actor)],
                None,
            )

        return self._run("release_decision", application_id, actor, step)

    # ---------------- admin ----------------

    def force_set_status(self, application_id: UUID, status: ApplicationStatus, actor: Actor) -> TransitionResult:
        """
        Admin override: any target status, recorded as `admin_override`.
        Never touches payment_verified. Releasing still needs a recorded decision.
        """
        status = ApplicationStatus(status)

        def step(app: Application):
            self.require_admin(actor)
            if app.current_status == status:
                return TransitionResult(app, applied=False, message="Status unchanged")
            assert_released_invariant(status, app.decision)

            changes: dict[str, Any] = {"current_status": status}
            if status == S.DECISION_RELEASED:
                changes["decision_released_at"] = _utcnow()
            elif app.decision_released_at is not None:
                changes["decision_released_at"] = None

            logger.warning(
                "admin_force_status application_id=%s from=%s to=%s admin_id=%s",
                app.id,
                app.current_status.value,
                status.value,
                actor.user_id,
            )
            return (
                {"current_status": app.current_status},
                changes,
                [self._history(app, status, actor, reason=HistoryReason.ADMIN_OVERRIDE)],
                None,
            )

        return self._run("force_set_status", application_id, actor, step)
