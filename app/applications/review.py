# app/applications/review.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from app.applications.errors import Forbidden, NotFound, PortalError, ValidationFailed
from app.applications.model import (
    Actor,
    Application,
    ApplicationDocument,
    ApplicationFilter,
    ApplicationStatus,
    Decision,
    ReviewerAssignment,
    Role,
    StatusHistoryEntry,
)
from app.applications.service import ApplicationCore, TransitionResult
from app.applications.store import ApplicationStore

logger = logging.getLogger("portal.review")

S = ApplicationStatus


@dataclass(frozen=True)
class ApplicationDetail:
    application: Application
    documents: list[ApplicationDocument]
    history: list[StatusHistoryEntry]


@dataclass
class BulkReleaseReport:
    outcomes: dict[UUID, str] = field(default_factory=dict)

    @property
    def released(self) -> list[UUID]:
        return [k for k, v in self.outcomes.items() if v == "released"]

    @property
    def failed(self) -> dict[UUID, str]:
        return {k: v for k, v in self.outcomes.items() if v != "released"}

    def to_dict(self) -> dict:
        return {
            "released": len(self.released),
            "failed": len(self.failed),
            "outcomes": {str(k): v for k, v in self.outcomes.items()},
        }


class ReviewController:
    """
    Reviewer/admin operations. Reviewers only ever see applications assigned to them.
    """

    def __init__(self, store: ApplicationStore, core: ApplicationCore):
        self.store = store
        self.core = core

    def _scoped(self, actor: Actor, flt: ApplicationFilter) -> ApplicationFilter:
        if actor.is_webhook or not actor.is_staff:
            raise Forbidden("Reviewer or admin role required")
        if actor.is_admin:
            return flt
        return ApplicationFilter(
            status=flt.status,
            pending_payment=flt.pending_payment,
            with_decision=flt.with_decision,
            owner_id=flt.owner_id,
            reviewer_id=actor.user_id,
            limit=flt.limit,
        )

    def list_applications(self, actor: Actor, flt: Optional[ApplicationFilter] = None) -> list[Application]:
        return self.store.list_applications(self._scoped(actor, flt or ApplicationFilter()))

    def status_counts(self, actor: Actor) -> dict[str, int]:
        apps = self.store.list_applications(self._scoped(actor, ApplicationFilter(limit=100_000)))
        counts = {status.value: 0 for status in S}
        counts.update({"total": len(apps), "pending_payment": 0, "accepted": 0, "rejected": 0})
        for app in apps:
            counts[app.current_status.value] += 1
            if app.current_status == S.SUBMITTED and not app.payment_verified:
                counts["pending_payment"] += 1
            if app.decision == Decision.ACCEPTED:
                counts["accepted"] += 1
            elif app.decision == Decision.REJECTED:
                counts["rejected"] += 1
        return counts

    def get_application(self, application_id: UUID, actor: Actor) -> ApplicationDetail:
        app = self.core.load(application_id)
        self.core.require_reviewer(actor, app)
        return ApplicationDetail(
            application=app,
            documents=self.store.list_documents(app.id),
            history=self.store.list_history(app.id),
        )

    def request_verify_payment(self, application_id: UUID, actor: Actor) -> TransitionResult:
        return self.core.verify_payment(application_id, actor)

    def request_advance_to_review(self, application_id: UUID, actor: Actor) -> TransitionResult:
        return self.core.advance_to_review(application_id, actor)

    def request_record_decision(self, application_id: UUID, decision: Decision, actor: Actor) -> TransitionResult:
        return self.core.record_decision(application_id, decision, actor)

    def request_release_decision(self, application_id: UUID, actor: Actor) -> TransitionResult:
        return self.core.release_decision(application_id, actor)

    def request_release_all_pending_decisions(self, actor: Actor) -> BulkReleaseReport:
        """
        Release every visible in-review application that has a decision. Each release
        is its own transaction; one failure never stops the others.
        """
        candidates = self.list_applications(
            actor, ApplicationFilter(status=S.IN_REVIEW, with_decision=True, limit=None)
        )
        report = BulkReleaseReport()
        for app in candidates:
            try:
                self.core.release_decision(app.id, actor)
                report.outcomes[app.id] = "released"
            except PortalError as e:
                report.outcomes[app.id] = e.code
                logger.warning("bulk_release_failed application_id=%s error=%s", app.id, e.code)

        logger.info(
            "bulk_release_done actor_id=%s released=%s failed=%s",
            actor.user_id,
            len(report.released),
            len(report.failed),
        )
        return report

    def request_force_status(self, application_id: UUID, status: ApplicationStatus, actor: Actor) -> TransitionResult:
        return self.core.force_set_status(application_id, status, actor)

    def assign_reviewer(self, application_id: UUID, reviewer_id: UUID, actor: Actor) -> ReviewerAssignment:
        self.core.require_admin(actor)
        app = self.core.load(application_id)
        profile = self.store.get_profile(reviewer_id)
        if profile is None:
            raise NotFound("Reviewer not found")
        if profile.role not in (Role.REVIEWER, Role.ADMIN):
            raise ValidationFailed("Assignee must be a reviewer or admin", fields=["reviewer_id"])

        assignment = self.store.assign_reviewer(app.id, reviewer_id, actor_id=actor.user_id)
        logger.info("reviewer_assigned application_id=%s reviewer_id=%s admin_id=%s", app.id, reviewer_id, actor.user_id)
        return assignment
