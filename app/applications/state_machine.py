# app/applications/state_machine.py
from __future__ import annotations

from app.applications.errors import InvalidTransition
from app.applications.model import Application, ApplicationStatus, STATUS_ORDER

S = ApplicationStatus

# Guarded edges only. Recording a decision is not a status change.
ALLOWED: dict[ApplicationStatus, set[ApplicationStatus]] = {
    S.DRAFT: {S.SUBMITTED},
    S.SUBMITTED: {S.PAYMENT_RECEIVED},
    S.PAYMENT_RECEIVED: {S.IN_REVIEW},
    S.IN_REVIEW: {S.DECISION_RELEASED},
    S.DECISION_RELEASED: set(),
}


def can_transition(old: ApplicationStatus, new: ApplicationStatus) -> bool:
    return new in ALLOWED.get(old, set())


def assert_transition(old: ApplicationStatus, new: ApplicationStatus) -> None:
    if not can_transition(old, new):
        raise InvalidTransition(
            f"Illegal application transition: {old.value} -> {new.value}",
            current_status=old.value,
            requested_status=new.value,
        )


def assert_released_invariant(new_status: ApplicationStatus, decision) -> None:
    """
    Invariant: an application can only reach decision_released with a recorded decision.
    """
    if new_status == S.DECISION_RELEASED and decision is None:
        raise InvalidTransition("No decision recorded", requested_status=new_status.value)


def status_label(status: ApplicationStatus) -> str:
    match status:
        case S.DRAFT:
            return "Draft"
        case S.SUBMITTED:
            return "Submitted"
        case S.PAYMENT_RECEIVED:
            return "Payment Received"
        case S.IN_REVIEW:
            return "In Review"
        case S.DECISION_RELEASED:
            return "Decision Released"


def status_message(status: ApplicationStatus, applying_for_financial_aid: bool | None = None) -> str:
    match status:
        case S.DRAFT:
            return "Complete your application form to submit."
        case S.SUBMITTED:
            return "Your application has been submitted."
        case S.PAYMENT_RECEIVED:
            if applying_for_financial_aid:
                return "Fee waiver approved! Your application is now in the queue for review."
            return "Payment verified! Your application is now in the queue for review."
        case S.IN_REVIEW:
            return "Your application is currently being reviewed by our admissions team."
        case S.DECISION_RELEASED:
            return "A decision has been made on your application."


def timeline(application: Application) -> list[dict]:
    """
    Applicant-facing progress steps, one per status.
    """
    current_index = STATUS_ORDER.index(application.current_status)
    aid = bool(application.applying_for_financial_aid)
    steps = []
    for index, status in enumerate(STATUS_ORDER):
        label = status_label(status)
        if status == S.PAYMENT_RECEIVED and aid:
            label = "Financial Aid Request Approved"
        steps.append(
            {
                "status": status.value,
                "label": label,
                "completed": index < current_index or (index == current_index == len(STATUS_ORDER) - 1),
                "current": index == current_index,
            }
        )
    return steps
