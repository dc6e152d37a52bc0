import uuid

import pytest

from app.applications.errors import InvalidTransition
from app.applications.model import Application, ApplicationStatus, Decision
from app.applications.state_machine import (
    assert_released_invariant,
    assert_transition,
    can_transition,
    status_label,
    status_message,
    timeline,
)

S = ApplicationStatus


def test_valid_transitions():
    assert_transition(S.DRAFT, S.SUBMITTED)
    assert_transition(S.SUBMITTED, S.PAYMENT_RECEIVED)
    assert_transition(S.PAYMENT_RECEIVED, S.IN_REVIEW)
    assert_transition(S.IN_REVIEW, S.DECISION_RELEASED)


def test_invalid_transition_skipping_states():
    with pytest.raises(InvalidTransition):
        assert_transition(S.DRAFT, S.PAYMENT_RECEIVED)
    with pytest.raises(InvalidTransition):
        assert_transition(S.SUBMITTED, S.IN_REVIEW)


def test_no_backwards_edges():
    for new in S:
        assert not can_transition(S.DECISION_RELEASED, new)
    assert not can_transition(S.IN_REVIEW, S.PAYMENT_RECEIVED)
    assert not can_transition(S.SUBMITTED, S.DRAFT)


def test_invalid_transition_reports_states():
    with pytest.raises(InvalidTransition) as exc:
        assert_transition(S.DRAFT, S.IN_REVIEW)
    detail = exc.value.to_detail()
    assert detail["error"] == "INVALID_TRANSITION"
    assert detail["current_status"] == "draft"
    assert detail["requested_status"] == "in_review"


def test_release_requires_decision():
    with pytest.raises(InvalidTransition):
        assert_released_invariant(S.DECISION_RELEASED, None)
    assert_released_invariant(S.DECISION_RELEASED, Decision.ACCEPTED)
    assert_released_invariant(S.IN_REVIEW, None)


def test_every_status_has_label_and_message():
    for status in S:
        assert status_label(status)
        assert status_message(status)


def test_payment_received_message_mentions_fee_waiver_for_aid():
    assert "Fee waiver" in status_message(S.PAYMENT_RECEIVED, applying_for_financial_aid=True)
    assert "Payment verified" in status_message(S.PAYMENT_RECEIVED, applying_for_financial_aid=False)


def test_timeline_marks_current_and_completed_steps():
    app = Application(id=uuid.uuid4(), user_id=uuid.uuid4(), current_status=S.PAYMENT_RECEIVED)
    steps = timeline(app)
    assert [s["status"] for s in steps] == [s.value for s in S]
    assert [s["completed"] for s in steps] == [True, True, False, False, False]
    assert [s["current"] for s in steps] == [False, False, True, False, False]
    assert steps[2]["label"] == "Payment Received"


def test_timeline_uses_financial_aid_label():
    app = Application(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        current_status=S.SUBMITTED,
        applying_for_financial_aid=True,
    )
    assert timeline(app)[2]["label"] == "Financial Aid Request Approved"


def test_released_step_is_completed():
    app = Application(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        current_status=S.DECISION_RELEASED,
        decision=Decision.ACCEPTED,
    )
    assert all(s["completed"] for s in timeline(app))
