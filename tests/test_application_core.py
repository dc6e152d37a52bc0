import pytest

from app.applications.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from app.applications.model import (
    ApplicationStatus,
    Decision,
    HistoryReason,
    PaymentMethod,
    ProcessorStatus,
)
from conftest import fill_draft, in_review_app, submitted_app

S = ApplicationStatus


def _statuses(store, app_id):
    return [(h.old_status, h.new_status) for h in store.list_history(app_id)]


def test_submit_complete_draft_writes_history(form, store, applicant):
    app = submitted_app(form, applicant)
    assert app.current_status == S.SUBMITTED
    assert app.payment_verified is False
    assert _statuses(store, app.id) == [(S.DRAFT, S.SUBMITTED)]
    assert store.list_history(app.id)[0].changed_by == applicant.user_id


def test_submit_incomplete_lists_sections_and_writes_nothing(form, core, store, applicant):
    app, _ = form.create_application(applicant.actor)
    before = store.write_count

    with pytest.raises(ValidationFailed) as exc:
        core.submit(app.id, applicant.actor)

    assert exc.value.extra["sections"] == ["documents", "info", "payment"]
    assert store.write_count == before
    assert store.get_application(app.id).current_status == S.DRAFT


def test_submit_requires_owner(form, core, applicant, other_applicant):
    app = fill_draft(form, applicant)
    with pytest.raises(Forbidden):
        core.submit(app.id, other_applicant.actor)


def test_submit_twice_is_invalid(form, core, applicant):
    app = submitted_app(form, applicant)
    with pytest.raises(InvalidTransition):
        core.submit(app.id, applicant.actor)


def test_unknown_application_not_found(core, admin):
    import uuid

    with pytest.raises(NotFound):
        core.verify_payment(uuid.uuid4(), admin.actor)


def test_manual_verification(form, core, store, applicant, admin):
    app = submitted_app(form, applicant)
    result = core.verify_payment(app.id, admin.actor)

    assert result.applied is True
    updated = result.application
    assert updated.current_status == S.PAYMENT_RECEIVED
    assert updated.payment_verified is True
    assert updated.payment_verified_by == admin.user_id
    assert updated.payment_verified_at is not None
    assert _statuses(store, app.id)[-1] == (S.SUBMITTED, S.PAYMENT_RECEIVED)


def test_manual_verification_twice_is_noop(form, core, store, applicant, admin):
    app = submitted_app(form, applicant)
    core.verify_payment(app.id, admin.actor)
    rows = len(store.list_history(app.id))

    again = core.verify_payment(app.id, admin.actor)
    assert again.applied is False
    assert len(store.list_history(app.id)) == rows


def test_fee_waiver_for_financial_aid_applicant(form, core, applicant, admin):
    app = submitted_app(form, applicant, aid=True)
    result = core.verify_payment(app.id, admin.actor)
    assert result.application.current_status == S.PAYMENT_RECEIVED


def test_unassigned_reviewer_is_forbidden(form, core, store, applicant, reviewer, admin):
    app = submitted_app(form, applicant)
    before = store.write_count

    with pytest.raises(Forbidden):
        core.verify_payment(app.id, reviewer.actor)
    assert store.write_count == before

    store.assign_reviewer(app.id, reviewer.user_id, actor_id=admin.user_id)
    assert core.verify_payment(app.id, reviewer.actor).applied is True


def test_applicant_cannot_run_review_transitions(form, core, applicant):
    app = submitted_app(form, applicant)
    with pytest.raises(Forbidden):
        core.verify_payment(app.id, applicant.actor)


def test_processor_confirmation_moves_submitted(form, core, store, applicant):
    app = submitted_app(form, applicant, attestation=False)
    result = core.confirm_processor_payment(app.id, "pi_123")

    assert result.applied is True
    updated = result.application
    assert updated.current_status == S.PAYMENT_RECEIVED
    assert updated.payment_verified is True
    assert updated.payment_verified_by is None
    assert updated.payment_method == PaymentMethod.PROCESSOR
    assert updated.processor_status == ProcessorStatus.SUCCEEDED
    assert updated.processor_payment_id == "pi_123"
    assert store.list_history(app.id)[-1].changed_by == core.webhook_actor_id


def test_processor_confirmation_is_idempotent(form, core, store, applicant):
    app = submitted_app(form, applicant, attestation=False)
    core.confirm_processor_payment(app.id, "pi_123")
    second = core.confirm_processor_payment(app.id, "pi_123")

    assert second.applied is False
    assert second.message == "Payment already verified"
    received = [h for h in store.list_history(app.id) if h.new_status == S.PAYMENT_RECEIVED]
    assert len(received) == 1


def test_processor_confirmation_requires_webhook_identity(form, core, applicant, admin):
    app = submitted_app(form, applicant, attestation=False)
    with pytest.raises(Forbidden):
        core.confirm_processor_payment(app.id, "pi_123", actor=admin.actor)


def test_payment_during_draft_keeps_status_then_submit_chains(form, core, store, applicant):
    app = fill_draft(form, applicant, attestation=False)

    paid = core.confirm_processor_payment(app.id, "pi_draft")
    assert paid.application.current_status == S.DRAFT
    assert paid.application.payment_verified is True
    assert store.list_history(app.id) == []

    submitted = form.request_submit(app.id, applicant.actor).application
    assert submitted.current_status == S.PAYMENT_RECEIVED
    assert _statuses(store, app.id) == [(S.DRAFT, S.SUBMITTED), (S.SUBMITTED, S.PAYMENT_RECEIVED)]


def test_failed_payment_marks_processor_status_only(form, core, applicant):
    app = submitted_app(form, applicant, attestation=False)
    result = core.mark_processor_payment_failed(app.id, "pi_bad")

    assert result.applied is True
    assert result.application.processor_status == ProcessorStatus.FAILED
    assert result.application.payment_verified is False
    assert result.application.current_status == S.SUBMITTED


def test_failed_event_never_unverifies(form, core, applicant):
    app = submitted_app(form, applicant, attestation=False)
    core.confirm_processor_payment(app.id, "pi_123")
    result = core.mark_processor_payment_failed(app.id, "pi_123")

    assert result.applied is False
    assert result.application.payment_verified is True
    assert result.application.processor_status == ProcessorStatus.SUCCEEDED


def test_advance_requires_payment_received(form, core, store, applicant, admin):
    app = submitted_app(form, applicant)
    before = store.write_count
    with pytest.raises(InvalidTransition):
        core.advance_to_review(app.id, admin.actor)
    assert store.write_count == before


def test_decision_does_not_change_status(form, core, applicant, admin):
    app = in_review_app(form, core, applicant, admin)
    result = core.record_decision(app.id, Decision.ACCEPTED, admin.actor)
    assert result.application.current_status == S.IN_REVIEW
    assert result.application.decision == Decision.ACCEPTED
    assert result.application.visible_decision is None

    changed = core.record_decision(app.id, Decision.REJECTED, admin.actor)
    assert changed.application.decision == Decision.REJECTED


def test_decision_outside_review_is_invalid(form, core, applicant, admin):
    app = submitted_app(form, applicant)
    with pytest.raises(InvalidTransition):
        core.record_decision(app.id, Decision.ACCEPTED, admin.actor)


def test_release_requires_recorded_decision(form, core, store, applicant, admin):
    app = in_review_app(form, core, applicant, admin)
    before = store.write_count
    with pytest.raises(InvalidTransition):
        core.release_decision(app.id, admin.actor)
    assert store.write_count == before


def test_release_makes_decision_visible(form, core, applicant, admin):
    app = in_review_app(form, core, applicant, admin, decision=Decision.ACCEPTED)
    released = core.release_decision(app.id, admin.actor).application

    assert released.current_status == S.DECISION_RELEASED
    assert released.decision_released_at is not None
    assert released.visible_decision == Decision.ACCEPTED


def test_force_status_is_admin_only(form, core, applicant, reviewer):
    app = submitted_app(form, applicant)
    with pytest.raises(Forbidden):
        core.force_set_status(app.id, S.DRAFT, reviewer.actor)


def test_force_status_records_override_and_keeps_payment(form, core, store, applicant, admin):
    app = in_review_app(form, core, applicant, admin)
    result = core.force_set_status(app.id, S.SUBMITTED, admin.actor)

    assert result.application.current_status == S.SUBMITTED
    assert result.application.payment_verified is True
    last = store.list_history(app.id)[-1]
    assert last.reason == HistoryReason.ADMIN_OVERRIDE
    assert (last.old_status, last.new_status) == (S.IN_REVIEW, S.SUBMITTED)


def test_force_release_without_decision_is_invalid(form, core, applicant, admin):
    app = in_review_app(form, core, applicant, admin)
    with pytest.raises(InvalidTransition):
        core.force_set_status(app.id, S.DECISION_RELEASED, admin.actor)
