import pytest

from app.applications.errors import Forbidden, ValidationFailed
from app.applications.model import ApplicationFilter, ApplicationStatus, Decision
from conftest import in_review_app, make_user, submitted_app

S = ApplicationStatus


def test_bulk_release_releases_only_decided(form, core, store, review, admin):
    decided = [
        in_review_app(form, core, make_user(store), admin, decision=d)
        for d in (Decision.ACCEPTED, Decision.REJECTED, Decision.ACCEPTED)
    ]
    undecided = in_review_app(form, core, make_user(store), admin)

    report = review.request_release_all_pending_decisions(admin.actor)

    assert sorted(report.released) == sorted(a.id for a in decided)
    assert report.failed == {}
    for a in decided:
        assert store.get_application(a.id).current_status == S.DECISION_RELEASED
    untouched = store.get_application(undecided.id)
    assert untouched.current_status == S.IN_REVIEW
    assert untouched.version == undecided.version


def test_bulk_release_is_not_capped_by_list_limit(form, core, store, review, admin, monkeypatch):
    decided = [in_review_app(form, core, make_user(store), admin, decision=Decision.ACCEPTED) for _ in range(5)]

    real_list = store.list_applications

    def small_pages(flt):
        out = real_list(flt)
        return out if flt.limit is None else out[:2]

    monkeypatch.setattr(store, "list_applications", small_pages)
    report = review.request_release_all_pending_decisions(admin.actor)

    assert sorted(report.released) == sorted(a.id for a in decided)
    for a in decided:
        assert store.get_application(a.id).current_status == S.DECISION_RELEASED


def test_list_limit_none_returns_every_match(form, core, store, review, admin):
    for _ in range(3):
        submitted_app(form, make_user(store))

    assert len(review.list_applications(admin.actor, ApplicationFilter(limit=2))) == 2
    assert len(review.list_applications(admin.actor, ApplicationFilter(limit=None))) == 3


def test_bulk_release_reports_per_application_errors(form, core, store, review, admin, monkeypatch):
    good = in_review_app(form, core, make_user(store), admin, decision=Decision.ACCEPTED)
    raced = in_review_app(form, core, make_user(store), admin, decision=Decision.REJECTED)

    real_release = core.release_decision

    def flaky_release(application_id, actor):
        if application_id == raced.id:
            # someone pulled it back out of review in the meantime
            core.force_set_status(raced.id, S.PAYMENT_RECEIVED, admin.actor)
        return real_release(application_id, actor)

    monkeypatch.setattr(core, "release_decision", flaky_release)
    report = review.request_release_all_pending_decisions(admin.actor)

    assert report.outcomes[good.id] == "released"
    assert report.outcomes[raced.id] == "INVALID_TRANSITION"
    assert report.to_dict()["released"] == 1
    assert report.to_dict()["failed"] == 1


def test_reviewer_sees_only_assigned(form, core, store, review, reviewer, admin):
    mine = submitted_app(form, make_user(store))
    submitted_app(form, make_user(store))
    store.assign_reviewer(mine.id, reviewer.user_id, actor_id=admin.user_id)

    assert [a.id for a in review.list_applications(reviewer.actor)] == [mine.id]
    assert len(review.list_applications(admin.actor)) == 2


def test_reviewer_bulk_release_limited_to_assignments(form, core, store, review, reviewer, admin):
    mine = in_review_app(form, core, make_user(store), admin, decision=Decision.ACCEPTED)
    other = in_review_app(form, core, make_user(store), admin, decision=Decision.ACCEPTED)
    store.assign_reviewer(mine.id, reviewer.user_id, actor_id=admin.user_id)

    report = review.request_release_all_pending_decisions(reviewer.actor)

    assert report.released == [mine.id]
    assert store.get_application(other.id).current_status == S.IN_REVIEW


def test_pending_payment_filter(form, core, store, review, admin):
    waiting = submitted_app(form, make_user(store))
    paid = submitted_app(form, make_user(store))
    core.verify_payment(paid.id, admin.actor)

    pending = review.list_applications(admin.actor, ApplicationFilter(pending_payment=True))
    assert [a.id for a in pending] == [waiting.id]


def test_status_counts(form, core, store, review, admin):
    submitted_app(form, make_user(store))
    in_review_app(form, core, make_user(store), admin, decision=Decision.ACCEPTED)
    released = in_review_app(form, core, make_user(store), admin, decision=Decision.REJECTED)
    core.release_decision(released.id, admin.actor)

    counts = review.status_counts(admin.actor)
    assert counts["total"] == 3
    assert counts["submitted"] == 1
    assert counts["pending_payment"] == 1
    assert counts["in_review"] == 1
    assert counts["decision_released"] == 1
    assert counts["accepted"] == 1
    assert counts["rejected"] == 1


def test_applicant_cannot_list(review, applicant):
    with pytest.raises(Forbidden):
        review.list_applications(applicant.actor)


def test_get_application_includes_history(form, core, store, review, admin):
    app = in_review_app(form, core, make_user(store), admin)
    detail = review.get_application(app.id, admin.actor)

    assert detail.application.id == app.id
    assert len(detail.documents) == 1
    assert [h.new_status for h in detail.history] == [S.SUBMITTED, S.PAYMENT_RECEIVED, S.IN_REVIEW]


def test_assign_reviewer_rules(form, store, review, reviewer, admin, applicant):
    app = submitted_app(form, make_user(store))

    with pytest.raises(Forbidden):
        review.assign_reviewer(app.id, reviewer.user_id, reviewer.actor)
    with pytest.raises(ValidationFailed):
        review.assign_reviewer(app.id, applicant.user_id, admin.actor)

    assignment = review.assign_reviewer(app.id, reviewer.user_id, admin.actor)
    assert assignment.reviewer_id == reviewer.user_id
    assert store.is_assigned(app.id, reviewer.user_id)
