import threading
from concurrent.futures import ThreadPoolExecutor

from app.applications.errors import Conflict, InvalidTransition, PortalError
from app.applications.model import ApplicationStatus, Decision
from conftest import PDF_BYTES, in_review_app, make_user, submitted_app

S = ApplicationStatus


def _race(n, fn):
    barrier = threading.Barrier(n)

    def run(_):
        barrier.wait()
        try:
            return fn()
        except PortalError as e:
            return e

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(run, range(n)))


def test_duplicate_processor_confirmations_apply_once(form, core, store, applicant):
    app = submitted_app(form, applicant, attestation=False)

    results = _race(8, lambda: core.confirm_processor_payment(app.id, "pi_race"))

    assert all(not isinstance(r, Exception) for r in results)
    assert sum(1 for r in results if r.applied) == 1
    received = [h for h in store.list_history(app.id) if h.new_status == S.PAYMENT_RECEIVED]
    assert len(received) == 1
    assert store.get_application(app.id).current_status == S.PAYMENT_RECEIVED


def test_manual_and_processor_verification_race(form, core, store, applicant, admin):
    app = submitted_app(form, applicant, attestation=False)
    calls = [
        lambda: core.verify_payment(app.id, admin.actor),
        lambda: core.confirm_processor_payment(app.id, "pi_race"),
    ] * 4
    it = iter(calls)
    lock = threading.Lock()

    def next_call():
        with lock:
            fn = next(it)
        return fn()

    results = _race(len(calls), next_call)

    assert all(not isinstance(r, Exception) for r in results)
    assert sum(1 for r in results if r.applied) == 1
    received = [h for h in store.list_history(app.id) if h.new_status == S.PAYMENT_RECEIVED]
    assert len(received) == 1
    assert store.get_application(app.id).payment_verified is True


def test_concurrent_releases_write_one_history_row(form, core, store, admin):
    app = in_review_app(form, core, make_user(store), admin, decision=Decision.ACCEPTED)

    results = _race(6, lambda: core.release_decision(app.id, admin.actor))

    applied = [r for r in results if not isinstance(r, Exception) and r.applied]
    rejected = [r for r in results if isinstance(r, InvalidTransition)]
    assert len(applied) == 1
    assert len(applied) + len(rejected) == 6
    released = [h for h in store.list_history(app.id) if h.new_status == S.DECISION_RELEASED]
    assert len(released) == 1


def test_concurrent_primary_uploads_keep_one_document(form, store, blobs, applicant):
    app, _ = form.create_application(applicant.actor)
    names = iter(f"essay-{i}.pdf" for i in range(4))
    lock = threading.Lock()

    def upload():
        with lock:
            name = next(names)
        return form.upload_document(
            app.id,
            applicant.actor,
            file_name=name,
            content_type="application/pdf",
            data=PDF_BYTES,
            file_type="application",
        )

    results = _race(4, upload)

    saved = [r for r in results if not isinstance(r, Exception)]
    assert len(saved) == 1
    assert all(isinstance(r, Conflict) for r in results if isinstance(r, Exception))
    docs = store.list_documents(app.id)
    assert [d.id for d in docs] == [saved[0].id]
    assert blobs.get(saved[0].file_path) == PDF_BYTES
    stored = [p for p in (blobs.root / str(applicant.user_id) / str(app.id)).iterdir()]
    assert len(stored) == 1


def test_concurrent_creates_yield_one_active_application(form, store, applicant):
    results = _race(6, lambda: form.create_application(applicant.actor))

    ids = {r[0].id for r in results if not isinstance(r, Exception)}
    assert len(ids) == 1
    assert sum(1 for r in results if not isinstance(r, Exception) and r[1]) == 1
