# tests/conftest.py

import uuid
from dataclasses import dataclass
from typing import Dict

import pytest
from fastapi.testclient import TestClient

import rate_limit
from app.applications.form import FormController
from app.applications.memory import InMemoryApplicationStore
from app.applications.model import Actor, Profile, Role
from app.applications.review import ReviewController
from app.applications.service import ApplicationCore
from app.payments.mock import MockPaymentGateway
from app.storage.blobs import LocalBlobStorage
from main import create_app
from security import create_access_token
from services import metrics


WEBHOOK_SECRET = "whsec_test_portal_secret"
BLOB_SECRET = "test-blob-signing-secret"
SYSTEM_ACTOR_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\ntrailer << >>\n%%EOF\n"

COMPLETE_INFO = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "date_of_birth": "2008-12-10",
    "high_school": "Marylebone High",
    "gpa": "3.9",
    "country": "United States",
    "state": "NY",
    "class_year": "2026",
}


@dataclass
class AuthedUser:
    user_id: uuid.UUID
    email: str
    role: Role
    token: str

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role, email=self.email)

    @property
    def headers(self) -> Dict[str, str]:
        return auth_headers(self.token)


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def make_user(store: InMemoryApplicationStore, role: Role = Role.APPLICANT, email: str | None = None) -> AuthedUser:
    user_id = uuid.uuid4()
    email = email or f"{role.value}-{user_id.hex[:8]}@example.com"
    store.upsert_profile(Profile(id=user_id, email=email, role=role, full_name=role.value.title()))
    return AuthedUser(
        user_id=user_id,
        email=email,
        role=role,
        token=create_access_token(str(user_id), email=email),
    )


# ---------------------------
# Collaborators
# ---------------------------

@pytest.fixture(autouse=True)
def _fresh_process_state():
    rate_limit._limiter = rate_limit.InMemoryRateLimiter()
    metrics.reset()
    yield


@pytest.fixture()
def store() -> InMemoryApplicationStore:
    return InMemoryApplicationStore()


@pytest.fixture()
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture()
def blobs(tmp_path) -> LocalBlobStorage:
    return LocalBlobStorage(tmp_path / "blobs", signing_secret=BLOB_SECRET)


@pytest.fixture()
def core(store) -> ApplicationCore:
    return ApplicationCore(store, webhook_actor_id=SYSTEM_ACTOR_ID)


@pytest.fixture()
def form(store, core, blobs) -> FormController:
    return FormController(store, core, blobs, max_upload_bytes=10 * 1024 * 1024, url_ttl_s=3600)


@pytest.fixture()
def review(store, core) -> ReviewController:
    return ReviewController(store, core)


@pytest.fixture()
def app(store, gateway, blobs):
    return create_app(store=store, gateway=gateway, blobs=blobs, webhook_secret=WEBHOOK_SECRET)


@pytest.fixture()
def client(app) -> TestClient:
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    return TestClient(app, raise_server_exceptions=False)


# ---------------------------
# Users
# ---------------------------

@pytest.fixture()
def applicant(store) -> AuthedUser:
    return make_user(store, Role.APPLICANT)


@pytest.fixture()
def other_applicant(store) -> AuthedUser:
    return make_user(store, Role.APPLICANT)


@pytest.fixture()
def reviewer(store) -> AuthedUser:
    return make_user(store, Role.REVIEWER)


@pytest.fixture()
def admin(store) -> AuthedUser:
    return make_user(store, Role.ADMIN)


# ---------------------------
# Application builders
# ---------------------------

def fill_draft(form: FormController, user: AuthedUser, *, aid: bool = False, attestation: bool = True):
    """
    A draft that passes submission checks: info, primary PDF, and payment choice.
    """
    app, _ = form.create_application(user.actor)
    fields = dict(COMPLETE_INFO)
    fields["applying_for_financial_aid"] = aid
    if aid:
        fields["financial_circumstances_overview"] = "Single income household."
        fields["financial_documentation_consent"] = "I consent"
    elif attestation:
        fields["payment_method"] = "attestation"
        fields["payment_certification"] = "Sent $20 by bank transfer on Jan 3"
    else:
        fields["payment_method"] = "processor"
    form.save_draft(app.id, fields, user.actor)
    form.upload_document(
        app.id,
        user.actor,
        file_name="essay.pdf",
        content_type="application/pdf",
        data=PDF_BYTES,
        file_type="application",
    )
    return form.store.get_application(app.id)


def submitted_app(form: FormController, user: AuthedUser, **kw):
    app = fill_draft(form, user, **kw)
    return form.request_submit(app.id, user.actor).application


def in_review_app(form, core, user: AuthedUser, admin: AuthedUser, decision=None):
    app = submitted_app(form, user)
    core.verify_payment(app.id, admin.actor)
    app = core.advance_to_review(app.id, admin.actor).application
    if decision is not None:
        app = core.record_decision(app.id, decision, admin.actor).application
    return app
