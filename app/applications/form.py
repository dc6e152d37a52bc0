# app/applications/form.py
from __future__ import annotations

import logging
import re
import time
from datetime import date
from typing import Any, Mapping, Optional
from uuid import UUID, uuid4

from app.applications.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationFailed
from app.applications.model import (
    Actor,
    Application,
    ApplicationDocument,
    ApplicationStatus,
    CLASS_YEARS,
    DocumentType,
    FORM_FIELDS,
    POST_SUBMIT_FIELDS,
    PaymentMethod,
)
from app.applications.service import ApplicationCore, TransitionResult, missing_sections
from app.applications.store import ApplicationStore
from app.storage.blobs import BlobStorage

logger = logging.getLogger("portal.form")

S = ApplicationStatus

MAX_TEXT_LEN = 5000
MAX_GPA_LEN = 16
PDF_CONTENT_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF"

_TEXT_FIELDS = (
    "first_name",
    "last_name",
    "high_school",
    "country",
    "state",
    "financial_circumstances_overview",
    "financial_documentation_consent",
    "payment_certification",
)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(name: str) -> str:
    base = (name or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    cleaned = _UNSAFE_NAME.sub("_", base).strip("._")
    return (cleaned or "document.pdf")[:120]


def _clean_text(field: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailed(f"{field} must be a string", fields=[field])
    value = value.strip()
    if len(value) > MAX_TEXT_LEN:
        raise ValidationFailed(f"{field} is too long", fields=[field])
    return value or None


def validate_form_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize an applicant-supplied partial payload. Unknown keys are rejected.
    """
    unknown = sorted(set(fields) - set(FORM_FIELDS))
    if unknown:
        raise ValidationFailed("Unknown fields", fields=unknown)

    out: dict[str, Any] = {}
    for key, value in fields.items():
        if key in _TEXT_FIELDS:
            out[key] = _clean_text(key, value)
        elif key == "gpa":
            gpa = _clean_text(key, value)
            if gpa is not None and len(gpa) > MAX_GPA_LEN:
                raise ValidationFailed("gpa is too long", fields=["gpa"])
            out[key] = gpa
        elif key == "class_year":
            if value is not None and str(value) not in CLASS_YEARS:
                raise ValidationFailed("class_year is not an allowed year", fields=["class_year"])
            out[key] = str(value) if value is not None else None
        elif key == "date_of_birth":
            if value is None or isinstance(value, date):
                out[key] = value
            else:
                try:
                    out[key] = date.fromisoformat(str(value))
                except ValueError:
                    raise ValidationFailed("date_of_birth must be an ISO date", fields=["date_of_birth"])
        elif key == "applying_for_financial_aid":
            if value is not None and not isinstance(value, bool):
                raise ValidationFailed("applying_for_financial_aid must be a boolean", fields=[key])
            out[key] = value
        elif key == "payment_method":
            try:
                out[key] = PaymentMethod(value) if value is not None else None
            except ValueError:
                raise ValidationFailed("payment_method is not supported", fields=[key])
    return out


class FormController:
    """
    Applicant-side operations: draft editing, documents, submission.
    Status changes go through ApplicationCore.
    """

    def __init__(
        self,
        store: ApplicationStore,
        core: ApplicationCore,
        blobs: BlobStorage,
        *,
        max_upload_bytes: int,
        url_ttl_s: int,
        clock=time.time,
    ):
        self.store = store
        self.core = core
        self.blobs = blobs
        self.max_upload_bytes = max_upload_bytes
        self.url_ttl_s = url_ttl_s
        self._clock = clock

    def _require_read(self, actor: Actor, app: Application) -> None:
        if actor.user_id == app.user_id and not actor.is_webhook:
            return
        try:
            self.core.require_reviewer(actor, app)
        except Forbidden:
            raise Forbidden("Not allowed to view this application")

    def load_draft(self, application_id: UUID, actor: Actor) -> tuple[Application, list[ApplicationDocument]]:
        app = self.core.load(application_id)
        self._require_read(actor, app)
        return app, self.store.list_documents(app.id)

    def active_application(self, actor: Actor) -> Application:
        app = self.store.latest_application_for_owner(actor.user_id)
        if app is None:
            raise NotFound("No application yet")
        return app

    def create_application(self, actor: Actor) -> tuple[Application, bool]:
        """
        Returns (application, created). A user holds at most one active application;
        an existing one is returned instead of creating a second.
        """
        existing = self.store.latest_application_for_owner(actor.user_id)
        if existing is not None and existing.current_status != S.DECISION_RELEASED:
            return existing, False

        try:
            app = self.store.insert_application(Application(id=uuid4(), user_id=actor.user_id), actor_id=actor.user_id)
        except Conflict:
            # lost a race against another create for the same user
            existing = self.store.latest_application_for_owner(actor.user_id)
            if existing is None:
                raise
            return existing, False

        logger.info("application_created application_id=%s user_id=%s", app.id, actor.user_id)
        return app, True

    def save_draft(
        self,
        application_id: UUID,
        fields: Mapping[str, Any],
        actor: Actor,
        *,
        expected_version: Optional[int] = None,
    ) -> Application:
        app = self.core.load(application_id)
        self.core.require_owner(actor, app)
        changes = validate_form_fields(fields)

        expect: dict[str, Any] = {"current_status": app.current_status}
        if app.current_status == S.DRAFT:
            pass
        elif app.current_status == S.SUBMITTED and not app.payment_verified:
            locked = sorted(set(changes) - set(POST_SUBMIT_FIELDS))
            if locked:
                raise Forbidden("Only payment details can change after submission", fields=locked)
            expect["payment_verified"] = False
        else:
            raise InvalidTransition("Application can no longer be edited", current_status=app.current_status.value)

        if expected_version is not None:
            if expected_version != app.version:
                raise Conflict("Application was modified elsewhere", current_version=app.version)
            expect["version"] = expected_version

        if not changes:
            return app

        updated = self.store.apply_update(app.id, actor_id=actor.user_id, expect=expect, changes=changes)
        if updated is None:
            fresh = self.core.load(application_id)
            if expected_version is not None and fresh.version != expected_version:
                raise Conflict("Application was modified elsewhere", current_version=fresh.version)
            raise InvalidTransition("Application can no longer be edited", current_status=fresh.current_status.value)

        logger.info(
            "draft_saved application_id=%s fields=%s version=%s",
            app.id,
            ",".join(sorted(changes)),
            updated.version,
        )
        return updated

    def upload_document(
        self,
        application_id: UUID,
        actor: Actor,
        *,
        file_name: str,
        content_type: Optional[str],
        data: bytes,
        file_type: str,
    ) -> ApplicationDocument:
        app = self.core.load(application_id)
        self.core.require_owner(actor, app)
        if app.current_status != S.DRAFT:
            raise InvalidTransition("Documents can only change while in draft", current_status=app.current_status.value)

        try:
            doc_type = DocumentType(file_type)
        except ValueError:
            raise ValidationFailed("Unknown document type", fields=["file_type"])

        mime = (content_type or "").split(";", 1)[0].strip().lower()
        if mime != PDF_CONTENT_TYPE:
            raise ValidationFailed("Only PDF files are allowed", fields=["content_type"])
        if not data:
            raise ValidationFailed("File is empty", fields=["file"])
        if len(data) > self.max_upload_bytes:
            raise ValidationFailed("File size must be less than 10MB", fields=["file"], max_bytes=self.max_upload_bytes)
        if not data.startswith(PDF_MAGIC):
            raise ValidationFailed("File is not a PDF", fields=["file"])

        if any(d.file_type == doc_type for d in self.store.list_documents(app.id)):
            raise Conflict(f"A {doc_type.value} document is already uploaded; delete it first")

        name = safe_file_name(file_name)
        path = f"{app.user_id}/{app.id}/{int(self._clock() * 1000)}_{name}"
        self.blobs.put(path, data, PDF_CONTENT_TYPE)

        document = ApplicationDocument(
            id=uuid4(),
            application_id=app.id,
            file_path=path,
            file_name=name,
            file_type=doc_type,
        )
        try:
            saved = self.store.insert_document(document, actor_id=actor.user_id, require_status=S.DRAFT)
        except Exception:
            self.blobs.delete(path)
            raise
        if saved is None:
            self.blobs.delete(path)
            raise InvalidTransition("Documents can only change while in draft")

        logger.info(
            "document_uploaded application_id=%s document_id=%s file_type=%s bytes=%s",
            app.id,
            saved.id,
            doc_type.value,
            len(data),
        )
        return saved

    def _document_and_app(self, document_id: UUID) -> tuple[ApplicationDocument, Application]:
        doc = self.store.get_document(document_id)
        if doc is None:
            raise NotFound("Document not found")
        return doc, self.core.load(doc.application_id)

    def delete_document(self, document_id: UUID, actor: Actor) -> None:
        doc, app = self._document_and_app(document_id)
        self.core.require_owner(actor, app)
        if app.current_status != S.DRAFT:
            raise InvalidTransition("Documents can only change while in draft", current_status=app.current_status.value)

        # the row goes first; a submit that wins the race keeps both row and file
        if not self.store.delete_document(doc.id, actor_id=actor.user_id, require_status=S.DRAFT):
            raise InvalidTransition("Documents can only change while in draft")
        self.blobs.delete(doc.file_path)
        logger.info("document_deleted application_id=%s document_id=%s", app.id, doc.id)

    def document_url(self, document_id: UUID, actor: Actor) -> str:
        doc, app = self._document_and_app(document_id)
        self._require_read(actor, app)
        return self.blobs.signed_url(doc.file_path, self.url_ttl_s)

    def request_submit(self, application_id: UUID, actor: Actor) -> TransitionResult:
        app = self.core.load(application_id)
        self.core.require_owner(actor, app)
        if app.current_status == S.DRAFT:
            problems = missing_sections(app, self.store.list_documents(app.id))
            if problems:
                raise ValidationFailed(
                    "Please complete the following sections: " + ", ".join(sorted(problems)),
                    sections=sorted(problems),
                    fields=problems,
                )
        return self.core.submit(application_id, actor)
