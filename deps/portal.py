# deps/portal.py
from __future__ import annotations

from fastapi import Request

from app.applications.form import FormController
from app.applications.review import ReviewController
from app.applications.service import ApplicationCore
from app.applications.store import ApplicationStore
from app.payments.base import PaymentGateway
from app.storage.blobs import BlobStorage
from app.webhooks.handler import PaymentWebhookHandler

# Collaborators are built once in create_app() and hung off app.state.


def get_store(request: Request) -> ApplicationStore:
    return request.app.state.store


def get_core(request: Request) -> ApplicationCore:
    return request.app.state.core


def get_form(request: Request) -> FormController:
    return request.app.state.form


def get_review(request: Request) -> ReviewController:
    return request.app.state.review


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_blobs(request: Request) -> BlobStorage:
    return request.app.state.blobs


def get_webhook_handler(request: Request) -> PaymentWebhookHandler:
    return request.app.state.webhook_handler
