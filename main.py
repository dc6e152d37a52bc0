#main.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.applications.errors import PortalError
from app.applications.form import FormController
from app.applications.memory import InMemoryApplicationStore
from app.applications.review import ReviewController
from app.applications.service import ApplicationCore
from app.applications.store import ApplicationStore
from app.payments.base import PaymentGateway
from app.payments.mock import MockPaymentGateway
from app.payments.stripe import StripeGateway
from app.storage.blobs import BlobStorage, LocalBlobStorage
from app.webhooks.handler import PaymentWebhookHandler
from middleware import RequestContextMiddleware
from routes.applications import router as applications_router
from routes.files import router as files_router
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.payments import router as payments_router
from routes.review import router as review_router
from routes.webhooks import router as webhooks_router
from services.observability import configure_logging
from services.redaction import redact_headers
from settings import cors_origins, settings, validate_env_settings

logger = logging.getLogger("portal.http")


def _default_store() -> ApplicationStore:
    if settings.STORE_BACKEND == "memory":
        return InMemoryApplicationStore()

    from app.applications.repository import PostgresApplicationStore
    from db import ConnectionPool

    return PostgresApplicationStore(ConnectionPool(settings.DATABASE_URL))


def _default_gateway() -> PaymentGateway:
    if (settings.STRIPE_SECRET_KEY or "").strip():
        return StripeGateway(
            secret_key=settings.STRIPE_SECRET_KEY,
            api_base=settings.STRIPE_API_BASE,
            timeout_s=settings.STRIPE_HTTP_TIMEOUT_S,
        )
    logger.warning("stripe_not_configured using=mock_gateway env=%s", settings.ENV)
    return MockPaymentGateway()


def create_app(
    *,
    store: Optional[ApplicationStore] = None,
    gateway: Optional[PaymentGateway] = None,
    blobs: Optional[BlobStorage] = None,
    webhook_secret: Optional[str] = None,
) -> FastAPI:
    """
    Build the API with its process-scoped collaborators. Tests pass their own
    store/gateway/blobs; production builds them from settings.
    """
    configure_logging()
    validate_env_settings()

    app = FastAPI(title="Applicant Portal API", version="1.0.0")

    store = store if store is not None else _default_store()
    gateway = gateway if gateway is not None else _default_gateway()
    blobs = blobs if blobs is not None else LocalBlobStorage(
        settings.BLOB_STORAGE_ROOT, signing_secret=settings.BLOB_SIGNING_SECRET
    )

    core = ApplicationCore(store, webhook_actor_id=settings.WEBHOOK_ACTOR_ID)
    app.state.store = store
    app.state.gateway = gateway
    app.state.blobs = blobs
    app.state.core = core
    app.state.form = FormController(
        store,
        core,
        blobs,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
        url_ttl_s=settings.BLOB_URL_TTL_S,
    )
    app.state.review = ReviewController(store, core)
    app.state.webhook_handler = PaymentWebhookHandler(
        core,
        secret=webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET,
        tolerance_s=settings.STRIPE_WEBHOOK_TOLERANCE_S,
    )

    # -----------------------------
    # MIDDLEWARE
    # -----------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?" if settings.ENV == "dev" else None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(payments_router)
    app.include_router(webhooks_router)
    app.include_router(applications_router)
    app.include_router(review_router)
    app.include_router(files_router)

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        if exc.http_status >= 500:
            logger.warning("portal_error code=%s path=%s", exc.code, request.url.path)
        return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_detail()})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "unhandled_error path=%s error=%s headers=%s",
            request.url.path,
            type(exc).__name__,
            redact_headers(request.headers),
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()
