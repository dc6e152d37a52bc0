from __future__ import annotations

import logging
import os

from fastapi import APIRouter, Request

from settings import settings

router = APIRouter(tags=["health"])
logger = logging.getLogger("portal.http")

MIGRATION_REVISION = "0001_applicant_portal_schema"


def _check_store(request: Request) -> tuple[bool, str | None]:
    try:
        return bool(request.app.state.store.ping()), None
    except Exception as exc:
        logger.warning("store_ping_failed error=%s", type(exc).__name__)
        return False, type(exc).__name__


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


@router.get("/healthz")
def healthz(request: Request):
    db_ok, db_error = _check_store(request)
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "db_ok": db_ok,
        "db_error": db_error,
    }


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": settings.ENV,
        "store_backend": settings.STORE_BACKEND,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/readyz")
def readyz(request: Request):
    db_ok, db_error = _check_store(request)
    return {
        "ready": db_ok,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "db_ok": db_ok,
        "db_error": db_error,
        "migration_revision": MIGRATION_REVISION,
    }
