# app/applications/errors.py
from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """
    Base for every typed rejection the portal reports.
    `code` is stable and safe to return to clients.
    """

    code = "PORTAL_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None, **extra: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.extra = extra

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"error": self.code, "message": self.message}
        detail.update({k: v for k, v in self.extra.items() if v is not None})
        return detail


class ValidationFailed(PortalError):
    code = "VALIDATION_FAILED"
    http_status = 400


class NotFound(PortalError):
    code = "NOT_FOUND"
    http_status = 404


class Forbidden(PortalError):
    code = "FORBIDDEN"
    http_status = 403


class InvalidTransition(PortalError):
    code = "INVALID_TRANSITION"
    http_status = 409


class Conflict(PortalError):
    code = "CONFLICT"
    http_status = 409


class UpstreamError(PortalError):
    code = "UPSTREAM_ERROR"
    http_status = 502


ERROR_HTTP_MAP: dict[str, int] = {
    cls.code: cls.http_status
    for cls in (ValidationFailed, NotFound, Forbidden, InvalidTransition, Conflict, UpstreamError)
}
