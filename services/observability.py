from __future__ import annotations

import logging
from contextvars import ContextVar

from services.redaction import redact_text


_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

LOG_FORMAT = "%(asctime)s level=%(levelname)s logger=%(name)s request_id=%(request_id)s %(message)s"


def set_request_id(value: str | None) -> None:
    _request_id.set(value)


def get_request_id() -> str | None:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id() or "-"
        return True


class RedactingFormatter(logging.Formatter):
    """
    Masks emails, bearer tokens and Stripe secrets in the rendered line.
    """

    def format(self, record: logging.LogRecord) -> str:
        return redact_text(super().format(record))


def configure_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger("portal")
    if any(getattr(h, "_portal_handler", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler._portal_handler = True
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(RedactingFormatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
