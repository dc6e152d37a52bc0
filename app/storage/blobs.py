# app/storage/blobs.py
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from pathlib import Path, PurePosixPath
from typing import Optional, Protocol
from urllib.parse import quote, urlencode

from app.applications.errors import NotFound, ValidationFailed

logger = logging.getLogger("portal.storage")


class BlobStorage(Protocol):
    def put(self, path: str, data: bytes, content_type: str) -> None: ...
    def get(self, path: str) -> bytes: ...
    def delete(self, path: str) -> None: ...
    def signed_url(self, path: str, ttl_s: int) -> str: ...
    def verify_signature(self, path: str, expires: int, sig: str) -> bool: ...


def _sign(secret: str, path: str, expires: int) -> str:
    msg = f"{path}:{expires}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def normalize_blob_path(path: str) -> str:
    """
    Blob paths are relative, slash-separated and never climb out of the root.
    """
    raw = (path or "").strip().replace("\\", "/")
    if not raw or raw.startswith("/") or any(part in ("", ".", "..") for part in raw.split("/")):
        raise ValidationFailed("Invalid blob path")
    return raw


class LocalBlobStorage:
    """
    Filesystem-backed blobs with HMAC-signed, expiring download URLs.
    URLs point at the files route (`/v1/files/{path}?expires=&sig=`).
    """

    def __init__(self, root: str | Path, *, signing_secret: str, base_url: str = "/v1/files", clock=time.time):
        self.root = Path(root)
        self.signing_secret = signing_secret
        self.base_url = base_url.rstrip("/")
        self._clock = clock

    def _resolve(self, path: str) -> Path:
        return self.root.joinpath(*PurePosixPath(normalize_blob_path(path)).parts)

    def put(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("blob_put path=%s bytes=%s content_type=%s", path, len(data), content_type)

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFound("File not found")
        return target.read_bytes()

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        # missing blobs are fine; the row is the source of truth
        target.unlink(missing_ok=True)
        logger.info("blob_delete path=%s", path)

    def signed_url(self, path: str, ttl_s: int) -> str:
        path = normalize_blob_path(path)
        expires = int(self._clock()) + int(ttl_s)
        query = urlencode({"expires": expires, "sig": _sign(self.signing_secret, path, expires)})
        return f"{self.base_url}/{quote(path)}?{query}"

    def verify_signature(self, path: str, expires: int, sig: Optional[str]) -> bool:
        if not sig:
            return False
        try:
            path = normalize_blob_path(path)
        except ValidationFailed:
            return False
        if int(expires) < int(self._clock()):
            return False
        expected = _sign(self.signing_secret, path, int(expires))
        return hmac.compare_digest(expected, sig)
