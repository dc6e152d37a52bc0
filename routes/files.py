# routes/files.py
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from app.storage.blobs import BlobStorage
from deps.portal import get_blobs

router = APIRouter(prefix="/v1/files", tags=["files"])


@router.get("/{path:path}")
def get_file(
    path: str,
    expires: int = Query(...),
    sig: str = Query(...),
    blobs: BlobStorage = Depends(get_blobs),
):
    # the signature is the credential; no bearer token on download links
    if not blobs.verify_signature(path, expires, sig):
        raise HTTPException(status_code=403, detail="INVALID_OR_EXPIRED_LINK")
    data = blobs.get(path)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Cache-Control": "private, no-store"},
    )
