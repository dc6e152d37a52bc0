import hmac

from fastapi import APIRouter, Header, HTTPException
from fastapi.responses import Response

from services.metrics import render_prometheus
from settings import settings

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics(x_metrics_token: str | None = Header(default=None)):
    # open when no token is configured (dev, sidecar scrapes on a private port)
    expected = (settings.METRICS_TOKEN or "").strip()
    if expected and not hmac.compare_digest(expected, (x_metrics_token or "").strip()):
        raise HTTPException(status_code=403, detail="METRICS_TOKEN_REQUIRED")
    return Response(content=render_prometheus(), media_type="text/plain; version=0.0.4")
