"""Prometheus exposition endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from concertsync.utils import metrics

router = APIRouter(tags=["System"])


@router.get("/metrics")
async def get_metrics() -> Response:
    """Expose Prometheus metrics collected by the engine."""

    payload = generate_latest(metrics.get_registry())
    headers = {"Cache-Control": "no-store"}
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST, headers=headers)
