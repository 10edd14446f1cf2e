"""Health endpoints exposing liveness and provider circuit state."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from concertsync.api.cron import get_engine
from concertsync.orchestrator.bootstrap import EngineRuntime

router = APIRouter(prefix="/api/health", tags=["Health"], include_in_schema=False)


@router.get("/live")
async def live() -> dict[str, str]:
    """Return a lightweight liveness response without dependency checks."""

    return {"status": "ok"}


@router.get("/circuits")
async def circuits(engine: EngineRuntime = Depends(get_engine)) -> dict[str, Any]:
    metrics = await engine.guard.metrics()
    return {
        "status": "ok",
        "circuits": [entry.to_dict() for entry in metrics],
        "activeImports": len(engine.tracker.active()),
    }
