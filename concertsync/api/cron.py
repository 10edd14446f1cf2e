"""Scheduler trigger running the sync, trending and maintenance pipelines."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
from enum import Enum
import hmac
import time

from fastapi import APIRouter, Depends, Query, Request

from concertsync.errors import AuthenticationRequiredError, ValidationAppError
from concertsync.logging import get_logger
from concertsync.logging_events import elapsed_ms, log_event
from concertsync.orchestrator.bootstrap import EngineRuntime
from concertsync.orchestrator.jobs import JobContext, JobPriority, JobResult, JobType
from concertsync.schemas import CronResponse, CronRunResult
from concertsync.utils.time import now_utc, to_iso

router = APIRouter(prefix="/api/cron", tags=["Cron"])

_logger = get_logger(__name__)
_COMPONENT = "api.cron"

Pipeline = Callable[[], Awaitable[list[CronRunResult]]]


class SyncType(str, Enum):
    ARTISTS = "artists"
    SHOWS = "shows"
    TRENDING = "trending"
    MAINTENANCE = "maintenance"
    ALL = "all"


def get_engine(request: Request) -> EngineRuntime:
    return request.app.state.engine


def _presented_secret(request: Request, *, allow_header: bool) -> str | None:
    authorization = request.headers.get("Authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    if allow_header:
        header = request.headers.get("X-Cron-Secret", "").strip()
        if header:
            return header
    return None


def require_cron_secret(request: Request, engine: EngineRuntime = Depends(get_engine)) -> None:
    cron = engine.settings.cron
    path = request.url.path
    if not cron.secret:
        log_event(
            _logger,
            "auth.misconfigured",
            component=_COMPONENT,
            status="error",
            path=path,
            method=request.method,
        )
        raise AuthenticationRequiredError()

    presented = _presented_secret(request, allow_header=cron.allow_header_secret)
    if presented is None:
        log_event(
            _logger,
            "auth.missing",
            component=_COMPONENT,
            status="error",
            path=path,
            method=request.method,
        )
        raise AuthenticationRequiredError()

    if not hmac.compare_digest(presented, cron.secret):
        log_event(
            _logger,
            "auth.invalid",
            component=_COMPONENT,
            status="error",
            path=path,
            method=request.method,
        )
        raise AuthenticationRequiredError()


def _parse_sync_type(raw: str) -> SyncType:
    try:
        return SyncType(raw.strip().lower())
    except ValueError:
        raise ValidationAppError(
            f"Invalid sync type: {raw}",
            meta={"allowed": [member.value for member in SyncType]},
        ) from None


def _run_result(name: str, result: JobResult, duration_ms: int) -> CronRunResult:
    return CronRunResult(
        job=name,
        success=result.success,
        message=result.message,
        duration=duration_ms,
        data=result.data,
        error=result.error,
    )


class CronPipelines:
    """Pipelines selectable through the trigger's ``type`` parameter."""

    def __init__(self, engine: EngineRuntime) -> None:
        self._engine = engine
        self._context = JobContext(priority=JobPriority.MEDIUM, metadata={"source": "cron"})

    async def _job(self, job_type: JobType, payload: dict[str, object]) -> CronRunResult:
        started = time.perf_counter()
        result = await self._engine.processor.execute_job(job_type, payload, self._context)
        return _run_result(job_type.value, result, elapsed_ms(started))

    async def artists(self) -> list[CronRunResult]:
        imports = self._engine.settings.imports
        cutoff = now_utc() - timedelta(hours=imports.sync_interval_hours)
        due = await asyncio.to_thread(
            self._engine.dao.list_artists_due_for_sync,
            older_than=cutoff,
            limit=imports.artists_per_run,
        )
        if not due:
            return [
                CronRunResult(
                    job=JobType.BATCH_ARTIST_IMPORT.value,
                    success=True,
                    message="No artists due for sync",
                    duration=0,
                )
            ]
        ids = [artist.tm_attraction_id for artist in due if artist.tm_attraction_id]
        return [
            await self._job(
                JobType.BATCH_ARTIST_IMPORT,
                {"providerAttractionIds": ids, "batchSize": imports.batch_size},
            )
        ]

    async def shows(self) -> list[CronRunResult]:
        imports = self._engine.settings.imports
        artists = await asyncio.to_thread(
            self._engine.dao.list_synced_artists, limit=imports.artists_per_run
        )
        started = time.perf_counter()
        runs: list[CronRunResult] = []
        for artist in artists:
            runs.append(
                await self._job(
                    JobType.TICKETMASTER_SYNC,
                    {"artistId": artist.id, "providerExternalId": artist.tm_attraction_id},
                )
            )
        failed = sum(1 for run in runs if not run.success)
        return [
            CronRunResult(
                job=JobType.TICKETMASTER_SYNC.value,
                success=failed == 0,
                message=f"Show sync completed for {len(runs)} artists ({failed} failed)",
                duration=elapsed_ms(started),
                data=[run.model_dump() for run in runs],
                error=f"{failed} artist syncs failed" if failed else None,
            )
        ]

    async def trending(self) -> list[CronRunResult]:
        return [await self._job(JobType.TRENDING_CALCULATION, {})]

    async def maintenance(self) -> list[CronRunResult]:
        return [
            await self._job(JobType.STALE_DATA_CLEANUP, {}),
            await self._job(JobType.HEALTH_CHECK, {}),
        ]

    def plan(self, sync_type: SyncType) -> list[tuple[str, Pipeline]]:
        pipelines: dict[SyncType, Pipeline] = {
            SyncType.ARTISTS: self.artists,
            SyncType.SHOWS: self.shows,
            SyncType.TRENDING: self.trending,
            SyncType.MAINTENANCE: self.maintenance,
        }
        if sync_type is SyncType.ALL:
            return [(key.value, pipelines[key]) for key in pipelines]
        return [(sync_type.value, pipelines[sync_type])]


async def _run(sync_type: SyncType, engine: EngineRuntime) -> CronResponse:
    started = time.perf_counter()
    pipelines = CronPipelines(engine)
    results: list[CronRunResult] = []
    for name, step in pipelines.plan(sync_type):
        step_started = time.perf_counter()
        try:
            results.extend(await step())
        except Exception as exc:
            _logger.exception("Cron pipeline %s failed", name)
            results.append(
                CronRunResult(
                    job=name,
                    success=False,
                    message=f"Pipeline {name} failed",
                    duration=elapsed_ms(step_started),
                    error=str(exc) or type(exc).__name__,
                )
            )
    response = CronResponse(
        success=all(result.success for result in results),
        timestamp=to_iso(now_utc()) or "",
        results=results,
        totalDuration=elapsed_ms(started),
    )
    log_event(
        _logger,
        "cron.trigger",
        component=_COMPONENT,
        status="ok" if response.success else "failed",
        sync_type=sync_type.value,
        jobs=len(results),
        duration_ms=response.totalDuration,
    )
    return response


@router.api_route("/sync", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def trigger_sync(
    sync_type: str = Query("all", alias="type"),
    engine: EngineRuntime = Depends(get_engine),
) -> CronResponse:
    return await _run(_parse_sync_type(sync_type), engine)


__all__ = ["CronPipelines", "SyncType", "router"]
