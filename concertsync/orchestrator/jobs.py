"""Job registry mapping job types to their handlers."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
import time
from typing import Any, assert_never
from uuid import uuid4

from pydantic import ValidationError

from concertsync.config import ImportConfig
from concertsync.integrations.provider_guard import ProviderGuard
from concertsync.logging import get_logger
from concertsync.logging_events import elapsed_ms, log_event
from concertsync.orchestrator.artist_import import ArtistImportOrchestrator
from concertsync.schemas import (
    ArtistImportPayload,
    BatchImportPayload,
    CleanupPayload,
    HealthCheckPayload,
    ProviderSyncPayload,
    TrendingPayload,
)
from concertsync.services.catalog_ingest import CatalogIngestRequest, CatalogIngestService
from concertsync.services.concert_dao import ConcertDao
from concertsync.services.show_ingest import ShowIngestRequest, ShowIngestService
from concertsync.services.trending import TrendingCalculator, TrendingOptions
from concertsync.utils.metrics import counter, histogram
from concertsync.utils.time import now_utc, to_iso

logger = get_logger(__name__)

STALE_ARTIST_LIMIT = 100
STUCK_IMPORT_AGE = timedelta(hours=1)


class JobType(str, Enum):
    ARTIST_IMPORT = "artist-import"
    BATCH_ARTIST_IMPORT = "batch-artist-import"
    TICKETMASTER_SYNC = "ticketmaster-sync"
    SPOTIFY_CATALOG_SYNC = "spotify-catalog-sync"
    TRENDING_CALCULATION = "trending-calculation"
    STALE_DATA_CLEANUP = "stale-data-cleanup"
    HEALTH_CHECK = "health-check"


class JobPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(slots=True, frozen=True)
class JobContext:
    job_id: str = field(default_factory=lambda: uuid4().hex)
    priority: JobPriority = JobPriority.MEDIUM
    retry_count: int = 0
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class JobResult:
    success: bool
    message: str
    data: Any | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class JobHandlerDeps:
    dao: ConcertDao
    guard: ProviderGuard
    orchestrator: ArtistImportOrchestrator
    show_ingest: ShowIngestService
    catalog_ingest: CatalogIngestService | None
    trending: TrendingCalculator
    imports: ImportConfig = field(default_factory=ImportConfig)


class JobProcessor:
    """Validate payloads and dispatch jobs; no job is retried here."""

    def __init__(self, deps: JobHandlerDeps) -> None:
        self._deps = deps

    async def execute_job(
        self,
        job_type: JobType | str,
        payload: Mapping[str, Any] | None = None,
        context: JobContext | None = None,
    ) -> JobResult:
        context = context or JobContext()
        raw_type = job_type.value if isinstance(job_type, JobType) else str(job_type)
        try:
            resolved = JobType(raw_type)
        except ValueError:
            result = JobResult(
                success=False,
                message=f"Unknown job type: {raw_type}",
                error="Invalid job type",
            )
            self._record(raw_type, context, result, 0)
            return result

        started = time.perf_counter()
        try:
            result = await self._dispatch(resolved, dict(payload or {}))
        except ValidationError as exc:
            result = JobResult(
                success=False,
                message=f"Invalid payload for {resolved.value}",
                error=str(exc),
            )
        except Exception as exc:
            logger.exception("Job %s (%s) raised", resolved.value, context.job_id)
            result = JobResult(
                success=False,
                message=f"Job {resolved.value} failed",
                error=str(exc) or type(exc).__name__,
            )
        self._record(resolved.value, context, result, elapsed_ms(started))
        return result

    async def _dispatch(self, job_type: JobType, payload: dict[str, Any]) -> JobResult:
        match job_type:
            case JobType.ARTIST_IMPORT:
                return await self._artist_import(ArtistImportPayload.model_validate(payload))
            case JobType.BATCH_ARTIST_IMPORT:
                return await self._batch_import(BatchImportPayload.model_validate(payload))
            case JobType.TICKETMASTER_SYNC:
                return await self._show_sync(ProviderSyncPayload.model_validate(payload))
            case JobType.SPOTIFY_CATALOG_SYNC:
                return await self._catalog_sync(ProviderSyncPayload.model_validate(payload))
            case JobType.TRENDING_CALCULATION:
                return await self._trending(TrendingPayload.model_validate(payload))
            case JobType.STALE_DATA_CLEANUP:
                return await self._cleanup(CleanupPayload.model_validate(payload))
            case JobType.HEALTH_CHECK:
                HealthCheckPayload.model_validate(payload)
                return await self._health_check()
            case _:
                assert_never(job_type)

    async def _artist_import(self, payload: ArtistImportPayload) -> JobResult:
        handle, outcome = await self._deps.orchestrator.import_artist(
            payload.provider_attraction_id
        )
        data = {"artistId": handle.artist_id, "slug": handle.slug, **outcome.to_dict()}
        return JobResult(
            success=outcome.success,
            message=(
                f"Artist import completed: {outcome.stats.songs_imported} songs, "
                f"{outcome.stats.shows_imported} shows"
            ),
            data=data,
            error=outcome.error,
        )

    async def _batch_import(self, payload: BatchImportPayload) -> JobResult:
        results = await self._deps.orchestrator.run_batch_import(
            payload.provider_attraction_ids,
            batch_size=payload.batch_size or self._deps.imports.batch_size,
        )
        succeeded = sum(1 for result in results if result.success)
        failed = len(results) - succeeded
        return JobResult(
            success=True,
            message=f"Batch import completed: {succeeded} successful, {failed} failed",
            data={
                "successful": succeeded,
                "failed": failed,
                "results": [result.to_dict() for result in results],
            },
        )

    async def _show_sync(self, payload: ProviderSyncPayload) -> JobResult:
        result = await self._deps.show_ingest.ingest(
            ShowIngestRequest(
                artist_id=payload.artist_id,
                provider_attraction_id=payload.provider_external_id,
                concurrency=self._deps.imports.show_concurrency,
            )
        )
        await asyncio.to_thread(
            self._deps.dao.touch_sync_timestamps, payload.artist_id, shows=True
        )
        return JobResult(
            success=True,
            message=(
                f"Ticketmaster sync completed: {result.new_shows} new shows, "
                f"{result.new_venues} new venues"
            ),
            data=result.to_dict(),
        )

    async def _catalog_sync(self, payload: ProviderSyncPayload) -> JobResult:
        service = self._deps.catalog_ingest
        if service is None:
            return JobResult(
                success=False,
                message="Catalog provider is not configured",
                error="Catalog provider unavailable",
            )
        result = await service.ingest(
            CatalogIngestRequest(
                artist_id=payload.artist_id,
                provider_artist_id=payload.provider_external_id,
                concurrency=self._deps.imports.catalog_concurrency,
            )
        )
        await asyncio.to_thread(
            self._deps.dao.touch_sync_timestamps, payload.artist_id, songs=True
        )
        return JobResult(
            success=True,
            message=(
                f"Spotify catalog sync completed: {result.studio_tracks_ingested} tracks ingested"
            ),
            data=result.to_dict(),
        )

    async def _trending(self, payload: TrendingPayload) -> JobResult:
        options = TrendingOptions(
            entity_ids=tuple(payload.entity_ids) if payload.entity_ids is not None else None
        )
        result = await self._deps.trending.calculate_trending_scores(options)
        return JobResult(
            success=True,
            message="Trending calculation completed",
            data=result.to_dict(),
        )

    async def _cleanup(self, payload: CleanupPayload) -> JobResult:
        cutoff = now_utc() - timedelta(days=payload.older_than_days)
        stale = await asyncio.to_thread(
            self._deps.dao.list_stale_artists, cutoff=cutoff, limit=STALE_ARTIST_LIMIT
        )
        cleaned = await asyncio.to_thread(
            self._deps.dao.reset_artists_to_pending, [artist.id for artist in stale]
        )
        return JobResult(
            success=True,
            message=f"Cleaned up {cleaned} stale artists",
            data={"cleanedCount": cleaned, "totalStale": len(stale)},
        )

    async def _health_check(self) -> JobResult:
        timestamp = now_utc()
        connected = await asyncio.to_thread(self._deps.dao.ping)
        stuck = 0
        if connected:
            stuck = await asyncio.to_thread(
                self._deps.dao.count_stuck_imports, cutoff=timestamp - STUCK_IMPORT_AGE
            )
        circuits = [metrics.to_dict() for metrics in await self._deps.guard.metrics()]
        return JobResult(
            success=connected,
            message="Health check completed",
            data={
                "timestamp": to_iso(timestamp),
                "database": {"connected": connected},
                "stuckImports": stuck,
                "circuits": circuits,
            },
            error=None if connected else "Database unreachable",
        )

    def _record(
        self, job_type: str, context: JobContext, result: JobResult, duration_ms: int
    ) -> None:
        status = "ok" if result.success else "failed"
        counter(
            "concertsync_jobs_total",
            "Job executions by type and outcome",
            label_names=("job_type", "status"),
        ).labels(job_type=job_type, status=status).inc()
        histogram(
            "concertsync_job_duration_seconds",
            "Job execution duration",
            label_names=("job_type",),
        ).labels(job_type=job_type).observe(duration_ms / 1000.0)
        log_event(
            logger,
            "worker.job",
            component="orchestrator.jobs",
            job_type=job_type,
            job_id=context.job_id,
            priority=context.priority.value,
            retry_count=context.retry_count,
            status=status,
            duration_ms=duration_ms,
            error=result.error,
        )


__all__ = [
    "JobContext",
    "JobHandlerDeps",
    "JobPriority",
    "JobProcessor",
    "JobResult",
    "JobType",
]
