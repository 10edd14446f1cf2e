"""Multi-stage artist import driving the catalog, show and setlist ingest."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import partial
import time
from typing import Any

from concertsync.config import ImportConfig
from concertsync.integrations.contracts import ShowProvider
from concertsync.integrations.provider_guard import ProviderGuard
from concertsync.logging import get_logger
from concertsync.logging_events import elapsed_ms, log_event
from concertsync.models import ImportStatus
from concertsync.services.catalog_ingest import CatalogIngestRequest, CatalogIngestService
from concertsync.services.concert_dao import ArtistRow, ConcertDao
from concertsync.services.setlist_sync import SetlistSyncService
from concertsync.services.show_ingest import ShowIngestRequest, ShowIngestService
from concertsync.services.sync_progress import SyncProgressTracker, SyncStatus
from concertsync.utils.concurrency import gather_bounded

logger = get_logger(__name__)

_COMPONENT = "orchestrator.artist_import"


@dataclass(slots=True, frozen=True)
class ImportHandle:
    artist_id: str
    slug: str


@dataclass(slots=True, frozen=True)
class ImportStats:
    songs_imported: int = 0
    shows_imported: int = 0
    venues_imported: int = 0
    setlists_created: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "songsImported": self.songs_imported,
            "showsImported": self.shows_imported,
            "venuesImported": self.venues_imported,
            "setlistsCreated": self.setlists_created,
            "duration": self.duration_ms,
        }


@dataclass(slots=True, frozen=True)
class ImportOutcome:
    success: bool
    stats: ImportStats = field(default_factory=ImportStats)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "stats": self.stats.to_dict()}
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True, frozen=True)
class BatchImportResult:
    provider_attraction_id: str
    success: bool
    artist_id: str | None = None
    stats: ImportStats | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "providerAttractionId": self.provider_attraction_id,
            "success": self.success,
            "artistId": self.artist_id,
        }
        if self.stats is not None:
            payload["stats"] = self.stats.to_dict()
        if self.error is not None:
            payload["error"] = self.error
        return payload


class ArtistImportOrchestrator:
    """Resolve an artist from the show provider and run every import stage.

    A failing stage marks its own progress steps failed and records the error;
    the remaining stages still run. Only an unresolvable artist aborts early.
    """

    def __init__(
        self,
        *,
        show_provider: ShowProvider,
        guard: ProviderGuard,
        dao: ConcertDao,
        catalog_ingest: CatalogIngestService | None,
        show_ingest: ShowIngestService,
        setlist_sync: SetlistSyncService | None = None,
        tracker: SyncProgressTracker | None = None,
        config: ImportConfig | None = None,
    ) -> None:
        self._show_provider = show_provider
        self._guard = guard
        self._dao = dao
        self._catalog_ingest = catalog_ingest
        self._show_ingest = show_ingest
        self._setlist_sync = setlist_sync
        self._tracker = tracker or SyncProgressTracker()
        self._config = config or ImportConfig()

    @property
    def tracker(self) -> SyncProgressTracker:
        return self._tracker

    async def initiate_import(self, provider_attraction_id: str) -> ImportHandle:
        attraction = await self._guard.call(
            self._show_provider.name,
            "get_attraction",
            partial(self._show_provider.get_attraction, provider_attraction_id),
        )
        artist = await asyncio.to_thread(self._dao.upsert_artist_from_attraction, attraction)
        log_event(
            logger,
            "import.initiated",
            component=_COMPONENT,
            status="ok",
            artist_id=artist.id,
            attraction_id=provider_attraction_id,
        )
        return ImportHandle(artist_id=artist.id, slug=artist.slug)

    async def run_full_import(self, artist_id: str) -> ImportOutcome:
        started = time.perf_counter()
        artist = await asyncio.to_thread(self._dao.get_artist, artist_id)
        if artist is None:
            log_event(
                logger,
                "import.artist",
                component=_COMPONENT,
                status="failed",
                artist_id=artist_id,
                error="artist_not_found",
            )
            return ImportOutcome(success=False, error=f"Artist {artist_id} not found")

        tracker = self._tracker
        tracker.start_sync(artist.id, artist.name)
        tracker.update_step_status(artist.id, "artist", SyncStatus.SYNCING)
        await asyncio.to_thread(self._dao.set_import_status, artist.id, ImportStatus.IMPORTING)
        tracker.update_step_status(artist.id, "artist", SyncStatus.COMPLETED, count=1)

        errors: list[str] = []
        catalog_ok, songs = await self._run_catalog_stage(artist, errors)
        shows_ok, shows, venues = await self._run_show_stage(artist, errors)
        setlists = await self._run_setlist_stage(artist, errors)

        success = not errors
        error = "; ".join(errors) if errors else None
        await asyncio.to_thread(
            partial(
                self._dao.set_import_status,
                artist.id,
                ImportStatus.COMPLETED if success else ImportStatus.FAILED,
                error=error,
                songs_synced=catalog_ok,
                shows_synced=shows_ok,
                synced=True,
            )
        )
        tracker.complete_sync(artist.id)

        stats = ImportStats(
            songs_imported=songs,
            shows_imported=shows,
            venues_imported=venues,
            setlists_created=setlists,
            duration_ms=elapsed_ms(started),
        )
        log_event(
            logger,
            "import.artist",
            component=_COMPONENT,
            status="ok" if success else "failed",
            artist_id=artist.id,
            songs=songs,
            shows=shows,
            venues=venues,
            setlists=setlists,
            duration_ms=stats.duration_ms,
            error=error,
        )
        return ImportOutcome(success=success, stats=stats, error=error)

    async def import_artist(
        self, provider_attraction_id: str
    ) -> tuple[ImportHandle, ImportOutcome]:
        handle = await self.initiate_import(provider_attraction_id)
        return handle, await self.run_full_import(handle.artist_id)

    async def run_batch_import(
        self, attraction_ids: Sequence[str], batch_size: int | None = None
    ) -> list[BatchImportResult]:
        """Import every id with bounded fan-out; one result per id, in input order."""

        started = time.perf_counter()
        limit = batch_size or self._config.batch_size
        outcomes = await gather_bounded(list(attraction_ids), self.import_artist, limit=limit)
        results: list[BatchImportResult] = []
        for outcome in outcomes:
            if not outcome.ok or outcome.value is None:
                results.append(
                    BatchImportResult(
                        provider_attraction_id=outcome.item,
                        success=False,
                        error=str(outcome.error) or type(outcome.error).__name__,
                    )
                )
                continue
            handle, result = outcome.value
            results.append(
                BatchImportResult(
                    provider_attraction_id=outcome.item,
                    success=result.success,
                    artist_id=handle.artist_id,
                    stats=result.stats,
                    error=result.error,
                )
            )
        failed = sum(1 for result in results if not result.success)
        log_event(
            logger,
            "import.batch",
            component=_COMPONENT,
            status="ok" if not failed else "partial",
            total=len(results),
            failed=failed,
            duration_ms=elapsed_ms(started),
        )
        return results

    async def _run_catalog_stage(self, artist: ArtistRow, errors: list[str]) -> tuple[bool, int]:
        tracker = self._tracker
        catalog_id = artist.spotify_id
        if self._catalog_ingest is not None and not catalog_id:
            catalog_id = await self._catalog_ingest.resolve_artist_id(artist.name)
            if catalog_id:
                await asyncio.to_thread(self._dao.set_catalog_id, artist.id, catalog_id)
        if self._catalog_ingest is None or not catalog_id:
            for step in ("albums", "songs"):
                tracker.update_step_status(
                    artist.id, step, SyncStatus.COMPLETED, count=0, message="No catalog id"
                )
            return False, 0

        tracker.update_step_status(artist.id, "albums", SyncStatus.SYNCING)
        tracker.update_step_status(artist.id, "songs", SyncStatus.SYNCING)
        try:
            result = await self._catalog_ingest.ingest(
                CatalogIngestRequest(
                    artist_id=artist.id,
                    provider_artist_id=catalog_id,
                    concurrency=self._config.catalog_concurrency,
                )
            )
        except Exception as exc:
            message = f"Catalog import failed: {exc}"
            logger.warning("Catalog stage failed for %s: %s", artist.id, exc)
            for step in ("albums", "songs"):
                tracker.update_step_status(artist.id, step, SyncStatus.FAILED, message=str(exc))
            tracker.set_error(artist.id, message)
            errors.append(message)
            return False, 0

        tracker.update_step_status(
            artist.id, "albums", SyncStatus.COMPLETED, count=result.albums_processed
        )
        tracker.update_step_status(
            artist.id, "songs", SyncStatus.COMPLETED, count=result.studio_tracks_ingested
        )
        return True, result.studio_tracks_ingested

    async def _run_show_stage(
        self, artist: ArtistRow, errors: list[str]
    ) -> tuple[bool, int, int]:
        tracker = self._tracker
        if not artist.tm_attraction_id:
            tracker.update_step_status(
                artist.id, "shows", SyncStatus.COMPLETED, count=0, message="No attraction id"
            )
            return False, 0, 0

        tracker.update_step_status(artist.id, "shows", SyncStatus.SYNCING)
        try:
            result = await self._show_ingest.ingest(
                ShowIngestRequest(
                    artist_id=artist.id,
                    provider_attraction_id=artist.tm_attraction_id,
                    concurrency=self._config.show_concurrency,
                )
            )
        except Exception as exc:
            message = f"Show import failed: {exc}"
            logger.warning("Show stage failed for %s: %s", artist.id, exc)
            tracker.update_step_status(artist.id, "shows", SyncStatus.FAILED, message=str(exc))
            tracker.set_error(artist.id, message)
            errors.append(message)
            return False, 0, 0

        tracker.update_step_status(
            artist.id, "shows", SyncStatus.COMPLETED, count=result.shows_processed
        )
        return True, result.new_shows, result.new_venues

    async def _run_setlist_stage(self, artist: ArtistRow, errors: list[str]) -> int:
        tracker = self._tracker
        if self._setlist_sync is None:
            tracker.update_step_status(artist.id, "setlists", SyncStatus.COMPLETED, count=0)
            return 0

        tracker.update_step_status(artist.id, "setlists", SyncStatus.SYNCING)
        try:
            result = await self._setlist_sync.sync(artist)
        except Exception as exc:
            message = f"Setlist sync failed: {exc}"
            logger.warning("Setlist stage failed for %s: %s", artist.id, exc)
            tracker.update_step_status(artist.id, "setlists", SyncStatus.FAILED, message=str(exc))
            tracker.set_error(artist.id, message)
            errors.append(message)
            return 0

        tracker.update_step_status(
            artist.id, "setlists", SyncStatus.COMPLETED, count=result.setlists_created
        )
        return result.setlists_created


__all__ = [
    "ArtistImportOrchestrator",
    "BatchImportResult",
    "ImportHandle",
    "ImportOutcome",
    "ImportStats",
]
