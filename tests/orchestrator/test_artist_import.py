from __future__ import annotations

from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from concertsync.config import ImportConfig
from concertsync.db import session_scope
from concertsync.integrations.contracts import (
    CatalogAlbum,
    CatalogArtist,
    ProviderAttraction,
    ProviderDependencyError,
    ProviderNotFoundError,
)
from concertsync.models import ArtistRecord, ImportStatus
from concertsync.orchestrator.artist_import import ArtistImportOrchestrator
from concertsync.services.catalog_ingest import CatalogIngestService
from concertsync.services.concert_dao import ConcertDao
from concertsync.services.setlist_sync import SetlistSyncService
from concertsync.services.show_ingest import ShowIngestService
from concertsync.services.sync_progress import SyncProgressTracker, SyncStatus
from tests.helpers import (
    StubCatalogProvider,
    StubShowProvider,
    build_guard,
    make_event,
    make_track,
    make_venue,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)
_CONFIG = ImportConfig(page_delay_ms=0, batch_size=2)


def _attraction(
    attraction_id: str, name: str, *, catalog_id: str | None = "sp-1"
) -> ProviderAttraction:
    return ProviderAttraction(id=attraction_id, name=name, catalog_id=catalog_id)


def _build(
    show_provider: StubShowProvider,
    catalog_provider: StubCatalogProvider | None = None,
) -> tuple[ArtistImportOrchestrator, ConcertDao, SyncProgressTracker]:
    dao = ConcertDao(now_factory=lambda: NOW)
    guard = build_guard()
    tracker = SyncProgressTracker()
    catalog = catalog_provider or StubCatalogProvider(
        albums={"sp-1": [CatalogAlbum(id="alb-1", name="Debut")]},
        album_tracks={
            "alb-1": [
                make_track("t1", "Opener", popularity=90, album_id="alb-1"),
                make_track("t2", "Ballad", popularity=60, album_id="alb-1"),
            ]
        },
    )
    orchestrator = ArtistImportOrchestrator(
        show_provider=show_provider,
        guard=guard,
        dao=dao,
        catalog_ingest=CatalogIngestService(provider=catalog, guard=guard, dao=dao),
        show_ingest=ShowIngestService(
            provider=show_provider,
            guard=guard,
            dao=dao,
            config=_CONFIG,
            today_factory=lambda: NOW.date(),
        ),
        setlist_sync=SetlistSyncService(dao=dao, guard=guard),
        tracker=tracker,
        config=_CONFIG,
    )
    return orchestrator, dao, tracker


def _show_provider(*attractions: ProviderAttraction) -> StubShowProvider:
    events = {}
    for attraction in attractions:
        hall = make_venue(f"{attraction.id}-ven", f"{attraction.name} Hall")
        events[attraction.id] = [
            [
                make_event(f"{attraction.id}-ev-1", venue=hall, on=date(2024, 7, 1)),
                make_event(f"{attraction.id}-ev-2", venue=hall, on=date(2024, 8, 1)),
            ]
        ]
    return StubShowProvider(attractions=attractions, events=events)


@pytest.mark.asyncio
async def test_initiate_import_creates_exactly_one_artist() -> None:
    provider = _show_provider(_attraction("K8vZ917", "The Testers"))
    orchestrator, dao, _ = _build(provider)

    first = await orchestrator.initiate_import("K8vZ917")
    second = await orchestrator.initiate_import("K8vZ917")

    assert first == second
    assert first.slug == "the-testers"
    with session_scope() as session:
        count = session.execute(select(func.count(ArtistRecord.id))).scalar_one()
    assert count == 1
    artist = dao.get_artist(first.artist_id)
    assert artist is not None
    assert artist.import_status == ImportStatus.INITIALIZING.value


@pytest.mark.asyncio
async def test_initiate_import_propagates_unknown_attraction() -> None:
    orchestrator, _, _ = _build(_show_provider())

    with pytest.raises(ProviderNotFoundError):
        await orchestrator.initiate_import("missing")


@pytest.mark.asyncio
async def test_full_import_runs_every_stage() -> None:
    provider = _show_provider(_attraction("K8vZ917", "The Testers"))
    orchestrator, dao, tracker = _build(provider)

    handle, outcome = await orchestrator.import_artist("K8vZ917")

    assert outcome.success is True
    assert outcome.error is None
    assert outcome.stats.songs_imported == 2
    assert outcome.stats.shows_imported == 2
    assert outcome.stats.venues_imported == 1
    assert outcome.stats.setlists_created == 2

    artist = dao.get_artist(handle.artist_id)
    assert artist is not None
    assert artist.import_status == ImportStatus.COMPLETED.value
    assert artist.last_synced_at == NOW
    assert artist.songs_synced_at == NOW
    assert artist.shows_synced_at == NOW

    progress = tracker.get_progress(handle.artist_id)
    assert progress is not None
    assert progress.status is SyncStatus.COMPLETED
    assert progress.steps["songs"].count == 2
    assert progress.steps["setlists"].count == 2
    assert progress.completed_at is not None


@pytest.mark.asyncio
async def test_failed_stage_marks_import_failed_but_later_stages_run() -> None:
    provider = _show_provider(_attraction("K8vZ917", "The Testers"))
    provider.failures["events:K8vZ917"] = ProviderDependencyError("ticketmaster", "503")
    orchestrator, dao, tracker = _build(provider)

    handle, outcome = await orchestrator.import_artist("K8vZ917")

    assert outcome.success is False
    assert outcome.error is not None and "Show import failed" in outcome.error
    assert outcome.stats.songs_imported == 2
    artist = dao.get_artist(handle.artist_id)
    assert artist is not None
    assert artist.import_status == ImportStatus.FAILED.value
    assert artist.import_error == outcome.error
    progress = tracker.get_progress(handle.artist_id)
    assert progress is not None
    assert progress.steps["shows"].status is SyncStatus.FAILED
    assert progress.steps["setlists"].status is SyncStatus.COMPLETED
    assert progress.status is SyncStatus.FAILED


@pytest.mark.asyncio
async def test_artist_without_catalog_match_skips_catalog_stage() -> None:
    provider = _show_provider(_attraction("K8vZ917", "The Testers", catalog_id=None))
    catalog = StubCatalogProvider()
    orchestrator, _, tracker = _build(provider, catalog)

    handle, outcome = await orchestrator.import_artist("K8vZ917")

    assert outcome.success is True
    assert outcome.stats.songs_imported == 0
    assert catalog.calls == [("search_artist", "The Testers")]
    progress = tracker.get_progress(handle.artist_id)
    assert progress is not None
    assert progress.steps["songs"].message == "No catalog id"


@pytest.mark.asyncio
async def test_missing_catalog_id_is_resolved_by_artist_name() -> None:
    provider = _show_provider(_attraction("K8vZ918", "The Finders", catalog_id=None))
    catalog = StubCatalogProvider(
        artists={"The Finders": CatalogArtist(id="sp-9", name="The Finders")},
        albums={"sp-9": [CatalogAlbum(id="alb-9", name="Found")]},
        album_tracks={"alb-9": [make_track("t9", "Lost Signal", album_id="alb-9")]},
    )
    orchestrator, dao, _ = _build(provider, catalog)

    handle, outcome = await orchestrator.import_artist("K8vZ918")

    assert outcome.success is True
    assert outcome.stats.songs_imported == 1
    assert catalog.calls[0] == ("search_artist", "The Finders")
    assert ("list_artist_albums", "sp-9", 0) in catalog.calls
    artist = dao.get_artist(handle.artist_id)
    assert artist is not None
    assert artist.spotify_id == "sp-9"


@pytest.mark.asyncio
async def test_run_full_import_for_unknown_artist_fails() -> None:
    orchestrator, _, _ = _build(_show_provider())

    outcome = await orchestrator.run_full_import("no-such-artist")

    assert outcome.success is False
    assert outcome.error == "Artist no-such-artist not found"


@pytest.mark.asyncio
async def test_batch_import_reports_each_id_in_order() -> None:
    provider = _show_provider(
        _attraction("A1", "First", catalog_id=None),
        _attraction("A2", "Second", catalog_id=None),
        _attraction("A3", "Third", catalog_id=None),
    )
    orchestrator, _, _ = _build(provider)

    results = await orchestrator.run_batch_import(["A1", "missing", "A2", "A3"])

    assert [result.provider_attraction_id for result in results] == ["A1", "missing", "A2", "A3"]
    assert [result.success for result in results] == [True, False, True, True]
    assert results[1].artist_id is None
    assert results[1].error == "attraction not found"
    assert results[0].to_dict()["stats"]["showsImported"] == 2
