from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import select

from concertsync.config import ImportConfig
from concertsync.db import session_scope
from concertsync.integrations.contracts import (
    CatalogAlbum,
    ProviderAttraction,
    ProviderDependencyError,
)
from concertsync.models import ArtistSongRecord, SongRecord
from concertsync.services.catalog_ingest import (
    CatalogIngestRequest,
    CatalogIngestService,
    dedupe_by_isrc,
    is_live_track_name,
    is_studio_album,
)
from concertsync.services.concert_dao import ConcertDao
from tests.helpers import RecordingLimiter, StubCatalogProvider, build_guard, make_track


def _dao() -> ConcertDao:
    return ConcertDao(now_factory=lambda: datetime(2024, 6, 1, 12, 0, 0))


def _artist_id(dao: ConcertDao) -> str:
    return dao.upsert_artist_from_attraction(
        ProviderAttraction(id="K8vZ917", name="Testers", catalog_id="sp-1")
    ).id


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Debut", True),
        ("Live at Wembley", False),
        ("MTV Unplugged", False),
        ("The Sessions", False),
        ("Greatest Hits (Live)", False),
        ("Oliver", True),
    ],
)
def test_is_studio_album(name: str, expected: bool) -> None:
    assert is_studio_album(CatalogAlbum(id="a", name=name)) is expected


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Opener", False),
        ("Opener - Live", True),
        ("Opener (Acoustic Version)", True),
        ("Opener [Live]", True),
        ("Delivery", False),
    ],
)
def test_is_live_track_name(name: str, expected: bool) -> None:
    assert is_live_track_name(name) is expected


def test_dedupe_by_isrc_keeps_most_popular_copy() -> None:
    tracks = [
        make_track("t1", "Opener", isrc="US1", popularity=40),
        make_track("t2", "Ballad"),
        make_track("t3", "Opener (Remastered)", isrc="US1", popularity=75),
        make_track("t4", "Closer", isrc="US2"),
    ]

    kept, duplicates = dedupe_by_isrc(tracks)

    assert [track.id for track in kept] == ["t3", "t2", "t4"]
    assert duplicates == 1


@pytest.mark.asyncio
async def test_ingest_keeps_studio_tracks_and_links_them() -> None:
    dao = _dao()
    artist_id = _artist_id(dao)
    provider = StubCatalogProvider(
        albums={
            "sp-1": [
                CatalogAlbum(id="alb-1", name="Debut"),
                CatalogAlbum(id="alb-2", name="Live in Berlin"),
                CatalogAlbum(id="alb-3", name="Deluxe"),
            ]
        },
        album_tracks={
            "alb-1": [
                make_track("t1", "Opener", isrc="US1", popularity=40, album_id="alb-1"),
                make_track("t2", "Crowd Song", album_id="alb-1"),
                make_track("t3", "Ballad - Live", album_id="alb-1"),
            ],
            "alb-2": [make_track("t9", "Opener", album_id="alb-2")],
            "alb-3": [
                make_track("t4", "Opener", isrc="US1", popularity=80, album_id="alb-3"),
                make_track("t5", "Closer", album_id="alb-3"),
            ],
        },
        liveness={"t1": 0.1, "t2": 0.95, "t3": 0.2, "t4": 0.1, "t5": 0.3},
    )
    service = CatalogIngestService(provider=provider, guard=build_guard(), dao=dao)

    result = await service.ingest(
        CatalogIngestRequest(artist_id=artist_id, provider_artist_id="sp-1")
    )

    assert result.albums_processed == 2
    assert result.tracks_processed == 5
    assert result.live_features_filtered == 1
    assert result.live_name_filtered == 1
    assert result.duplicates_filtered == 1
    assert result.studio_tracks_ingested == 2
    assert result.new_songs == 2
    assert result.errors == ()
    assert ("list_album_tracks", "alb-2", 0) not in provider.calls

    with session_scope() as session:
        songs = {
            record.spotify_id: record for record in session.execute(select(SongRecord)).scalars()
        }
        links = session.execute(
            select(ArtistSongRecord.song_id).where(ArtistSongRecord.artist_id == artist_id)
        ).all()
    assert set(songs) == {"t4", "t5"}
    assert songs["t4"].popularity == 80
    assert len(links) == 2


@pytest.mark.asyncio
async def test_album_failure_is_recorded_and_other_albums_continue() -> None:
    dao = _dao()
    artist_id = _artist_id(dao)
    provider = StubCatalogProvider(
        albums={
            "sp-1": [
                CatalogAlbum(id="alb-1", name="Debut"),
                CatalogAlbum(id="alb-2", name="Second"),
            ]
        },
        album_tracks={"alb-2": [make_track("t5", "Closer", album_id="alb-2")]},
        failing_albums=["alb-1"],
    )
    service = CatalogIngestService(provider=provider, guard=build_guard(), dao=dao)

    result = await service.ingest(
        CatalogIngestRequest(artist_id=artist_id, provider_artist_id="sp-1")
    )

    assert result.albums_processed == 1
    assert result.studio_tracks_ingested == 1
    assert [error.type for error in result.errors] == ["album_tracks_fetch"]
    assert result.errors[0].item_id == "alb-1"


@pytest.mark.asyncio
async def test_missing_audio_features_fall_back_to_name_filter() -> None:
    dao = _dao()
    artist_id = _artist_id(dao)
    provider = StubCatalogProvider(
        albums={"sp-1": [CatalogAlbum(id="alb-1", name="Debut")]},
        album_tracks={
            "alb-1": [
                make_track("t1", "Opener", album_id="alb-1"),
                make_track("t2", "Opener - Live", album_id="alb-1"),
            ]
        },
        features_error=ProviderDependencyError("spotify", "audio features gone"),
    )
    service = CatalogIngestService(provider=provider, guard=build_guard(), dao=dao)

    result = await service.ingest(
        CatalogIngestRequest(artist_id=artist_id, provider_artist_id="sp-1")
    )

    assert result.studio_tracks_ingested == 1
    assert result.live_name_filtered == 1
    assert result.live_features_filtered == 0


@pytest.mark.asyncio
async def test_reingest_links_existing_songs_without_creating_new_ones() -> None:
    dao = _dao()
    artist_id = _artist_id(dao)
    provider = StubCatalogProvider(
        albums={"sp-1": [CatalogAlbum(id="alb-1", name="Debut")]},
        album_tracks={"alb-1": [make_track("t1", "Opener", album_id="alb-1")]},
    )
    service = CatalogIngestService(provider=provider, guard=build_guard(), dao=dao)
    request = CatalogIngestRequest(artist_id=artist_id, provider_artist_id="sp-1")

    first = await service.ingest(request)
    second = await service.ingest(request)

    assert first.new_songs == 1
    assert second.new_songs == 0
    assert second.studio_tracks_ingested == 1


@pytest.mark.asyncio
async def test_paginated_catalog_requests_are_spaced_out() -> None:
    dao = _dao()
    artist_id = _artist_id(dao)
    limiter = RecordingLimiter()
    albums = [CatalogAlbum(id=f"alb-{index}", name=f"Record {index}") for index in range(120)]
    provider = StubCatalogProvider(
        albums={"sp-1": albums},
        album_tracks={
            "alb-0": [make_track(f"t{index}", f"Song {index}") for index in range(60)]
        },
    )
    service = CatalogIngestService(
        provider=provider,
        guard=build_guard(limiter=limiter),
        dao=dao,
        config=ImportConfig(catalog_page_delay_ms=75),
    )

    result = await service.ingest(
        CatalogIngestRequest(artist_id=artist_id, provider_artist_id="sp-1")
    )

    album_pages = [call for call in provider.calls if call[0] == "list_artist_albums"]
    track_pages = [call for call in provider.calls if call[:2] == ("list_album_tracks", "alb-0")]
    assert [call[2] for call in album_pages] == [0, 50, 100]
    assert [call[2] for call in track_pages] == [0, 50]
    assert limiter.delays == [75, 75, 75]
    assert result.albums_processed == 120
    assert result.studio_tracks_ingested == 60
