"""Ingest an artist's studio catalog from the catalog provider."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
import re
import time
from typing import Any

from concertsync.config import ImportConfig
from concertsync.integrations.contracts import (
    CatalogAlbum,
    CatalogProvider,
    CatalogTrack,
    ProviderError,
)
from concertsync.integrations.provider_guard import ProviderGuard
from concertsync.logging import get_logger
from concertsync.logging_events import elapsed_ms, log_event
from concertsync.services.concert_dao import ConcertDao
from concertsync.services.ingest_tally import IngestError, IngestTally, fold_settled
from concertsync.utils.concurrency import gather_bounded

logger = get_logger(__name__)

LIVENESS_THRESHOLD = 0.8
ALBUM_PAGE_SIZE = 50
TRACK_PAGE_SIZE = 50

LIVE_TRACK_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(live|concert|acoustic|unplugged|session)\b",
        r"\b(live at|live from|live in|live on)\b",
        r"\b(acoustic version|live version|concert version)\b",
        r"\(live\)",
        r"\[live\]",
        r"- live$",
        r"\bmtv unplugged\b",
    )
)

LIVE_ALBUM_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(live|concert|acoustic|unplugged|sessions?|tour)\b",
        r"\b(live at|live from|live in|live on)\b",
        r"\b(acoustic album|live album|concert album)\b",
        r"\(live\)",
        r"\[live\]",
        r"- live$",
    )
)


@dataclass(slots=True, frozen=True)
class CatalogIngestRequest:
    artist_id: str
    provider_artist_id: str
    concurrency: int = 8


@dataclass(slots=True, frozen=True)
class CatalogIngestResult:
    albums_processed: int = 0
    tracks_processed: int = 0
    studio_tracks_ingested: int = 0
    live_features_filtered: int = 0
    live_name_filtered: int = 0
    duplicates_filtered: int = 0
    new_songs: int = 0
    errors: tuple[IngestError, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "albumsProcessed": self.albums_processed,
            "tracksProcessed": self.tracks_processed,
            "studioTracksIngested": self.studio_tracks_ingested,
            "liveFeaturesFiltered": self.live_features_filtered,
            "liveNameFiltered": self.live_name_filtered,
            "duplicatesFiltered": self.duplicates_filtered,
            "newSongs": self.new_songs,
            "errors": [error.to_dict() for error in self.errors],
        }


def is_studio_album(album: CatalogAlbum) -> bool:
    return not any(pattern.search(album.name) for pattern in LIVE_ALBUM_PATTERNS)


def is_live_track_name(name: str) -> bool:
    return any(pattern.search(name) for pattern in LIVE_TRACK_PATTERNS)


def dedupe_by_isrc(tracks: list[CatalogTrack]) -> tuple[list[CatalogTrack], int]:
    """Keep the most popular track per ISRC; tracks without one are all kept."""

    kept: dict[str, CatalogTrack] = {}
    ordered: list[str | CatalogTrack] = []
    duplicates = 0
    for track in tracks:
        if not track.isrc:
            ordered.append(track)
            continue
        existing = kept.get(track.isrc)
        if existing is None:
            kept[track.isrc] = track
            ordered.append(track.isrc)
            continue
        duplicates += 1
        if track.popularity > existing.popularity:
            kept[track.isrc] = track
    result = [kept[entry] if isinstance(entry, str) else entry for entry in ordered]
    return result, duplicates


class CatalogIngestService:
    """Pull albums and tracks, keep studio recordings and link them to the artist."""

    def __init__(
        self,
        *,
        provider: CatalogProvider,
        guard: ProviderGuard,
        dao: ConcertDao,
        config: ImportConfig | None = None,
    ) -> None:
        self._provider = provider
        self._guard = guard
        self._dao = dao
        self._config = config or ImportConfig()

    async def _call(self, operation: str, func: Any) -> Any:
        return await self._guard.call(self._provider.name, operation, func)

    async def resolve_artist_id(self, name: str) -> str | None:
        """Best catalog match for ``name``, or ``None`` when the search finds nothing."""

        try:
            artist = await self._call("search_artist", partial(self._provider.search_artist, name))
        except ProviderError as exc:
            logger.warning("Catalog artist search failed for %r: %s", name, exc)
            return None
        return artist.id if artist is not None else None

    async def ingest(self, request: CatalogIngestRequest) -> CatalogIngestResult:
        started = time.perf_counter()
        albums = await self._list_albums(request.provider_artist_id)
        studio_albums = [album for album in albums if is_studio_album(album)]

        album_outcomes = await gather_bounded(
            studio_albums, self._list_album_tracks, limit=request.concurrency
        )
        album_tally = fold_settled(
            album_outcomes, error_type="album_tracks_fetch", item_id=lambda album: album.id
        )
        track_ids = list(
            dict.fromkeys(
                track.id for outcome in album_outcomes for track in outcome.value or ()
            )
        )

        detailed: list[CatalogTrack] = []
        liveness: dict[str, float] = {}
        if track_ids:
            detailed = await self._call("get_tracks", partial(self._provider.get_tracks, track_ids))
            liveness = await self._fetch_liveness(track_ids)

        studio_tracks: list[CatalogTrack] = []
        live_features = 0
        live_names = 0
        for track in detailed:
            score = liveness.get(track.id)
            if score is not None and score > LIVENESS_THRESHOLD:
                live_features += 1
            elif is_live_track_name(track.name):
                live_names += 1
            else:
                studio_tracks.append(track)
        unique_tracks, duplicates = dedupe_by_isrc(studio_tracks)

        track_outcomes = await gather_bounded(
            unique_tracks,
            partial(self._ingest_track, request.artist_id),
            limit=request.concurrency,
        )
        track_tally: IngestTally = fold_settled(
            track_outcomes, error_type="track_ingestion", item_id=lambda track: track.id
        )
        new_songs = sum(1 for outcome in track_outcomes if outcome.ok and outcome.value)

        result = CatalogIngestResult(
            albums_processed=album_tally.succeeded,
            tracks_processed=len(detailed),
            studio_tracks_ingested=track_tally.succeeded,
            live_features_filtered=live_features,
            live_name_filtered=live_names,
            duplicates_filtered=duplicates,
            new_songs=new_songs,
            errors=album_tally.merge(track_tally).errors,
        )
        log_event(
            logger,
            "ingest.catalog",
            component="services.catalog_ingest",
            status="ok" if not result.errors else "partial",
            artist_id=request.artist_id,
            albums=len(albums),
            studio_albums=len(studio_albums),
            tracks=len(detailed),
            ingested=result.studio_tracks_ingested,
            errors=len(result.errors),
            duration_ms=elapsed_ms(started),
        )
        return result

    async def _list_albums(self, provider_artist_id: str) -> list[CatalogAlbum]:
        albums: list[CatalogAlbum] = []
        offset = 0
        while True:
            if offset > 0:
                await self._guard.delay(self._config.catalog_page_delay_ms)
            page = await self._call(
                "list_artist_albums",
                partial(
                    self._provider.list_artist_albums,
                    provider_artist_id,
                    offset=offset,
                    limit=ALBUM_PAGE_SIZE,
                ),
            )
            albums.extend(page.items)
            if not page.items or not page.has_more:
                return albums
            offset += len(page.items)

    async def _list_album_tracks(self, album: CatalogAlbum) -> list[CatalogTrack]:
        tracks: list[CatalogTrack] = []
        offset = 0
        while True:
            if offset > 0:
                await self._guard.delay(self._config.catalog_page_delay_ms)
            page = await self._call(
                "list_album_tracks",
                partial(
                    self._provider.list_album_tracks,
                    album.id,
                    offset=offset,
                    limit=TRACK_PAGE_SIZE,
                ),
            )
            tracks.extend(page.items)
            if not page.items or not page.has_more:
                return tracks
            offset += len(page.items)

    async def _fetch_liveness(self, track_ids: list[str]) -> dict[str, float]:
        """Audio features are optional; name patterns still apply without them."""

        try:
            features = await self._call(
                "get_audio_features", partial(self._provider.get_audio_features, track_ids)
            )
        except ProviderError as exc:
            logger.warning("Audio features unavailable, filtering by name only: %s", exc)
            return {}
        return {feature.track_id: feature.liveness for feature in features}

    async def _ingest_track(self, artist_id: str, track: CatalogTrack) -> bool:
        song_id = await asyncio.to_thread(self._dao.find_song_by_external_id, track.id)
        created = False
        if song_id is None:
            song_id, created = await asyncio.to_thread(self._dao.insert_song, track)
        await asyncio.to_thread(self._dao.link_artist_song, artist_id, song_id)
        return created


__all__ = [
    "CatalogIngestRequest",
    "CatalogIngestResult",
    "CatalogIngestService",
    "LIVENESS_THRESHOLD",
    "dedupe_by_isrc",
    "is_live_track_name",
    "is_studio_album",
]
