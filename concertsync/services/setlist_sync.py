"""Predicted setlists for upcoming shows and actual setlists for past ones."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
import random
from typing import Any

from concertsync.integrations.contracts import ProviderSetlist, SetlistProvider
from concertsync.integrations.provider_guard import ProviderGuard
from concertsync.logging import get_logger
from concertsync.logging_events import log_event
from concertsync.models import SetlistType
from concertsync.services.concert_dao import ArtistRow, ConcertDao, ShowRow, SongRow
from concertsync.services.ingest_tally import IngestError, IngestTally

logger = get_logger(__name__)

PREDICTED_SETLIST_NAME = "Predicted Setlist"
SONGS_PER_SETLIST = 5
TOP_SONG_POOL = 25
PAST_SHOW_LIMIT = 10
SETLIST_REQUEST_DELAY_MS = 500


@dataclass(slots=True, frozen=True)
class SetlistSyncResult:
    predicted_created: int = 0
    actual_imported: int = 0
    errors: tuple[IngestError, ...] = field(default_factory=tuple)

    @property
    def setlists_created(self) -> int:
        return self.predicted_created + self.actual_imported

    def to_dict(self) -> dict[str, Any]:
        return {
            "predictedCreated": self.predicted_created,
            "actualImported": self.actual_imported,
            "errors": [error.to_dict() for error in self.errors],
        }


def pick_predicted_songs(
    catalog: list[SongRow],
    *,
    rng: random.Random,
    count: int = SONGS_PER_SETLIST,
    pool_size: int = TOP_SONG_POOL,
) -> list[SongRow]:
    """Shuffle the most popular songs and take ``count`` of them."""

    pool = sorted(catalog, key=lambda song: song.popularity, reverse=True)[:pool_size]
    rng.shuffle(pool)
    return pool[:count]


class SetlistSyncService:
    def __init__(
        self,
        *,
        dao: ConcertDao,
        guard: ProviderGuard,
        provider: SetlistProvider | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._dao = dao
        self._guard = guard
        self._provider = provider
        self._rng = rng or random.Random()

    async def sync(self, artist: ArtistRow) -> SetlistSyncResult:
        predicted = await self.preseed_upcoming(artist.id)
        actual = IngestTally()
        if self._provider is not None:
            actual = await self.import_past_setlists(artist, self._provider)
        result = SetlistSyncResult(
            predicted_created=predicted,
            actual_imported=actual.succeeded,
            errors=actual.errors,
        )
        log_event(
            logger,
            "ingest.setlists",
            component="services.setlist_sync",
            status="ok" if not result.errors else "partial",
            artist_id=artist.id,
            predicted=result.predicted_created,
            actual=result.actual_imported,
            errors=len(result.errors),
        )
        return result

    async def preseed_upcoming(self, artist_id: str) -> int:
        shows = await asyncio.to_thread(self._dao.list_upcoming_shows_without_setlist, artist_id)
        if not shows:
            return 0
        catalog = await asyncio.to_thread(
            self._dao.list_top_studio_songs, artist_id, limit=TOP_SONG_POOL
        )
        if not catalog:
            return 0
        created = 0
        for show in shows:
            songs = pick_predicted_songs(catalog, rng=self._rng)
            setlist_id = await asyncio.to_thread(
                partial(
                    self._dao.create_setlist,
                    show_id=show.id,
                    artist_id=artist_id,
                    setlist_type=SetlistType.PREDICTED,
                    name=PREDICTED_SETLIST_NAME,
                    songs=[(song.id, song.name) for song in songs],
                )
            )
            if setlist_id is not None:
                created += 1
        return created

    async def import_past_setlists(
        self, artist: ArtistRow, provider: SetlistProvider
    ) -> IngestTally:
        """Import one actual setlist per past show; shows without a match are skipped."""

        shows = await asyncio.to_thread(
            self._dao.list_past_shows_without_actual_setlist, artist.id, limit=PAST_SHOW_LIMIT
        )
        tally = IngestTally()
        for index, show in enumerate(shows):
            if index > 0:
                await self._guard.delay(SETLIST_REQUEST_DELAY_MS)
            try:
                imported = await self._import_show(provider, artist, show)
            except Exception as exc:
                tally = tally.record_failure(
                    IngestError(type="setlist_import", message=str(exc), item_id=show.id)
                )
                continue
            if imported:
                tally = tally.record_success()
        return tally

    async def _import_show(
        self, provider: SetlistProvider, artist: ArtistRow, show: ShowRow
    ) -> bool:
        setlists: list[ProviderSetlist] = await self._guard.call(
            provider.name,
            "search_setlists",
            partial(
                provider.search_setlists,
                artist_mbid=artist.mbid,
                artist_name=None if artist.mbid else artist.name,
                venue_name=show.venue_name,
                event_date=show.date,
            ),
        )
        match = next((entry for entry in setlists if entry.songs), None)
        if match is None:
            return False
        song_ids = await asyncio.to_thread(self._dao.match_song_titles, artist.id, match.songs)
        setlist_id = await asyncio.to_thread(
            partial(
                self._dao.create_setlist,
                show_id=show.id,
                artist_id=artist.id,
                setlist_type=SetlistType.ACTUAL,
                name=match.tour_name or "Setlist",
                songs=[(song_ids.get(title.casefold()), title) for title in match.songs],
                external_id=match.id or None,
            )
        )
        return setlist_id is not None


__all__ = [
    "PREDICTED_SETLIST_NAME",
    "SetlistSyncResult",
    "SetlistSyncService",
    "pick_predicted_songs",
]
