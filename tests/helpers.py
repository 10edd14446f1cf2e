"""Recording provider stubs and builders shared by the engine tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date

from concertsync.config import (
    PROVIDER_SETLISTFM,
    PROVIDER_SPOTIFY,
    PROVIDER_TICKETMASTER,
    BreakerPolicy,
    RateLimitPolicy,
)
from concertsync.integrations.contracts import (
    AudioFeatures,
    CatalogAlbum,
    CatalogArtist,
    CatalogPage,
    CatalogTrack,
    EventPage,
    ProviderAttraction,
    ProviderDependencyError,
    ProviderError,
    ProviderEvent,
    ProviderNotFoundError,
    ProviderSetlist,
    ProviderVenue,
)
from concertsync.integrations.provider_guard import ProviderGuard, trips_breaker
from concertsync.utils.circuit_breaker import CircuitBreakerRegistry
from concertsync.utils.rate_limiter import RateLimiter

CRON_SECRET = "test-cron-secret"


class RecordingLimiter(RateLimiter):
    """Limiter whose pauses are recorded instead of slept."""

    def __init__(self) -> None:
        super().__init__()
        self.delays: list[int] = []

    async def delay(self, ms: int) -> None:
        self.delays.append(ms)


def build_guard(
    *,
    policies: Mapping[str, BreakerPolicy] | None = None,
    rate_limits: Mapping[str, RateLimitPolicy] | None = None,
    limiter: RateLimiter | None = None,
) -> ProviderGuard:
    return ProviderGuard(
        breakers=CircuitBreakerRegistry(policies, is_failure=trips_breaker),
        limiter=limiter or RecordingLimiter(),
        rate_limits=rate_limits,
    )


def make_venue(venue_id: str, name: str, *, city: str = "Chicago") -> ProviderVenue:
    return ProviderVenue(id=venue_id, name=name, city=city, state="IL", country="US")


def make_event(
    event_id: str,
    *,
    venue: ProviderVenue | None,
    on: date | None = None,
    name: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
) -> ProviderEvent:
    return ProviderEvent(
        id=event_id,
        name=name or f"Show {event_id}",
        local_date=on,
        local_time="20:00:00",
        url=f"https://tickets.example/{event_id}",
        venue=venue,
        min_price=min_price,
        max_price=max_price,
        currency="USD",
    )


def make_track(
    track_id: str,
    name: str,
    *,
    isrc: str | None = None,
    popularity: int = 50,
    album_id: str | None = None,
) -> CatalogTrack:
    return CatalogTrack(
        id=track_id,
        name=name,
        isrc=isrc,
        popularity=popularity,
        duration_ms=200_000,
        album_id=album_id,
        album_name=f"Album {album_id}" if album_id else None,
        artist_name="The Testers",
    )


class StubShowProvider:
    name = PROVIDER_TICKETMASTER

    def __init__(
        self,
        *,
        attractions: Sequence[ProviderAttraction] = (),
        events: Mapping[str, Sequence[Sequence[ProviderEvent]]] | None = None,
        failures: Mapping[str, ProviderError] | None = None,
    ) -> None:
        self.attractions = {attraction.id: attraction for attraction in attractions}
        self.events = {
            key: [tuple(page) for page in pages] for key, pages in (events or {}).items()
        }
        self.failures = dict(failures or {})
        self.calls: list[tuple[object, ...]] = []

    async def get_attraction(self, attraction_id: str) -> ProviderAttraction:
        self.calls.append(("get_attraction", attraction_id))
        failure = self.failures.get(attraction_id)
        if failure is not None:
            raise failure
        attraction = self.attractions.get(attraction_id)
        if attraction is None:
            raise ProviderNotFoundError(self.name, "attraction not found", status_code=404)
        return attraction

    async def list_attraction_events(
        self,
        attraction_id: str,
        *,
        page: int,
        size: int,
        start: date | None = None,
        end: date | None = None,
    ) -> EventPage:
        self.calls.append(("list_attraction_events", attraction_id, page))
        failure = self.failures.get(f"events:{attraction_id}")
        if failure is not None:
            raise failure
        pages = self.events.get(attraction_id, [])
        if page >= len(pages):
            return EventPage(events=(), page=page, total_pages=len(pages))
        return EventPage(events=pages[page], page=page, total_pages=len(pages))

    async def search_events(
        self,
        *,
        city: str,
        start: date,
        end: date,
        page: int = 0,
        size: int = 100,
    ) -> EventPage:
        self.calls.append(("search_events", city, page))
        return EventPage(events=(), page=page, total_pages=0)


class StubCatalogProvider:
    name = PROVIDER_SPOTIFY

    def __init__(
        self,
        *,
        albums: Mapping[str, Sequence[CatalogAlbum]] | None = None,
        album_tracks: Mapping[str, Sequence[CatalogTrack]] | None = None,
        liveness: Mapping[str, float] | None = None,
        failing_albums: Sequence[str] = (),
        features_error: ProviderError | None = None,
        artists: Mapping[str, CatalogArtist] | None = None,
    ) -> None:
        self.albums = {key: list(value) for key, value in (albums or {}).items()}
        self.album_tracks = {key: list(value) for key, value in (album_tracks or {}).items()}
        self.liveness = dict(liveness or {})
        self.failing_albums = set(failing_albums)
        self.features_error = features_error
        self.artists = dict(artists or {})
        self.calls: list[tuple[object, ...]] = []

    async def authenticate(self) -> None:
        self.calls.append(("authenticate",))

    async def search_artist(self, name: str) -> CatalogArtist | None:
        self.calls.append(("search_artist", name))
        return self.artists.get(name)

    async def list_artist_albums(
        self, artist_id: str, *, offset: int = 0, limit: int = 50
    ) -> CatalogPage[CatalogAlbum]:
        self.calls.append(("list_artist_albums", artist_id, offset))
        items = self.albums.get(artist_id, [])
        return CatalogPage(
            items=tuple(items[offset : offset + limit]),
            total=len(items),
            offset=offset,
            limit=limit,
        )

    async def list_album_tracks(
        self, album_id: str, *, offset: int = 0, limit: int = 50
    ) -> CatalogPage[CatalogTrack]:
        self.calls.append(("list_album_tracks", album_id, offset))
        if album_id in self.failing_albums:
            raise ProviderDependencyError(self.name, f"album {album_id} unavailable")
        items = self.album_tracks.get(album_id, [])
        return CatalogPage(
            items=tuple(items[offset : offset + limit]),
            total=len(items),
            offset=offset,
            limit=limit,
        )

    async def get_tracks(self, track_ids: Sequence[str]) -> list[CatalogTrack]:
        self.calls.append(("get_tracks", tuple(track_ids)))
        known = {track.id: track for tracks in self.album_tracks.values() for track in tracks}
        return [known[track_id] for track_id in track_ids if track_id in known]

    async def get_audio_features(self, track_ids: Sequence[str]) -> list[AudioFeatures]:
        self.calls.append(("get_audio_features", tuple(track_ids)))
        if self.features_error is not None:
            raise self.features_error
        return [
            AudioFeatures(track_id=track_id, liveness=self.liveness[track_id])
            for track_id in track_ids
            if track_id in self.liveness
        ]


class StubSetlistProvider:
    name = PROVIDER_SETLISTFM

    def __init__(
        self,
        setlists: Sequence[ProviderSetlist] = (),
        *,
        failing_dates: Sequence[date] = (),
    ) -> None:
        self.setlists = list(setlists)
        self.failing_dates = set(failing_dates)
        self.calls: list[dict[str, object]] = []

    async def search_setlists(
        self,
        *,
        artist_mbid: str | None = None,
        artist_name: str | None = None,
        venue_name: str | None = None,
        event_date: date | None = None,
        page: int = 1,
    ) -> list[ProviderSetlist]:
        self.calls.append(
            {
                "artist_mbid": artist_mbid,
                "artist_name": artist_name,
                "venue_name": venue_name,
                "event_date": event_date,
            }
        )
        if event_date in self.failing_dates:
            raise ProviderDependencyError(self.name, "setlist search failed")
        return [entry for entry in self.setlists if entry.event_date == event_date]


__all__ = [
    "CRON_SECRET",
    "RecordingLimiter",
    "StubCatalogProvider",
    "StubSetlistProvider",
    "StubShowProvider",
    "build_guard",
    "make_event",
    "make_track",
    "make_venue",
]
