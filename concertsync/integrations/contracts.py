"""Contracts shared by the provider clients, guard and ingest services."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class ProviderAttraction:
    """Artist (attraction) metadata returned by the show provider."""

    id: str
    name: str
    catalog_id: str | None = None
    mbid: str | None = None
    genres: tuple[str, ...] = ()
    image_url: str | None = None
    url: str | None = None


@dataclass(slots=True, frozen=True)
class ProviderVenue:
    id: str
    name: str
    city: str | None = None
    state: str | None = None
    country: str | None = None
    address: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None


@dataclass(slots=True, frozen=True)
class ProviderEvent:
    id: str
    name: str | None
    local_date: date | None = None
    local_time: str | None = None
    url: str | None = None
    venue: ProviderVenue | None = None
    min_price: float | None = None
    max_price: float | None = None
    currency: str | None = None


@dataclass(slots=True, frozen=True)
class EventPage:
    events: tuple[ProviderEvent, ...]
    page: int
    total_pages: int

    @property
    def has_more(self) -> bool:
        return self.page + 1 < self.total_pages


@dataclass(slots=True, frozen=True)
class CatalogArtist:
    id: str
    name: str
    popularity: int = 0
    followers: int = 0
    genres: tuple[str, ...] = ()
    image_url: str | None = None


@dataclass(slots=True, frozen=True)
class CatalogAlbum:
    id: str
    name: str
    album_type: str | None = None
    album_group: str | None = None
    release_date: str | None = None
    image_url: str | None = None


@dataclass(slots=True, frozen=True)
class CatalogTrack:
    id: str
    name: str
    isrc: str | None = None
    popularity: int = 0
    duration_ms: int | None = None
    album_id: str | None = None
    album_name: str | None = None
    album_image_url: str | None = None
    release_date: str | None = None
    artist_name: str | None = None
    track_number: int | None = None
    disc_number: int = 1
    explicit: bool = False
    preview_url: str | None = None
    uri: str | None = None


@dataclass(slots=True, frozen=True)
class AudioFeatures:
    track_id: str
    liveness: float


@dataclass(slots=True, frozen=True)
class CatalogPage(Generic[T]):
    items: tuple[T, ...]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        return len(self.items) == self.limit and self.offset + self.limit < self.total


@dataclass(slots=True, frozen=True)
class ProviderSetlist:
    """A performed setlist returned by the setlist provider."""

    id: str
    event_date: date | None
    artist_name: str
    artist_mbid: str | None = None
    venue_name: str | None = None
    city: str | None = None
    tour_name: str | None = None
    url: str | None = None
    songs: tuple[str, ...] = field(default_factory=tuple)


class ProviderError(RuntimeError):
    """Base exception raised when a provider request fails."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        cause: Exception | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.cause = cause
        self.retryable = retryable


class ProviderTimeoutError(ProviderError):
    """Raised when the provider did not respond within the configured timeout."""

    def __init__(self, provider: str, timeout_ms: int, *, cause: Exception | None = None) -> None:
        super().__init__(
            provider, f"{provider} timed out after {timeout_ms}ms", cause=cause, retryable=True
        )
        self.timeout_ms = timeout_ms


class ProviderValidationError(ProviderError):
    """Raised when a provider rejects the request as invalid."""


class ProviderAuthError(ProviderError):
    """Raised when credentials are missing or refused."""


class ProviderRateLimitedError(ProviderError):
    """Raised when a provider, or the local request budget, throttled the call."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        retry_after_ms: int | None = None,
        cause: Exception | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            provider,
            message,
            status_code=status_code,
            cause=cause,
            retryable=True,
        )
        self.retry_after_ms = retry_after_ms


class ProviderNotFoundError(ProviderError):
    """Raised when the provider reported that no resources matched the request."""


class ProviderDependencyError(ProviderError):
    """Raised when the provider failed while serving the request."""


class ProviderInternalError(ProviderError):
    """Raised when the provider returned an unexpected payload."""


class ShowProvider(Protocol):
    name: str

    async def get_attraction(self, attraction_id: str) -> ProviderAttraction: ...

    async def list_attraction_events(
        self,
        attraction_id: str,
        *,
        page: int,
        size: int,
        start: date | None = None,
        end: date | None = None,
    ) -> EventPage: ...

    async def search_events(
        self,
        *,
        city: str,
        start: date,
        end: date,
        page: int = 0,
        size: int = 100,
    ) -> EventPage: ...


class CatalogProvider(Protocol):
    name: str

    async def authenticate(self) -> None: ...

    async def search_artist(self, name: str) -> CatalogArtist | None: ...

    async def list_artist_albums(
        self, artist_id: str, *, offset: int = 0, limit: int = 50
    ) -> CatalogPage[CatalogAlbum]: ...

    async def list_album_tracks(
        self, album_id: str, *, offset: int = 0, limit: int = 50
    ) -> CatalogPage[CatalogTrack]: ...

    async def get_tracks(self, track_ids: Sequence[str]) -> list[CatalogTrack]: ...

    async def get_audio_features(self, track_ids: Sequence[str]) -> list[AudioFeatures]: ...


class SetlistProvider(Protocol):
    name: str

    async def search_setlists(
        self,
        *,
        artist_mbid: str | None = None,
        artist_name: str | None = None,
        venue_name: str | None = None,
        event_date: date | None = None,
        page: int = 1,
    ) -> list[ProviderSetlist]: ...


__all__ = [
    "AudioFeatures",
    "CatalogAlbum",
    "CatalogArtist",
    "CatalogPage",
    "CatalogProvider",
    "CatalogTrack",
    "EventPage",
    "ProviderAttraction",
    "ProviderAuthError",
    "ProviderDependencyError",
    "ProviderError",
    "ProviderEvent",
    "ProviderInternalError",
    "ProviderNotFoundError",
    "ProviderRateLimitedError",
    "ProviderSetlist",
    "ProviderTimeoutError",
    "ProviderValidationError",
    "ProviderVenue",
    "SetlistProvider",
    "ShowProvider",
]
