"""Spotify Web API client implementing the catalog provider contract."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any, Mapping

import httpx

from concertsync.config import PROVIDER_SPOTIFY
from concertsync.integrations.contracts import (
    AudioFeatures,
    CatalogAlbum,
    CatalogArtist,
    CatalogPage,
    CatalogTrack,
    ProviderAuthError,
)
from concertsync.integrations.http_client import (
    ProviderHttpClient,
    _as_float,
    _as_int,
    _as_list,
    _as_mapping,
    _as_str,
)
from concertsync.utils.retry import RetryPolicy
from concertsync.utils.time import epoch_ms

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
TRACKS_BATCH_SIZE = 50
AUDIO_FEATURES_BATCH_SIZE = 100
_TOKEN_EXPIRY_BUFFER_MS = 300_000


def _first_image(images: Any) -> str | None:
    for image in _as_list(images):
        url = _as_str(_as_mapping(image).get("url"))
        if url:
            return url
    return None


def parse_artist(payload: Mapping[str, Any]) -> CatalogArtist:
    return CatalogArtist(
        id=str(payload.get("id") or ""),
        name=str(payload.get("name") or ""),
        popularity=_as_int(payload.get("popularity")),
        followers=_as_int(_as_mapping(payload.get("followers")).get("total")),
        genres=tuple(str(genre) for genre in _as_list(payload.get("genres")) if genre),
        image_url=_first_image(payload.get("images")),
    )


def parse_album(payload: Mapping[str, Any]) -> CatalogAlbum:
    return CatalogAlbum(
        id=str(payload.get("id") or ""),
        name=str(payload.get("name") or ""),
        album_type=_as_str(payload.get("album_type")),
        album_group=_as_str(payload.get("album_group")),
        release_date=_as_str(payload.get("release_date")),
        image_url=_first_image(payload.get("images")),
    )


def parse_track(payload: Mapping[str, Any], *, album: CatalogAlbum | None = None) -> CatalogTrack:
    album_payload = _as_mapping(payload.get("album"))
    artists = _as_list(payload.get("artists"))
    return CatalogTrack(
        id=str(payload.get("id") or ""),
        name=str(payload.get("name") or ""),
        isrc=_as_str(_as_mapping(payload.get("external_ids")).get("isrc")),
        popularity=_as_int(payload.get("popularity")),
        duration_ms=_as_int(payload.get("duration_ms")) or None,
        album_id=_as_str(album_payload.get("id")) or (album.id if album else None),
        album_name=_as_str(album_payload.get("name")) or (album.name if album else None),
        album_image_url=_first_image(album_payload.get("images"))
        or (album.image_url if album else None),
        release_date=_as_str(album_payload.get("release_date"))
        or (album.release_date if album else None),
        artist_name=_as_str(_as_mapping(artists[0]).get("name")) if artists else None,
        track_number=_as_int(payload.get("track_number")) or None,
        disc_number=_as_int(payload.get("disc_number"), 1) or 1,
        explicit=bool(payload.get("explicit", False)),
        preview_url=_as_str(payload.get("preview_url")),
        uri=_as_str(payload.get("uri")),
    )


def _page(
    payload: Mapping[str, Any], items: tuple[Any, ...], *, offset: int, limit: int
) -> CatalogPage:
    return CatalogPage(
        items=items,
        total=_as_int(payload.get("total"), len(items)),
        offset=_as_int(payload.get("offset"), offset),
        limit=_as_int(payload.get("limit"), limit),
    )


class SpotifyClient(ProviderHttpClient):
    """Client-credentials catalog access with a cached bearer token."""

    provider = PROVIDER_SPOTIFY
    name = PROVIDER_SPOTIFY

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        *,
        policy: RetryPolicy,
        base_url: str = SPOTIFY_API_BASE_URL,
        accounts_url: str = SPOTIFY_ACCOUNTS_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        market: str = "US",
    ) -> None:
        super().__init__(base_url, policy=policy, transport=transport)
        self._client_id = client_id
        self._client_secret = client_secret
        self._accounts_url = accounts_url.rstrip("/")
        self._market = market
        self._token: str | None = None
        self._token_expires_at_ms = 0
        self._token_lock = asyncio.Lock()

    async def authenticate(self) -> None:
        """Fetch a new access token unless the cached one is still fresh."""

        async with self._token_lock:
            if self._token and epoch_ms() < self._token_expires_at_ms - _TOKEN_EXPIRY_BUFFER_MS:
                return
            if not self._client_id or not self._client_secret:
                raise ProviderAuthError(
                    self.provider, "Spotify client credentials are not configured"
                )
            response = await self._request(
                "POST",
                "/api/token",
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
                base_url=self._accounts_url,
            )
            payload = _as_mapping(self._decode_json(response))
            token = _as_str(payload.get("access_token"))
            if token is None:
                raise ProviderAuthError(self.provider, "No access token in Spotify response")
            self._token = token
            expires_in_ms = _as_int(payload.get("expires_in"), 3600) * 1000
            self._token_expires_at_ms = epoch_ms() + expires_in_ms

    async def _get_authorized(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        await self.authenticate()
        return await self._get_json(
            path, params=params, headers={"Authorization": f"Bearer {self._token}"}
        )

    async def search_artist(self, name: str) -> CatalogArtist | None:
        payload = await self._get_authorized(
            "/search", {"q": name, "type": "artist", "limit": 1}
        )
        items = _as_list(_as_mapping(_as_mapping(payload).get("artists")).get("items"))
        if not items:
            return None
        return parse_artist(_as_mapping(items[0]))

    async def list_artist_albums(
        self, artist_id: str, *, offset: int = 0, limit: int = 50
    ) -> CatalogPage[CatalogAlbum]:
        payload = _as_mapping(
            await self._get_authorized(
                f"/artists/{artist_id}/albums",
                {
                    "include_groups": "album,single",
                    "market": self._market,
                    "limit": limit,
                    "offset": offset,
                },
            )
        )
        items = tuple(
            parse_album(_as_mapping(item))
            for item in _as_list(payload.get("items"))
            if _as_mapping(item).get("id")
        )
        return _page(payload, items, offset=offset, limit=limit)

    async def list_album_tracks(
        self, album_id: str, *, offset: int = 0, limit: int = 50
    ) -> CatalogPage[CatalogTrack]:
        payload = _as_mapping(
            await self._get_authorized(
                f"/albums/{album_id}/tracks",
                {"market": self._market, "limit": limit, "offset": offset},
            )
        )
        items = tuple(
            parse_track(_as_mapping(item))
            for item in _as_list(payload.get("items"))
            if _as_mapping(item).get("id")
        )
        return _page(payload, items, offset=offset, limit=limit)

    async def get_tracks(self, track_ids: Sequence[str]) -> list[CatalogTrack]:
        tracks: list[CatalogTrack] = []
        for index in range(0, len(track_ids), TRACKS_BATCH_SIZE):
            batch = track_ids[index : index + TRACKS_BATCH_SIZE]
            payload = await self._get_authorized(
                "/tracks", {"ids": ",".join(batch), "market": self._market}
            )
            for item in _as_list(_as_mapping(payload).get("tracks")):
                if item:
                    tracks.append(parse_track(_as_mapping(item)))
        return tracks

    async def get_audio_features(self, track_ids: Sequence[str]) -> list[AudioFeatures]:
        features: list[AudioFeatures] = []
        for index in range(0, len(track_ids), AUDIO_FEATURES_BATCH_SIZE):
            batch = track_ids[index : index + AUDIO_FEATURES_BATCH_SIZE]
            payload = await self._get_authorized("/audio-features", {"ids": ",".join(batch)})
            for item in _as_list(_as_mapping(payload).get("audio_features")):
                entry = _as_mapping(item)
                liveness = _as_float(entry.get("liveness"))
                if entry.get("id") and liveness is not None:
                    features.append(AudioFeatures(track_id=str(entry["id"]), liveness=liveness))
        return features


__all__ = [
    "AUDIO_FEATURES_BATCH_SIZE",
    "SPOTIFY_ACCOUNTS_BASE_URL",
    "SPOTIFY_API_BASE_URL",
    "SpotifyClient",
    "TRACKS_BATCH_SIZE",
    "parse_album",
    "parse_artist",
    "parse_track",
]
