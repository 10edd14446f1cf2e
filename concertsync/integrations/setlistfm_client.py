"""setlist.fm client implementing the setlist provider contract."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping

import httpx

from concertsync.config import PROVIDER_SETLISTFM
from concertsync.integrations.contracts import (
    ProviderAuthError,
    ProviderNotFoundError,
    ProviderSetlist,
)
from concertsync.integrations.http_client import (
    ProviderHttpClient,
    _as_list,
    _as_mapping,
    _as_str,
)
from concertsync.utils.retry import RetryPolicy

SETLISTFM_BASE_URL = "https://api.setlist.fm/rest/1.0"
_EVENT_DATE_FORMAT = "%d-%m-%Y"


def _parse_event_date(value: Any) -> date | None:
    text = _as_str(value)
    if text is None:
        return None
    try:
        return datetime.strptime(text, _EVENT_DATE_FORMAT).date()
    except ValueError:
        return None


def parse_setlist(payload: Mapping[str, Any]) -> ProviderSetlist:
    artist = _as_mapping(payload.get("artist"))
    venue = _as_mapping(payload.get("venue"))
    songs: list[str] = []
    for set_entry in _as_list(_as_mapping(payload.get("sets")).get("set")):
        for song in _as_list(_as_mapping(set_entry).get("song")):
            title = _as_str(_as_mapping(song).get("name"))
            if title and not _as_mapping(song).get("tape"):
                songs.append(title)
    return ProviderSetlist(
        id=str(payload.get("id") or ""),
        event_date=_parse_event_date(payload.get("eventDate")),
        artist_name=str(artist.get("name") or ""),
        artist_mbid=_as_str(artist.get("mbid")),
        venue_name=_as_str(venue.get("name")),
        city=_as_str(_as_mapping(venue.get("city")).get("name")),
        tour_name=_as_str(_as_mapping(payload.get("tour")).get("name")),
        url=_as_str(payload.get("url")),
        songs=tuple(songs),
    )


class SetlistFmClient(ProviderHttpClient):
    provider = PROVIDER_SETLISTFM
    name = PROVIDER_SETLISTFM

    def __init__(
        self,
        api_key: str | None,
        *,
        policy: RetryPolicy,
        base_url: str = SETLISTFM_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, policy=policy, transport=transport)
        self._api_key = api_key

    def _default_headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderAuthError(self.provider, "SETLISTFM_API_KEY is not configured")
        return {"Accept": "application/json", "x-api-key": self._api_key}

    async def search_setlists(
        self,
        *,
        artist_mbid: str | None = None,
        artist_name: str | None = None,
        venue_name: str | None = None,
        event_date: date | None = None,
        page: int = 1,
    ) -> list[ProviderSetlist]:
        params: dict[str, Any] = {"p": max(1, page)}
        if artist_mbid:
            params["artistMbid"] = artist_mbid
        elif artist_name:
            params["artistName"] = artist_name
        if venue_name:
            params["venueName"] = venue_name
        if event_date is not None:
            params["date"] = event_date.strftime(_EVENT_DATE_FORMAT)
        try:
            payload = await self._get_json("/search/setlists", params=params)
        except ProviderNotFoundError:
            # setlist.fm answers 404 for an empty search result
            return []
        return [
            parse_setlist(_as_mapping(item))
            for item in _as_list(_as_mapping(payload).get("setlist"))
            if _as_mapping(item).get("id")
        ]


__all__ = ["SETLISTFM_BASE_URL", "SetlistFmClient", "parse_setlist"]
