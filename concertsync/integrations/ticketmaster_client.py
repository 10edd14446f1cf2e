"""Ticketmaster Discovery client implementing the show provider contract."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Mapping
from urllib.parse import urlparse

import httpx

from concertsync.config import PROVIDER_TICKETMASTER
from concertsync.integrations.contracts import (
    EventPage,
    ProviderAttraction,
    ProviderAuthError,
    ProviderEvent,
    ProviderVenue,
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

TICKETMASTER_BASE_URL = "https://app.ticketmaster.com/discovery/v2"
_MIN_IMAGE_WIDTH = 500


def _iso_instant(value: date, *, end_of_day: bool = False) -> str:
    moment = datetime.combine(value, time(23, 59, 59) if end_of_day else time(0, 0, 0))
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_date(value: Any) -> date | None:
    text = _as_str(value)
    if text is None:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _catalog_id_from_links(links: Mapping[str, Any]) -> str | None:
    for entry in _as_list(links.get("spotify")):
        url = _as_str(_as_mapping(entry).get("url"))
        if url:
            segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
            return segment or None
    return None


def _mbid_from_links(links: Mapping[str, Any]) -> str | None:
    for entry in _as_list(links.get("musicbrainz")):
        mbid = _as_str(_as_mapping(entry).get("id"))
        if mbid:
            return mbid
    return None


def _genres(classifications: list[Any]) -> tuple[str, ...]:
    genres: list[str] = []
    for entry in classifications:
        payload = _as_mapping(entry)
        names = [
            _as_str(_as_mapping(payload.get(key)).get("name")) for key in ("genre", "subGenre")
        ]
        joined = ", ".join(name for name in names if name and name != "Undefined")
        if joined:
            genres.append(joined)
    return tuple(genres)


def _best_image(images: list[Any]) -> str | None:
    candidates = [_as_mapping(image) for image in images]
    for image in candidates:
        if _as_int(image.get("width")) >= _MIN_IMAGE_WIDTH and _as_str(image.get("url")):
            return _as_str(image.get("url"))
    for image in candidates:
        url = _as_str(image.get("url"))
        if url:
            return url
    return None


def parse_attraction(payload: Mapping[str, Any]) -> ProviderAttraction:
    links = _as_mapping(payload.get("externalLinks"))
    return ProviderAttraction(
        id=str(payload.get("id") or ""),
        name=str(payload.get("name") or "").strip(),
        catalog_id=_catalog_id_from_links(links),
        mbid=_mbid_from_links(links),
        genres=_genres(_as_list(payload.get("classifications"))),
        image_url=_best_image(_as_list(payload.get("images"))),
        url=_as_str(payload.get("url")),
    )


def parse_venue(payload: Mapping[str, Any]) -> ProviderVenue:
    location = _as_mapping(payload.get("location"))
    return ProviderVenue(
        id=str(payload.get("id") or ""),
        name=str(payload.get("name") or "").strip(),
        city=_as_str(_as_mapping(payload.get("city")).get("name")),
        state=_as_str(_as_mapping(payload.get("state")).get("name")),
        country=_as_str(_as_mapping(payload.get("country")).get("name")),
        address=_as_str(_as_mapping(payload.get("address")).get("line1")),
        postal_code=_as_str(payload.get("postalCode")),
        latitude=_as_float(location.get("latitude")),
        longitude=_as_float(location.get("longitude")),
        timezone=_as_str(payload.get("timezone")),
    )


def parse_event(payload: Mapping[str, Any]) -> ProviderEvent:
    start = _as_mapping(_as_mapping(payload.get("dates")).get("start"))
    venues = _as_list(_as_mapping(payload.get("_embedded")).get("venues"))
    price_ranges = _as_list(payload.get("priceRanges"))
    price = _as_mapping(price_ranges[0]) if price_ranges else {}
    return ProviderEvent(
        id=str(payload.get("id") or ""),
        name=_as_str(payload.get("name")),
        local_date=_parse_date(start.get("localDate")),
        local_time=_as_str(start.get("localTime")),
        url=_as_str(payload.get("url")),
        venue=parse_venue(_as_mapping(venues[0])) if venues else None,
        min_price=_as_float(price.get("min")),
        max_price=_as_float(price.get("max")),
        currency=_as_str(price.get("currency")),
    )


def parse_event_page(payload: Mapping[str, Any], *, requested_page: int) -> EventPage:
    embedded = _as_mapping(payload.get("_embedded"))
    page_info = _as_mapping(payload.get("page"))
    events = tuple(
        parse_event(_as_mapping(item))
        for item in _as_list(embedded.get("events"))
        if _as_mapping(item).get("id")
    )
    return EventPage(
        events=events,
        page=_as_int(page_info.get("number"), requested_page),
        total_pages=_as_int(page_info.get("totalPages"), 0),
    )


class TicketmasterClient(ProviderHttpClient):
    """Attractions and events from the Discovery API."""

    provider = PROVIDER_TICKETMASTER
    name = PROVIDER_TICKETMASTER

    def __init__(
        self,
        api_key: str | None,
        *,
        policy: RetryPolicy,
        base_url: str = TICKETMASTER_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        country_code: str = "US",
    ) -> None:
        super().__init__(base_url, policy=policy, transport=transport)
        self._api_key = api_key
        self._country_code = country_code

    def _default_params(self) -> dict[str, Any]:
        if not self._api_key:
            raise ProviderAuthError(self.provider, "TICKETMASTER_API_KEY is not configured")
        return {"apikey": self._api_key}

    async def get_attraction(self, attraction_id: str) -> ProviderAttraction:
        payload = await self._get_json(f"/attractions/{attraction_id}.json")
        return parse_attraction(_as_mapping(payload))

    async def list_attraction_events(
        self,
        attraction_id: str,
        *,
        page: int,
        size: int,
        start: date | None = None,
        end: date | None = None,
    ) -> EventPage:
        params: dict[str, Any] = {
            "attractionId": attraction_id,
            "page": page,
            "size": size,
            "sort": "date,asc",
        }
        if start is not None:
            params["startDateTime"] = _iso_instant(start)
        if end is not None:
            params["endDateTime"] = _iso_instant(end, end_of_day=True)
        payload = await self._get_json("/events.json", params=params)
        return parse_event_page(_as_mapping(payload), requested_page=page)

    async def search_events(
        self,
        *,
        city: str,
        start: date,
        end: date,
        page: int = 0,
        size: int = 100,
    ) -> EventPage:
        params = {
            "city": city,
            "countryCode": self._country_code,
            "classificationName": "Music",
            "startDateTime": _iso_instant(start),
            "endDateTime": _iso_instant(end, end_of_day=True),
            "page": page,
            "size": min(size, 200),
            "sort": "date,asc",
        }
        payload = await self._get_json("/events.json", params=params)
        return parse_event_page(_as_mapping(payload), requested_page=page)


__all__ = [
    "TICKETMASTER_BASE_URL",
    "TicketmasterClient",
    "parse_attraction",
    "parse_event",
    "parse_event_page",
    "parse_venue",
]
