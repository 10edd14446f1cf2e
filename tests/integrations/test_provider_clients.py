from __future__ import annotations

import asyncio
from datetime import date
import json

import httpx
import pytest

from concertsync.integrations.contracts import (
    ProviderAuthError,
    ProviderDependencyError,
    ProviderNotFoundError,
    ProviderRateLimitedError,
)
from concertsync.integrations.registry import ProviderClients
from concertsync.integrations.setlistfm_client import SetlistFmClient
from concertsync.integrations.spotify_client import SpotifyClient
from concertsync.integrations.ticketmaster_client import TicketmasterClient
from concertsync.utils.retry import RetryPolicy
from tests.helpers import StubCatalogProvider, StubSetlistProvider

_POLICY = RetryPolicy(attempts=2, base_ms=1, jitter_pct=0, timeout_ms=1_000)


def _attraction_payload() -> dict[str, object]:
    return {
        "id": "K8vZ917",
        "name": "The Testers",
        "url": "https://tm.example/the-testers",
        "externalLinks": {
            "spotify": [{"url": "https://open.spotify.com/artist/sp-artist-1"}],
            "musicbrainz": [{"id": "mbid-123"}],
        },
        "classifications": [
            {"genre": {"name": "Rock"}, "subGenre": {"name": "Indie Rock"}},
            {"genre": {"name": "Undefined"}},
        ],
        "images": [
            {"url": "https://img.example/small.jpg", "width": 100},
            {"url": "https://img.example/large.jpg", "width": 1024},
        ],
    }


def _events_payload() -> dict[str, object]:
    return {
        "_embedded": {
            "events": [
                {
                    "id": "ev-1",
                    "name": "The Testers Live",
                    "url": "https://tm.example/ev-1",
                    "dates": {"start": {"localDate": "2030-05-01", "localTime": "19:30:00"}},
                    "priceRanges": [{"min": 25.5, "max": 80, "currency": "USD"}],
                    "_embedded": {
                        "venues": [
                            {
                                "id": "ven-1",
                                "name": "Test Hall",
                                "city": {"name": "Chicago"},
                                "state": {"name": "Illinois"},
                                "country": {"name": "United States Of America"},
                                "location": {"latitude": "41.88", "longitude": "-87.63"},
                                "timezone": "America/Chicago",
                            }
                        ]
                    },
                },
                {"name": "missing id is skipped"},
            ]
        },
        "page": {"number": 0, "totalPages": 3},
    }


@pytest.mark.asyncio
async def test_ticketmaster_client_parses_attraction_and_events() -> None:
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/attractions/K8vZ917.json"):
            return httpx.Response(200, json=_attraction_payload())
        return httpx.Response(200, json=_events_payload())

    client = TicketmasterClient(
        "tm-key", policy=_POLICY, transport=httpx.MockTransport(_handler)
    )

    attraction = await client.get_attraction("K8vZ917")
    page = await client.list_attraction_events(
        "K8vZ917", page=0, size=50, start=date(2030, 1, 1), end=date(2030, 12, 31)
    )

    assert attraction.catalog_id == "sp-artist-1"
    assert attraction.mbid == "mbid-123"
    assert attraction.genres == ("Rock, Indie Rock",)
    assert attraction.image_url == "https://img.example/large.jpg"
    assert len(page.events) == 1
    event = page.events[0]
    assert event.local_date == date(2030, 5, 1)
    assert event.min_price == 25.5
    assert event.venue is not None and event.venue.latitude == 41.88
    assert page.has_more is True

    events_request = requests[-1]
    assert events_request.url.params["apikey"] == "tm-key"
    assert events_request.url.params["attractionId"] == "K8vZ917"
    assert events_request.url.params["startDateTime"] == "2030-01-01T00:00:00Z"
    assert events_request.url.params["endDateTime"] == "2030-12-31T23:59:59Z"


@pytest.mark.asyncio
async def test_ticketmaster_client_maps_status_codes() -> None:
    statuses = iter([404, 503, 503])

    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses), json={})

    client = TicketmasterClient(
        "tm-key", policy=_POLICY, transport=httpx.MockTransport(_handler)
    )

    with pytest.raises(ProviderNotFoundError):
        await client.get_attraction("missing")
    with pytest.raises(ProviderDependencyError) as excinfo:
        await client.get_attraction("flaky")
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_ticketmaster_client_requires_api_key() -> None:
    client = TicketmasterClient(
        None, policy=_POLICY, transport=httpx.MockTransport(lambda request: httpx.Response(200))
    )

    with pytest.raises(ProviderAuthError):
        await client.get_attraction("K8vZ917")


@pytest.mark.asyncio
async def test_rate_limited_response_is_retried_with_retry_after() -> None:
    calls: list[int] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(429, headers={"Retry-After": "0"})
        return httpx.Response(200, json=_attraction_payload())

    client = TicketmasterClient(
        "tm-key", policy=_POLICY, transport=httpx.MockTransport(_handler)
    )

    attraction = await client.get_attraction("K8vZ917")

    assert attraction.id == "K8vZ917"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_rate_limited_error_surfaces_after_retries() -> None:
    client = TicketmasterClient(
        "tm-key",
        policy=_POLICY,
        transport=httpx.MockTransport(
            lambda request: httpx.Response(429, headers={"Retry-After": "0"})
        ),
    )

    with pytest.raises(ProviderRateLimitedError) as excinfo:
        await client.get_attraction("K8vZ917")
    assert excinfo.value.retry_after_ms == 0


@pytest.mark.asyncio
async def test_retry_after_longer_than_timeout_is_not_slept() -> None:
    calls: list[int] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(429, headers={"Retry-After": "3600"})

    client = TicketmasterClient(
        "tm-key", policy=_POLICY, transport=httpx.MockTransport(_handler)
    )

    with pytest.raises(ProviderRateLimitedError) as excinfo:
        await asyncio.wait_for(client.get_attraction("K8vZ917"), 2)
    assert excinfo.value.retry_after_ms == 3_600_000
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_spotify_client_caches_token_and_parses_tracks() -> None:
    token_requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/token":
            token_requests.append(request)
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer tok"
        if request.url.path == "/v1/tracks":
            ids = request.url.params["ids"].split(",")
            return httpx.Response(
                200,
                json={
                    "tracks": [
                        {
                            "id": track_id,
                            "name": f"Song {track_id}",
                            "popularity": 70,
                            "external_ids": {"isrc": f"ISRC{track_id}"},
                            "album": {"id": "alb-1", "name": "Debut", "release_date": "2020"},
                            "artists": [{"name": "The Testers"}],
                        }
                        for track_id in ids
                    ]
                },
            )
        if request.url.path == "/v1/audio-features":
            return httpx.Response(
                200,
                json={"audio_features": [{"id": "t1", "liveness": 0.91}, None]},
            )
        return httpx.Response(404)

    client = SpotifyClient(
        "client", "secret", policy=_POLICY, transport=httpx.MockTransport(_handler)
    )

    tracks = await client.get_tracks(["t1", "t2"])
    features = await client.get_audio_features(["t1", "t2"])

    assert len(token_requests) == 1
    assert [track.isrc for track in tracks] == ["ISRCt1", "ISRCt2"]
    assert tracks[0].album_name == "Debut"
    assert tracks[0].artist_name == "The Testers"
    assert [(feature.track_id, feature.liveness) for feature in features] == [("t1", 0.91)]


@pytest.mark.asyncio
async def test_spotify_client_requires_credentials() -> None:
    client = SpotifyClient(
        None, None, policy=_POLICY, transport=httpx.MockTransport(lambda r: httpx.Response(200))
    )

    with pytest.raises(ProviderAuthError):
        await client.authenticate()


@pytest.mark.asyncio
async def test_setlistfm_client_parses_sets_and_treats_404_as_empty() -> None:
    payload = {
        "setlist": [
            {
                "id": "sl-1",
                "eventDate": "14-02-2024",
                "artist": {"name": "The Testers", "mbid": "mbid-123"},
                "venue": {"name": "Test Hall", "city": {"name": "Chicago"}},
                "tour": {"name": "Winter Tour"},
                "sets": {
                    "set": [
                        {"song": [{"name": "Opener"}, {"name": "Intro Tape", "tape": True}]},
                        {"song": [{"name": "Encore"}]},
                    ]
                },
            }
        ]
    }
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.params.get("artistName") == "Nobody":
            return httpx.Response(404, content=json.dumps({"code": 404}))
        return httpx.Response(200, json=payload)

    client = SetlistFmClient("fm-key", policy=_POLICY, transport=httpx.MockTransport(_handler))

    setlists = await client.search_setlists(
        artist_mbid="mbid-123", venue_name="Test Hall", event_date=date(2024, 2, 14)
    )
    empty = await client.search_setlists(artist_name="Nobody")

    assert empty == []
    assert len(setlists) == 1
    assert setlists[0].songs == ("Opener", "Encore")
    assert setlists[0].event_date == date(2024, 2, 14)
    assert setlists[0].tour_name == "Winter Tour"
    assert seen[0].headers["x-api-key"] == "fm-key"
    assert seen[0].url.params["date"] == "14-02-2024"


@pytest.mark.asyncio
async def test_client_keeps_one_connection_pool_until_closed() -> None:
    client = TicketmasterClient(
        "tm-key",
        policy=_POLICY,
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json=_attraction_payload())
        ),
    )

    await client.get_attraction("K8vZ917")
    pooled = client._client_for(client.base_url)
    await client.get_attraction("K8vZ917")

    assert client._client_for(client.base_url) is pooled
    clients = ProviderClients(
        show=client, catalog=StubCatalogProvider(), setlist=StubSetlistProvider()
    )
    await clients.aclose()
    assert pooled.is_closed
