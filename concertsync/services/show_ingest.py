"""Ingest an artist's shows and venues from the show provider."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from functools import partial
import time
from typing import Any

from concertsync.config import ImportConfig
from concertsync.integrations.contracts import ProviderEvent, ProviderVenue, ShowProvider
from concertsync.integrations.provider_guard import ProviderGuard
from concertsync.logging import get_logger
from concertsync.logging_events import elapsed_ms, log_event
from concertsync.services.concert_dao import ConcertDao, ShowInsert
from concertsync.services.ingest_tally import IngestError, fold_settled
from concertsync.utils.concurrency import gather_bounded
from concertsync.utils.slug import create_slug

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ShowIngestRequest:
    artist_id: str
    provider_attraction_id: str
    concurrency: int = 5


@dataclass(slots=True, frozen=True)
class ShowIngestResult:
    venues_processed: int = 0
    shows_processed: int = 0
    new_venues: int = 0
    new_shows: int = 0
    errors: tuple[IngestError, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "venuesProcessed": self.venues_processed,
            "showsProcessed": self.shows_processed,
            "newVenues": self.new_venues,
            "newShows": self.new_shows,
            "errors": [error.to_dict() for error in self.errors],
        }


def _price_cents(value: float | None) -> int | None:
    if not value:
        return None
    return int(round(value * 100))


class ShowIngestService:
    """Fetch every event page for an attraction, then store venues and shows."""

    def __init__(
        self,
        *,
        provider: ShowProvider,
        guard: ProviderGuard,
        dao: ConcertDao,
        config: ImportConfig | None = None,
        today_factory: Callable[[], date] | None = None,
    ) -> None:
        self._provider = provider
        self._guard = guard
        self._dao = dao
        self._config = config or ImportConfig()
        self._today_factory = today_factory or (lambda: datetime.now(UTC).date())

    async def ingest(self, request: ShowIngestRequest) -> ShowIngestResult:
        started = time.perf_counter()
        events = await self.fetch_events(request.provider_attraction_id)

        venues: dict[str, ProviderVenue] = {}
        for event in events:
            if event.venue is not None and event.venue.id and event.venue.id not in venues:
                venues[event.venue.id] = event.venue

        venue_outcomes = await gather_bounded(
            list(venues.values()), self._process_venue, limit=request.concurrency
        )
        venue_tally = fold_settled(
            venue_outcomes, error_type="venue_processing", item_id=lambda venue: venue.id
        )
        venue_map: dict[str, str] = {}
        new_venues = 0
        for outcome in venue_outcomes:
            if outcome.ok and outcome.value is not None:
                venue_id, created = outcome.value
                venue_map[outcome.item.id] = venue_id
                new_venues += int(created)

        show_outcomes = await gather_bounded(
            events,
            partial(self._process_show, request.artist_id, venue_map),
            limit=request.concurrency,
        )
        show_tally = fold_settled(
            show_outcomes, error_type="show_processing", item_id=lambda event: event.id
        )
        new_shows = sum(1 for outcome in show_outcomes if outcome.ok and outcome.value)

        result = ShowIngestResult(
            venues_processed=venue_tally.succeeded,
            shows_processed=show_tally.succeeded,
            new_venues=new_venues,
            new_shows=new_shows,
            errors=venue_tally.merge(show_tally).errors,
        )
        log_event(
            logger,
            "ingest.shows",
            component="services.show_ingest",
            status="ok" if not result.errors else "partial",
            artist_id=request.artist_id,
            events=len(events),
            new_shows=new_shows,
            new_venues=new_venues,
            errors=len(result.errors),
            duration_ms=elapsed_ms(started),
        )
        return result

    async def fetch_events(self, attraction_id: str) -> list[ProviderEvent]:
        """Collect all event pages, pausing between page requests."""

        start = self._today_factory()
        end = start + timedelta(days=self._config.show_horizon_days)
        events: list[ProviderEvent] = []
        for page_number in range(self._config.show_max_pages):
            if page_number > 0:
                await self._guard.delay(self._config.page_delay_ms)
            page = await self._guard.call(
                self._provider.name,
                "list_attraction_events",
                partial(
                    self._provider.list_attraction_events,
                    attraction_id,
                    page=page_number,
                    size=self._config.show_page_size,
                    start=start,
                    end=end,
                ),
            )
            events.extend(page.events)
            if not page.events or not page.has_more:
                break
        return events

    async def _process_venue(self, venue: ProviderVenue) -> tuple[str, bool]:
        existing = await asyncio.to_thread(self._dao.find_venue_by_external_id, venue.id)
        if existing is None:
            existing = await asyncio.to_thread(self._dao.find_venue_by_name, venue.name)
        if existing is not None:
            return existing, False
        return await asyncio.to_thread(self._dao.insert_venue, venue)

    async def _process_show(
        self, artist_id: str, venue_map: dict[str, str], event: ProviderEvent
    ) -> bool:
        """Store one event; returns ``False`` when it was already known."""

        if await asyncio.to_thread(self._dao.show_exists_by_external_id, event.id):
            return False
        venue_id = venue_map.get(event.venue.id) if event.venue is not None else None
        payload = ShowInsert(
            tm_event_id=event.id,
            headliner_artist_id=artist_id,
            venue_id=venue_id,
            name=event.name,
            slug=create_slug(event.name or event.id),
            date=event.local_date,
            start_time=event.local_time,
            ticket_url=event.url,
            min_price=_price_cents(event.min_price),
            max_price=_price_cents(event.max_price),
            currency=event.currency or "USD",
        )
        _, created = await asyncio.to_thread(self._dao.insert_show, payload)
        return created


__all__ = ["ShowIngestRequest", "ShowIngestResult", "ShowIngestService"]
