"""Deterministic trending scores for artists, shows and songs."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import math
import time
from typing import Any

from concertsync.config import TrendingConfig
from concertsync.logging import get_logger
from concertsync.logging_events import elapsed_ms, log_event
from concertsync.services.concert_dao import ConcertDao
from concertsync.utils.concurrency import gather_bounded
from concertsync.utils.metrics import counter
from concertsync.utils.time import now_utc, to_iso

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ArtistTrendingInputs:
    total_votes: int = 0
    recent_votes: int = 0
    week_votes: int = 0
    upcoming_shows: int = 0
    followers: int = 0


@dataclass(slots=True, frozen=True)
class ShowTrendingInputs:
    vote_count: int = 0
    recent_votes: int = 0
    days_until_show: int = 0


@dataclass(slots=True, frozen=True)
class SongTrendingInputs:
    popularity: int = 0
    vote_count: int = 0
    recent_votes: int = 0
    week_votes: int = 0


@dataclass(slots=True, frozen=True)
class TimeWindow:
    hours: int = 24
    days: int = 7


@dataclass(slots=True, frozen=True)
class TrendingOptions:
    entity_ids: tuple[str, ...] | None = None
    time_window: TimeWindow = field(default_factory=TimeWindow)


@dataclass(slots=True, frozen=True)
class TrendingRunResult:
    artists_updated: int
    shows_updated: int
    songs_updated: int
    duration_ms: int
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "artistsUpdated": self.artists_updated,
            "showsUpdated": self.shows_updated,
            "songsUpdated": self.songs_updated,
            "duration": self.duration_ms,
            "timestamp": to_iso(self.timestamp),
        }


def artist_score(inputs: ArtistTrendingInputs) -> float:
    score = (
        inputs.recent_votes * 10
        + inputs.week_votes * 3
        + math.log(inputs.total_votes + 1) * 2
        + inputs.upcoming_shows * 5
        + math.log(inputs.followers + 1) * 1.5
    )
    return round(score, 2)


def proximity_multiplier(days_until_show: int) -> float:
    if days_until_show <= 1:
        return 3.0
    if days_until_show <= 7:
        return 2.0
    if days_until_show <= 30:
        return 1.5
    return 1.0


def show_score(inputs: ShowTrendingInputs) -> float:
    base = inputs.vote_count * 2 + inputs.recent_votes * 5
    return round(base * proximity_multiplier(inputs.days_until_show), 2)


def song_score(inputs: SongTrendingInputs) -> float:
    score = (
        inputs.popularity * 0.1
        + inputs.vote_count
        + inputs.recent_votes * 5
        + inputs.week_votes * 2
    )
    return round(score, 2)


ScoreWriter = Callable[[str, float, datetime], bool]


class TrendingCalculator:
    """Recompute and persist trending scores in bounded write batches."""

    def __init__(
        self,
        *,
        dao: ConcertDao,
        config: TrendingConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._dao = dao
        self._config = config or TrendingConfig()
        self._clock = clock or now_utc

    async def calculate_trending_scores(
        self, options: TrendingOptions | None = None
    ) -> TrendingRunResult:
        options = options or TrendingOptions()
        started = time.perf_counter()
        now = self._clock()
        recent_since = now - timedelta(hours=options.time_window.hours)
        week_since = now - timedelta(days=options.time_window.days)
        entity_ids = list(options.entity_ids) if options.entity_ids is not None else None

        artists = await asyncio.to_thread(
            self._dao.artist_engagement,
            recent_since=recent_since,
            week_since=week_since,
            artist_ids=entity_ids,
        )
        artist_scores = [
            (
                row.artist_id,
                artist_score(
                    ArtistTrendingInputs(
                        total_votes=row.total_votes,
                        recent_votes=row.recent_votes,
                        week_votes=row.week_votes,
                        upcoming_shows=row.upcoming_shows,
                        followers=row.followers,
                    )
                ),
            )
            for row in artists
        ]
        artists_updated = await self._write_scores(
            "artist", artist_scores, self._dao.write_artist_score, now
        )

        shows = await asyncio.to_thread(
            self._dao.show_engagement, recent_since=recent_since, show_ids=entity_ids
        )
        show_scores = [
            (
                row.show_id,
                show_score(
                    ShowTrendingInputs(
                        vote_count=row.vote_count,
                        recent_votes=row.recent_votes,
                        days_until_show=row.days_until_show,
                    )
                ),
            )
            for row in shows
        ]
        shows_updated = await self._write_scores(
            "show", show_scores, self._dao.write_show_score, now
        )

        songs = await asyncio.to_thread(
            self._dao.song_engagement,
            recent_since=recent_since,
            week_since=week_since,
            song_ids=entity_ids,
        )
        song_scores = [
            (
                row.song_id,
                song_score(
                    SongTrendingInputs(
                        popularity=row.popularity,
                        vote_count=row.vote_count,
                        recent_votes=row.recent_votes,
                        week_votes=row.week_votes,
                    )
                ),
            )
            for row in songs
        ]
        songs_updated = await self._write_scores(
            "song", song_scores, self._dao.write_song_score, now
        )

        result = TrendingRunResult(
            artists_updated=artists_updated,
            shows_updated=shows_updated,
            songs_updated=songs_updated,
            duration_ms=elapsed_ms(started),
            timestamp=now,
        )
        log_event(
            logger,
            "trending.run",
            component="services.trending",
            status="ok",
            artists_updated=artists_updated,
            shows_updated=shows_updated,
            songs_updated=songs_updated,
            duration_ms=result.duration_ms,
        )
        return result

    async def _write_scores(
        self,
        entity: str,
        scores: Sequence[tuple[str, float]],
        writer: ScoreWriter,
        updated_at: datetime,
    ) -> int:
        async def _write(item: tuple[str, float]) -> bool:
            entity_id, score = item
            return await asyncio.to_thread(writer, entity_id, score, updated_at)

        outcomes = await gather_bounded(scores, _write, limit=self._config.write_concurrency)
        updated = 0
        for outcome in outcomes:
            if outcome.ok:
                updated += int(bool(outcome.value))
                continue
            logger.warning(
                "Failed to write %s trending score for %s: %s",
                entity,
                outcome.item[0],
                outcome.error,
            )
        failed = len(outcomes) - sum(1 for outcome in outcomes if outcome.ok)
        if failed:
            counter(
                "concertsync_trending_write_failures_total",
                "Trending score writes that raised",
                label_names=("entity",),
            ).labels(entity=entity).inc(failed)
        return updated


__all__ = [
    "ArtistTrendingInputs",
    "ShowTrendingInputs",
    "SongTrendingInputs",
    "TimeWindow",
    "TrendingCalculator",
    "TrendingOptions",
    "TrendingRunResult",
    "artist_score",
    "proximity_multiplier",
    "show_score",
    "song_score",
]
