from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from concertsync.config import TrendingConfig
from concertsync.integrations.contracts import ProviderAttraction
from concertsync.services.concert_dao import ConcertDao, ShowInsert
from concertsync.services.trending import (
    ArtistTrendingInputs,
    ShowTrendingInputs,
    SongTrendingInputs,
    TrendingCalculator,
    TrendingOptions,
    artist_score,
    proximity_multiplier,
    show_score,
    song_score,
)
from concertsync.utils.metrics import get_registry
from tests.helpers import make_track

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)


def test_artist_score_matches_weighted_formula() -> None:
    inputs = ArtistTrendingInputs(
        total_votes=100, recent_votes=5, week_votes=10, upcoming_shows=2, followers=1000
    )

    assert artist_score(inputs) == 109.59
    assert artist_score(ArtistTrendingInputs()) == 0.0


@pytest.mark.parametrize(
    ("days", "multiplier"),
    [(-2, 3.0), (0, 3.0), (1, 3.0), (2, 2.0), (7, 2.0), (8, 1.5), (30, 1.5), (31, 1.0)],
)
def test_proximity_multiplier(days: int, multiplier: float) -> None:
    assert proximity_multiplier(days) == multiplier


def test_show_and_song_scores() -> None:
    assert show_score(ShowTrendingInputs(vote_count=10, recent_votes=2, days_until_show=5)) == 60.0
    assert show_score(ShowTrendingInputs(vote_count=10, recent_votes=2, days_until_show=90)) == 30.0
    assert (
        song_score(SongTrendingInputs(popularity=73, vote_count=4, recent_votes=1, week_votes=2))
        == 20.3
    )


def test_scores_are_deterministic() -> None:
    inputs = ArtistTrendingInputs(total_votes=7, recent_votes=1, week_votes=3, followers=12)

    assert {artist_score(inputs) for _ in range(5)} == {artist_score(inputs)}


def _seed(dao: ConcertDao, artists: int) -> list[str]:
    ids: list[str] = []
    for index in range(artists):
        artist = dao.upsert_artist_from_attraction(
            ProviderAttraction(id=f"att-{index}", name=f"Artist {index}")
        )
        ids.append(artist.id)
    return ids


@pytest.mark.asyncio
async def test_calculate_updates_every_entity() -> None:
    dao = ConcertDao(now_factory=lambda: NOW)
    (artist_id,) = _seed(dao, 1)
    dao.insert_show(
        ShowInsert(
            tm_event_id="ev-1",
            headliner_artist_id=artist_id,
            venue_id=None,
            name="Show",
            slug="show",
            date=date(2024, 6, 2),
        )
    )
    song_id, _ = dao.insert_song(make_track("t1", "Opener", popularity=70))
    calculator = TrendingCalculator(dao=dao, clock=lambda: NOW)

    result = await calculator.calculate_trending_scores()

    assert (result.artists_updated, result.shows_updated, result.songs_updated) == (1, 1, 1)
    assert result.timestamp == NOW
    assert result.to_dict()["timestamp"] == "2024-06-01T12:00:00+00:00"
    artist = dao.get_artist(artist_id)
    assert artist is not None
    assert artist.trending_score == 5.0
    assert dao.song_engagement(
        recent_since=NOW - timedelta(hours=24), week_since=NOW - timedelta(days=7)
    )[0].song_id == song_id


@pytest.mark.asyncio
async def test_entity_filter_limits_recalculation() -> None:
    dao = ConcertDao(now_factory=lambda: NOW)
    ids = _seed(dao, 3)
    calculator = TrendingCalculator(dao=dao, clock=lambda: NOW)

    result = await calculator.calculate_trending_scores(TrendingOptions(entity_ids=(ids[0],)))

    assert result.artists_updated == 1
    assert result.shows_updated == 0
    assert result.songs_updated == 0


class _OneFailingWriteDao(ConcertDao):
    def __init__(self, failing_id: str) -> None:
        super().__init__(now_factory=lambda: NOW)
        self.failing_id = failing_id

    def write_artist_score(self, artist_id: str, score: float, updated_at: datetime) -> bool:
        if artist_id == self.failing_id:
            raise RuntimeError("write failed")
        return super().write_artist_score(artist_id, score, updated_at)


@pytest.mark.asyncio
async def test_single_write_failure_does_not_abort_the_batch() -> None:
    seed_dao = ConcertDao(now_factory=lambda: NOW)
    ids = _seed(seed_dao, 50)
    dao = _OneFailingWriteDao(ids[17])
    calculator = TrendingCalculator(
        dao=dao, config=TrendingConfig(write_concurrency=10), clock=lambda: NOW
    )

    result = await calculator.calculate_trending_scores()

    assert result.artists_updated == 49
    failures = get_registry().get_sample_value(
        "concertsync_trending_write_failures_total", {"entity": "artist"}
    )
    assert failures == 1.0
