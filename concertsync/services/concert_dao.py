"""Persistence helpers for provider ingestion, maintenance and trending."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import Select, case, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from concertsync.db import session_scope
from concertsync.integrations.contracts import CatalogTrack, ProviderAttraction, ProviderVenue
from concertsync.logging import get_logger
from concertsync.models import (
    ArtistRecord,
    ArtistSongRecord,
    ImportStatus,
    SetlistRecord,
    SetlistSongRecord,
    SetlistType,
    ShowRecord,
    ShowStatus,
    SongRecord,
    UserFollowRecord,
    VenueRecord,
    VoteRecord,
)
from concertsync.utils.slug import create_slug
from concertsync.utils.time import days_until

logger = get_logger(__name__)


def _normalise_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _coerce_int(value: object | None) -> int:
    if value is None:
        return 0
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return 0


def _normalise_ids(values: Iterable[str] | None) -> list[str] | None:
    if values is None:
        return None
    return [str(value) for value in values if value]


@dataclass(slots=True, frozen=True)
class ArtistRow:
    id: str
    name: str
    slug: str
    tm_attraction_id: str | None
    spotify_id: str | None
    mbid: str | None
    import_status: str
    import_error: str | None
    trending_score: float
    last_synced_at: datetime | None
    shows_synced_at: datetime | None
    songs_synced_at: datetime | None


@dataclass(slots=True, frozen=True)
class ShowRow:
    id: str
    tm_event_id: str | None
    headliner_artist_id: str
    venue_id: str | None
    venue_name: str | None
    name: str | None
    date: date | None
    status: str
    setlist_ready: bool


@dataclass(slots=True, frozen=True)
class SongRow:
    id: str
    spotify_id: str | None
    name: str
    popularity: int
    is_live: bool


@dataclass(slots=True, frozen=True)
class ShowInsert:
    tm_event_id: str
    headliner_artist_id: str
    venue_id: str | None
    name: str | None
    slug: str
    date: date | None
    start_time: str | None = None
    ticket_url: str | None = None
    min_price: int | None = None
    max_price: int | None = None
    currency: str = "USD"
    status: str = ShowStatus.UPCOMING.value


@dataclass(slots=True, frozen=True)
class ArtistEngagementRow:
    artist_id: str
    total_votes: int
    recent_votes: int
    week_votes: int
    upcoming_shows: int
    followers: int


@dataclass(slots=True, frozen=True)
class ShowEngagementRow:
    show_id: str
    vote_count: int
    recent_votes: int
    days_until_show: int


@dataclass(slots=True, frozen=True)
class SongEngagementRow:
    song_id: str
    popularity: int
    vote_count: int
    recent_votes: int
    week_votes: int


def _artist_row(record: ArtistRecord) -> ArtistRow:
    return ArtistRow(
        id=str(record.id),
        name=str(record.name),
        slug=str(record.slug),
        tm_attraction_id=record.tm_attraction_id,
        spotify_id=record.spotify_id,
        mbid=record.mbid,
        import_status=str(record.import_status),
        import_error=record.import_error,
        trending_score=float(record.trending_score or 0.0),
        last_synced_at=record.last_synced_at,
        shows_synced_at=record.shows_synced_at,
        songs_synced_at=record.songs_synced_at,
    )


def _show_row(record: ShowRecord, venue_name: str | None = None) -> ShowRow:
    return ShowRow(
        id=str(record.id),
        tm_event_id=record.tm_event_id,
        headliner_artist_id=str(record.headliner_artist_id),
        venue_id=record.venue_id,
        venue_name=venue_name,
        name=record.name,
        date=record.date,
        status=str(record.status),
        setlist_ready=bool(record.setlist_ready),
    )


def _song_row(record: SongRecord) -> SongRow:
    return SongRow(
        id=str(record.id),
        spotify_id=record.spotify_id,
        name=str(record.name),
        popularity=_coerce_int(record.popularity),
        is_live=bool(record.is_live),
    )


def _window_count(column: Any, since: datetime) -> Any:
    return func.coalesce(func.sum(case((column >= since, 1), else_=0)), 0)


class ConcertDao:
    """Persistence facade for artists, venues, shows, songs and engagement."""

    def __init__(self, *, now_factory: Callable[[], datetime] | None = None) -> None:
        self._now_factory = now_factory or (lambda: datetime.now(UTC))

    def _now(self) -> datetime:
        value = self._now_factory()
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.replace(tzinfo=None)

    def today(self) -> date:
        return self._now().date()

    # Artists -----------------------------------------------------------------

    def upsert_artist_from_attraction(self, attraction: ProviderAttraction) -> ArtistRow:
        """Create or refresh the artist keyed by the show provider's attraction id.

        The row always leaves this call in the ``initializing`` import state.
        """

        timestamp = self._now()
        slug = create_slug(attraction.name) or attraction.id.lower()

        for attempt in range(2):
            try:
                with session_scope() as session:
                    statement: Select[Any] = (
                        select(ArtistRecord)
                        .where(ArtistRecord.tm_attraction_id == attraction.id)
                        .limit(1)
                    )
                    record = session.execute(statement).scalars().first()
                    if record is None:
                        record = ArtistRecord(
                            tm_attraction_id=attraction.id,
                            name=attraction.name,
                            slug=slug,
                            created_at=timestamp,
                        )
                        session.add(record)
                    record.name = attraction.name
                    record.slug = slug
                    record.spotify_id = attraction.catalog_id or record.spotify_id
                    record.mbid = attraction.mbid or record.mbid
                    record.image_url = attraction.image_url or record.image_url
                    if attraction.genres:
                        record.genres = list(attraction.genres)
                    record.import_status = ImportStatus.INITIALIZING.value
                    record.import_error = None
                    record.updated_at = timestamp
                    session.flush()
                    return _artist_row(record)
            except IntegrityError:
                if attempt == 0:
                    continue
                raise

        raise RuntimeError("Failed to upsert artist")

    def get_artist(self, artist_id: str) -> ArtistRow | None:
        with session_scope() as session:
            record = session.get(ArtistRecord, artist_id)
            if record is None:
                return None
            return _artist_row(record)

    def get_artist_by_attraction(self, attraction_id: str) -> ArtistRow | None:
        with session_scope() as session:
            record = (
                session.execute(
                    select(ArtistRecord).where(ArtistRecord.tm_attraction_id == attraction_id)
                )
                .scalars()
                .first()
            )
            return _artist_row(record) if record is not None else None

    def set_import_status(
        self,
        artist_id: str,
        status: ImportStatus,
        *,
        error: str | None = None,
        songs_synced: bool = False,
        shows_synced: bool = False,
        synced: bool = False,
    ) -> bool:
        timestamp = self._now()
        with session_scope() as session:
            record = session.get(ArtistRecord, artist_id)
            if record is None:
                return False
            record.import_status = status.value
            record.import_error = error[:1024] if error else None
            if songs_synced:
                record.songs_synced_at = timestamp
            if shows_synced:
                record.shows_synced_at = timestamp
            if synced:
                record.last_synced_at = timestamp
            record.updated_at = timestamp
            return True

    def set_catalog_id(self, artist_id: str, catalog_id: str) -> bool:
        with session_scope() as session:
            result = session.execute(
                update(ArtistRecord)
                .where(ArtistRecord.id == artist_id)
                .values(spotify_id=catalog_id, updated_at=self._now())
            )
            return bool(result.rowcount)

    def touch_sync_timestamps(
        self, artist_id: str, *, shows: bool = False, songs: bool = False
    ) -> bool:
        values: dict[str, Any] = {}
        timestamp = self._now()
        if shows:
            values["shows_synced_at"] = timestamp
        if songs:
            values["songs_synced_at"] = timestamp
        if not values:
            return False
        with session_scope() as session:
            result = session.execute(
                update(ArtistRecord).where(ArtistRecord.id == artist_id).values(**values)
            )
            return bool(result.rowcount)

    def list_artists_due_for_sync(self, *, older_than: datetime, limit: int) -> list[ArtistRow]:
        """Artists with a show provider id whose last sync predates ``older_than``."""

        cutoff = _normalise_datetime(older_than)
        with session_scope() as session:
            statement = (
                select(ArtistRecord)
                .where(ArtistRecord.tm_attraction_id.is_not(None))
                .where(
                    ArtistRecord.import_status.not_in(
                        [ImportStatus.IMPORTING.value, ImportStatus.INITIALIZING.value]
                    )
                )
                .where(
                    or_(ArtistRecord.last_synced_at.is_(None), ArtistRecord.last_synced_at < cutoff)
                )
                .order_by(ArtistRecord.last_synced_at.is_not(None), ArtistRecord.last_synced_at)
                .limit(max(1, int(limit)))
            )
            return [_artist_row(record) for record in session.execute(statement).scalars()]

    def list_synced_artists(self, *, limit: int) -> list[ArtistRow]:
        """Completed artists, least recently show-synced first."""

        with session_scope() as session:
            statement = (
                select(ArtistRecord)
                .where(ArtistRecord.tm_attraction_id.is_not(None))
                .where(ArtistRecord.import_status == ImportStatus.COMPLETED.value)
                .order_by(ArtistRecord.shows_synced_at.is_not(None), ArtistRecord.shows_synced_at)
                .limit(max(1, int(limit)))
            )
            return [_artist_row(record) for record in session.execute(statement).scalars()]

    # Venues ------------------------------------------------------------------

    def find_venue_by_external_id(self, external_id: str) -> str | None:
        with session_scope() as session:
            return session.execute(
                select(VenueRecord.id).where(VenueRecord.tm_venue_id == external_id).limit(1)
            ).scalar_one_or_none()

    def find_venue_by_name(self, name: str) -> str | None:
        with session_scope() as session:
            return session.execute(
                select(VenueRecord.id).where(VenueRecord.name == name).limit(1)
            ).scalar_one_or_none()

    def insert_venue(self, venue: ProviderVenue) -> tuple[str, bool]:
        """Insert ``venue`` and return ``(venue_id, created)``.

        A unique-key conflict resolves to the row that won the race.
        """

        try:
            with session_scope() as session:
                record = VenueRecord(
                    tm_venue_id=venue.id or None,
                    name=venue.name,
                    slug=create_slug(venue.name),
                    city=venue.city or "Unknown",
                    state=venue.state,
                    country=venue.country or "US",
                    address=venue.address,
                    postal_code=venue.postal_code,
                    latitude=venue.latitude,
                    longitude=venue.longitude,
                    timezone=venue.timezone or "America/New_York",
                    created_at=self._now(),
                )
                session.add(record)
                session.flush()
                return str(record.id), True
        except IntegrityError:
            existing = None
            if venue.id:
                existing = self.find_venue_by_external_id(venue.id)
            if existing is None:
                existing = self.find_venue_by_name(venue.name)
            if existing is None:
                raise
            return existing, False

    # Shows -------------------------------------------------------------------

    def show_exists_by_external_id(self, external_id: str) -> bool:
        with session_scope() as session:
            found = session.execute(
                select(ShowRecord.id).where(ShowRecord.tm_event_id == external_id).limit(1)
            ).scalar_one_or_none()
            return found is not None

    def insert_show(self, payload: ShowInsert) -> tuple[str, bool]:
        timestamp = self._now()
        try:
            with session_scope() as session:
                record = ShowRecord(
                    tm_event_id=payload.tm_event_id,
                    headliner_artist_id=payload.headliner_artist_id,
                    venue_id=payload.venue_id,
                    name=payload.name,
                    slug=payload.slug,
                    date=payload.date,
                    start_time=payload.start_time,
                    status=payload.status,
                    ticket_url=payload.ticket_url,
                    min_price=payload.min_price,
                    max_price=payload.max_price,
                    currency=payload.currency or "USD",
                    created_at=timestamp,
                    updated_at=timestamp,
                )
                session.add(record)
                session.flush()
                return str(record.id), True
        except IntegrityError:
            with session_scope() as session:
                existing = session.execute(
                    select(ShowRecord.id).where(ShowRecord.tm_event_id == payload.tm_event_id)
                ).scalar_one_or_none()
            if existing is None:
                raise
            return str(existing), False

    def get_show(self, show_id: str) -> ShowRow | None:
        with session_scope() as session:
            record = session.get(ShowRecord, show_id)
            if record is None:
                return None
            venue_name = None
            if record.venue_id:
                venue = session.get(VenueRecord, record.venue_id)
                venue_name = venue.name if venue is not None else None
            return _show_row(record, venue_name)

    # Songs -------------------------------------------------------------------

    def find_song_by_external_id(self, external_id: str) -> str | None:
        with session_scope() as session:
            return session.execute(
                select(SongRecord.id).where(SongRecord.spotify_id == external_id).limit(1)
            ).scalar_one_or_none()

    def insert_song(self, track: CatalogTrack) -> tuple[str, bool]:
        try:
            with session_scope() as session:
                record = SongRecord(
                    spotify_id=track.id,
                    isrc=track.isrc,
                    name=track.name,
                    artist_name=track.artist_name,
                    album_id=track.album_id,
                    album_name=track.album_name,
                    album_art_url=track.album_image_url,
                    release_date=track.release_date,
                    track_number=track.track_number,
                    disc_number=track.disc_number or 1,
                    duration_ms=track.duration_ms,
                    popularity=_coerce_int(track.popularity),
                    preview_url=track.preview_url,
                    spotify_uri=track.uri,
                    is_explicit=track.explicit,
                    is_live=False,
                    created_at=self._now(),
                )
                session.add(record)
                session.flush()
                return str(record.id), True
        except IntegrityError:
            existing = self.find_song_by_external_id(track.id)
            if existing is None:
                raise
            return existing, False

    def link_artist_song(self, artist_id: str, song_id: str) -> bool:
        """Link a song to an artist; returns ``False`` when already linked."""

        with session_scope() as session:
            if session.get(ArtistSongRecord, (artist_id, song_id)) is not None:
                return False
            session.add(ArtistSongRecord(artist_id=artist_id, song_id=song_id))
            return True

    def list_top_studio_songs(self, artist_id: str, *, limit: int = 25) -> list[SongRow]:
        with session_scope() as session:
            statement = (
                select(SongRecord)
                .join(ArtistSongRecord, ArtistSongRecord.song_id == SongRecord.id)
                .where(ArtistSongRecord.artist_id == artist_id)
                .where(SongRecord.is_live.is_(False))
                .order_by(SongRecord.popularity.desc(), SongRecord.name)
                .limit(max(1, int(limit)))
            )
            return [_song_row(record) for record in session.execute(statement).scalars()]

    def match_song_titles(self, artist_id: str, titles: Sequence[str]) -> dict[str, str]:
        """Map case-folded titles to the artist's song ids."""

        wanted = {title.casefold() for title in titles if title}
        if not wanted:
            return {}
        with session_scope() as session:
            rows = session.execute(
                select(SongRecord.id, SongRecord.name)
                .join(ArtistSongRecord, ArtistSongRecord.song_id == SongRecord.id)
                .where(ArtistSongRecord.artist_id == artist_id)
            ).all()
        matches: dict[str, str] = {}
        for song_id, name in rows:
            key = str(name).casefold()
            if key in wanted and key not in matches:
                matches[key] = str(song_id)
        return matches

    # Setlists ----------------------------------------------------------------

    def list_upcoming_shows_without_setlist(self, artist_id: str) -> list[ShowRow]:
        today = self.today()
        with session_scope() as session:
            has_setlist = select(SetlistRecord.id).where(SetlistRecord.show_id == ShowRecord.id)
            statement = (
                select(ShowRecord)
                .where(ShowRecord.headliner_artist_id == artist_id)
                .where(ShowRecord.status == ShowStatus.UPCOMING.value)
                .where(ShowRecord.date >= today)
                .where(~has_setlist.exists())
                .order_by(ShowRecord.date)
            )
            return [_show_row(record) for record in session.execute(statement).scalars()]

    def list_past_shows_without_actual_setlist(
        self, artist_id: str, *, limit: int = 20
    ) -> list[ShowRow]:
        today = self.today()
        with session_scope() as session:
            has_actual = (
                select(SetlistRecord.id)
                .where(SetlistRecord.show_id == ShowRecord.id)
                .where(SetlistRecord.type == SetlistType.ACTUAL.value)
            )
            statement = (
                select(ShowRecord, VenueRecord.name)
                .outerjoin(VenueRecord, VenueRecord.id == ShowRecord.venue_id)
                .where(ShowRecord.headliner_artist_id == artist_id)
                .where(ShowRecord.date < today)
                .where(~has_actual.exists())
                .order_by(ShowRecord.date.desc())
                .limit(max(1, int(limit)))
            )
            return [_show_row(record, venue) for record, venue in session.execute(statement)]

    def create_setlist(
        self,
        *,
        show_id: str,
        artist_id: str,
        setlist_type: SetlistType,
        name: str,
        songs: Sequence[tuple[str | None, str]],
        external_id: str | None = None,
    ) -> str | None:
        """Store a setlist with its ordered ``(song_id, title)`` entries.

        Returns ``None`` when a setlist with ``external_id`` already exists.
        """

        timestamp = self._now()
        try:
            with session_scope() as session:
                setlist = SetlistRecord(
                    show_id=show_id,
                    artist_id=artist_id,
                    type=setlist_type.value,
                    name=name,
                    external_id=external_id,
                    imported_at=timestamp if setlist_type is SetlistType.ACTUAL else None,
                    created_at=timestamp,
                )
                session.add(setlist)
                session.flush()
                for position, (song_id, title) in enumerate(songs, start=1):
                    session.add(
                        SetlistSongRecord(
                            setlist_id=setlist.id,
                            song_id=song_id,
                            title=title,
                            position=position,
                        )
                    )
                session.execute(
                    update(ShowRecord)
                    .where(ShowRecord.id == show_id)
                    .values(setlist_ready=True, updated_at=timestamp)
                )
                return str(setlist.id)
        except IntegrityError:
            if external_id is None:
                raise
            return None

    # Trending ----------------------------------------------------------------

    def artist_engagement(
        self,
        *,
        recent_since: datetime,
        week_since: datetime,
        artist_ids: Iterable[str] | None = None,
    ) -> list[ArtistEngagementRow]:
        ids = _normalise_ids(artist_ids)
        recent = _normalise_datetime(recent_since)
        week = _normalise_datetime(week_since)
        today = self.today()
        with session_scope() as session:
            artist_stmt = select(ArtistRecord.id)
            if ids is not None:
                artist_stmt = artist_stmt.where(ArtistRecord.id.in_(ids))
            artist_list = [str(value) for value in session.execute(artist_stmt).scalars()]
            if not artist_list:
                return []

            vote_stmt = (
                select(
                    ShowRecord.headliner_artist_id,
                    func.count(VoteRecord.id),
                    _window_count(VoteRecord.created_at, recent),
                    _window_count(VoteRecord.created_at, week),
                )
                .select_from(VoteRecord)
                .join(SetlistSongRecord, SetlistSongRecord.id == VoteRecord.setlist_song_id)
                .join(SetlistRecord, SetlistRecord.id == SetlistSongRecord.setlist_id)
                .join(ShowRecord, ShowRecord.id == SetlistRecord.show_id)
                .where(ShowRecord.headliner_artist_id.in_(artist_list))
                .group_by(ShowRecord.headliner_artist_id)
            )
            votes = {
                str(artist_id): (_coerce_int(total), _coerce_int(rec), _coerce_int(wk))
                for artist_id, total, rec, wk in session.execute(vote_stmt)
            }

            upcoming_stmt = (
                select(ShowRecord.headliner_artist_id, func.count(ShowRecord.id))
                .where(ShowRecord.headliner_artist_id.in_(artist_list))
                .where(ShowRecord.status == ShowStatus.UPCOMING.value)
                .where(ShowRecord.date >= today)
                .group_by(ShowRecord.headliner_artist_id)
            )
            upcoming = {
                str(artist_id): _coerce_int(count)
                for artist_id, count in session.execute(upcoming_stmt)
            }

            follow_stmt = (
                select(UserFollowRecord.artist_id, func.count(UserFollowRecord.user_id))
                .where(UserFollowRecord.artist_id.in_(artist_list))
                .group_by(UserFollowRecord.artist_id)
            )
            follows = {
                str(artist_id): _coerce_int(count)
                for artist_id, count in session.execute(follow_stmt)
            }

        rows: list[ArtistEngagementRow] = []
        for artist_id in artist_list:
            total, rec, wk = votes.get(artist_id, (0, 0, 0))
            rows.append(
                ArtistEngagementRow(
                    artist_id=artist_id,
                    total_votes=total,
                    recent_votes=rec,
                    week_votes=wk,
                    upcoming_shows=upcoming.get(artist_id, 0),
                    followers=follows.get(artist_id, 0),
                )
            )
        return rows

    def show_engagement(
        self,
        *,
        recent_since: datetime,
        show_ids: Iterable[str] | None = None,
    ) -> list[ShowEngagementRow]:
        """Engagement for upcoming shows only."""

        ids = _normalise_ids(show_ids)
        recent = _normalise_datetime(recent_since)
        today = self.today()
        with session_scope() as session:
            show_stmt = (
                select(ShowRecord.id, ShowRecord.date)
                .where(ShowRecord.date >= today)
                .where(ShowRecord.status == ShowStatus.UPCOMING.value)
            )
            if ids is not None:
                show_stmt = show_stmt.where(ShowRecord.id.in_(ids))
            shows = [(str(show_id), show_date) for show_id, show_date in session.execute(show_stmt)]
            if not shows:
                return []

            vote_stmt = (
                select(
                    SetlistRecord.show_id,
                    func.count(VoteRecord.id),
                    _window_count(VoteRecord.created_at, recent),
                )
                .select_from(VoteRecord)
                .join(SetlistSongRecord, SetlistSongRecord.id == VoteRecord.setlist_song_id)
                .join(SetlistRecord, SetlistRecord.id == SetlistSongRecord.setlist_id)
                .where(SetlistRecord.show_id.in_([show_id for show_id, _ in shows]))
                .group_by(SetlistRecord.show_id)
            )
            votes = {
                str(show_id): (_coerce_int(total), _coerce_int(rec))
                for show_id, total, rec in session.execute(vote_stmt)
            }

        rows: list[ShowEngagementRow] = []
        for show_id, show_date in shows:
            total, rec = votes.get(show_id, (0, 0))
            rows.append(
                ShowEngagementRow(
                    show_id=show_id,
                    vote_count=total,
                    recent_votes=rec,
                    days_until_show=days_until(show_date, today=today),
                )
            )
        return rows

    def song_engagement(
        self,
        *,
        recent_since: datetime,
        week_since: datetime,
        song_ids: Iterable[str] | None = None,
    ) -> list[SongEngagementRow]:
        ids = _normalise_ids(song_ids)
        recent = _normalise_datetime(recent_since)
        week = _normalise_datetime(week_since)
        with session_scope() as session:
            song_stmt = select(SongRecord.id, SongRecord.popularity)
            if ids is not None:
                song_stmt = song_stmt.where(SongRecord.id.in_(ids))
            songs = [
                (str(song_id), _coerce_int(popularity))
                for song_id, popularity in session.execute(song_stmt)
            ]
            if not songs:
                return []

            vote_stmt = (
                select(
                    SetlistSongRecord.song_id,
                    func.count(VoteRecord.id),
                    _window_count(VoteRecord.created_at, recent),
                    _window_count(VoteRecord.created_at, week),
                )
                .select_from(VoteRecord)
                .join(SetlistSongRecord, SetlistSongRecord.id == VoteRecord.setlist_song_id)
                .where(SetlistSongRecord.song_id.in_([song_id for song_id, _ in songs]))
                .group_by(SetlistSongRecord.song_id)
            )
            votes = {
                str(song_id): (_coerce_int(total), _coerce_int(rec), _coerce_int(wk))
                for song_id, total, rec, wk in session.execute(vote_stmt)
            }

        rows: list[SongEngagementRow] = []
        for song_id, popularity in songs:
            total, rec, wk = votes.get(song_id, (0, 0, 0))
            rows.append(
                SongEngagementRow(
                    song_id=song_id,
                    popularity=popularity,
                    vote_count=total,
                    recent_votes=rec,
                    week_votes=wk,
                )
            )
        return rows

    def write_artist_score(self, artist_id: str, score: float, updated_at: datetime) -> bool:
        return self._write_score(ArtistRecord, artist_id, score, updated_at)

    def write_show_score(self, show_id: str, score: float, updated_at: datetime) -> bool:
        return self._write_score(ShowRecord, show_id, score, updated_at)

    def write_song_score(self, song_id: str, score: float, updated_at: datetime) -> bool:
        return self._write_score(SongRecord, song_id, score, updated_at)

    def _write_score(self, model: Any, entity_id: str, score: float, updated_at: datetime) -> bool:
        with session_scope() as session:
            result = session.execute(
                update(model)
                .where(model.id == entity_id)
                .values(
                    trending_score=float(score),
                    trending_updated_at=_normalise_datetime(updated_at),
                )
            )
            return bool(result.rowcount)

    # Maintenance -------------------------------------------------------------

    def list_stale_artists(self, *, cutoff: datetime, limit: int = 100) -> list[ArtistRow]:
        """Failed imports, or imports stuck in progress, not synced since ``cutoff``."""

        threshold = _normalise_datetime(cutoff)
        with session_scope() as session:
            statement = (
                select(ArtistRecord)
                .where(
                    ArtistRecord.import_status.in_(
                        [ImportStatus.FAILED.value, ImportStatus.IMPORTING.value]
                    )
                )
                .where(
                    or_(
                        ArtistRecord.last_synced_at.is_(None),
                        ArtistRecord.last_synced_at < threshold,
                    )
                )
                .order_by(ArtistRecord.updated_at)
                .limit(max(1, int(limit)))
            )
            return [_artist_row(record) for record in session.execute(statement).scalars()]

    def reset_artists_to_pending(self, artist_ids: Sequence[str]) -> int:
        if not artist_ids:
            return 0
        with session_scope() as session:
            result = session.execute(
                update(ArtistRecord)
                .where(ArtistRecord.id.in_(list(artist_ids)))
                .values(
                    import_status=ImportStatus.PENDING.value,
                    import_error=None,
                    updated_at=self._now(),
                )
            )
            return int(result.rowcount or 0)

    def count_stuck_imports(self, *, cutoff: datetime) -> int:
        threshold = _normalise_datetime(cutoff)
        with session_scope() as session:
            count = session.execute(
                select(func.count(ArtistRecord.id))
                .where(ArtistRecord.import_status == ImportStatus.IMPORTING.value)
                .where(
                    or_(
                        ArtistRecord.last_synced_at.is_(None),
                        ArtistRecord.last_synced_at < threshold,
                    )
                )
                .where(ArtistRecord.updated_at < threshold)
            ).scalar_one()
            return _coerce_int(count)

    def ping(self) -> bool:
        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Database ping failed: %s", exc)
            return False
        return True


__all__ = [
    "ArtistEngagementRow",
    "ArtistRow",
    "ConcertDao",
    "ShowEngagementRow",
    "ShowInsert",
    "ShowRow",
    "SongEngagementRow",
    "SongRow",
]
