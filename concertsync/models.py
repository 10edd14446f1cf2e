"""Reference schema backing the storage collaborator."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from concertsync.db import Base


def _utcnow() -> datetime:
    """Return a naive UTC timestamp for ORM defaults."""

    return datetime.now(UTC).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid4())


class ImportStatus(str, Enum):
    """Lifecycle of an artist's provider import."""

    PENDING = "pending"
    INITIALIZING = "initializing"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"


class ShowStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SetlistType(str, Enum):
    PREDICTED = "predicted"
    ACTUAL = "actual"


class ArtistRecord(Base):
    __tablename__ = "artists"

    id = Column(String(36), primary_key=True, default=_uuid)
    tm_attraction_id = Column(String(64), unique=True, nullable=True)
    spotify_id = Column(String(64), nullable=True, index=True)
    mbid = Column(String(64), nullable=True)
    name = Column(String(512), nullable=False)
    slug = Column(String(512), nullable=False, index=True)
    image_url = Column(String(2048), nullable=True)
    genres = Column(JSON, nullable=True)
    popularity = Column(Integer, nullable=False, default=0)
    followers = Column(Integer, nullable=False, default=0)
    import_status = Column(
        String(32), nullable=False, default=ImportStatus.PENDING.value, index=True
    )
    import_error = Column(String(1024), nullable=True)
    trending_score = Column(Float, nullable=False, default=0.0)
    trending_updated_at = Column(DateTime, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    shows_synced_at = Column(DateTime, nullable=True)
    songs_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class VenueRecord(Base):
    __tablename__ = "venues"

    id = Column(String(36), primary_key=True, default=_uuid)
    tm_venue_id = Column(String(64), unique=True, nullable=True)
    name = Column(String(512), nullable=False, unique=True)
    slug = Column(String(512), nullable=False)
    city = Column(String(255), nullable=False, default="Unknown")
    state = Column(String(255), nullable=True)
    country = Column(String(255), nullable=False, default="US")
    address = Column(String(512), nullable=True)
    postal_code = Column(String(32), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    timezone = Column(String(64), nullable=False, default="America/New_York")
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ShowRecord(Base):
    __tablename__ = "shows"
    __table_args__ = (Index("ix_shows_artist_date", "headliner_artist_id", "date"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    tm_event_id = Column(String(64), unique=True, nullable=True)
    headliner_artist_id = Column(String(36), ForeignKey("artists.id"), nullable=False)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=True)
    name = Column(String(512), nullable=True)
    slug = Column(String(512), nullable=True)
    date = Column(Date, nullable=True, index=True)
    start_time = Column(String(16), nullable=True)
    status = Column(String(32), nullable=False, default=ShowStatus.UPCOMING.value)
    ticket_url = Column(String(2048), nullable=True)
    min_price = Column(Integer, nullable=True)
    max_price = Column(Integer, nullable=True)
    currency = Column(String(8), nullable=False, default="USD")
    setlist_ready = Column(Boolean, nullable=False, default=False)
    trending_score = Column(Float, nullable=False, default=0.0)
    trending_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class SongRecord(Base):
    __tablename__ = "songs"

    id = Column(String(36), primary_key=True, default=_uuid)
    spotify_id = Column(String(64), unique=True, nullable=True)
    isrc = Column(String(32), nullable=True, index=True)
    name = Column(String(512), nullable=False)
    artist_name = Column(String(512), nullable=True)
    album_id = Column(String(64), nullable=True)
    album_name = Column(String(512), nullable=True)
    album_art_url = Column(String(2048), nullable=True)
    release_date = Column(String(32), nullable=True)
    track_number = Column(Integer, nullable=True)
    disc_number = Column(Integer, nullable=False, default=1)
    duration_ms = Column(Integer, nullable=True)
    popularity = Column(Integer, nullable=False, default=0)
    preview_url = Column(String(2048), nullable=True)
    spotify_uri = Column(String(255), nullable=True)
    is_explicit = Column(Boolean, nullable=False, default=False)
    is_live = Column(Boolean, nullable=False, default=False)
    trending_score = Column(Float, nullable=False, default=0.0)
    trending_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class ArtistSongRecord(Base):
    __tablename__ = "artist_songs"

    artist_id = Column(String(36), ForeignKey("artists.id"), primary_key=True)
    song_id = Column(String(36), ForeignKey("songs.id"), primary_key=True)


class SetlistRecord(Base):
    __tablename__ = "setlists"

    id = Column(String(36), primary_key=True, default=_uuid)
    show_id = Column(String(36), ForeignKey("shows.id"), nullable=False, index=True)
    artist_id = Column(String(36), ForeignKey("artists.id"), nullable=False)
    type = Column(String(16), nullable=False, default=SetlistType.PREDICTED.value)
    name = Column(String(255), nullable=False)
    external_id = Column(String(64), unique=True, nullable=True)
    imported_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class SetlistSongRecord(Base):
    __tablename__ = "setlist_songs"
    __table_args__ = (UniqueConstraint("setlist_id", "position", name="uq_setlist_position"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    setlist_id = Column(String(36), ForeignKey("setlists.id"), nullable=False, index=True)
    song_id = Column(String(36), ForeignKey("songs.id"), nullable=True, index=True)
    title = Column(String(512), nullable=False)
    position = Column(Integer, nullable=False)


class VoteRecord(Base):
    __tablename__ = "votes"
    __table_args__ = (Index("ix_votes_song_created", "setlist_song_id", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    setlist_song_id = Column(String(36), ForeignKey("setlist_songs.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


class UserFollowRecord(Base):
    __tablename__ = "user_follows"

    user_id = Column(String(64), primary_key=True)
    artist_id = Column(String(36), ForeignKey("artists.id"), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)


__all__ = [
    "ArtistRecord",
    "ArtistSongRecord",
    "ImportStatus",
    "SetlistRecord",
    "SetlistSongRecord",
    "SetlistType",
    "ShowRecord",
    "ShowStatus",
    "SongRecord",
    "UserFollowRecord",
    "VenueRecord",
    "VoteRecord",
]
