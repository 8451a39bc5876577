"""SQLAlchemy database models for the catalog, the event log and derived stats"""
import datetime

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date, DateTime, BigInteger, Enum,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base

from listening_analytics.models.events import ArtistRole, Device, Source

Base = declarative_base()

def _utcnow() -> datetime.datetime:
    # played_at and friends are stored naive, so keep defaults naive UTC too
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)

# Catalog tables. Owned by the catalog service, read here and only popularity is written.

class User(Base):
    __tablename__ = 'users'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(120), unique=True, nullable=False)
    display_name = Column(String(80), nullable=False)
    country = Column(String(2), nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

class Artist(Base):
    __tablename__ = 'artists'

    artist_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), unique=True, nullable=False)
    bio = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

class Album(Base):
    __tablename__ = 'albums'
    __table_args__ = (
        Index('ix_albums_artist_release', 'artist_id', 'release_date'),
    )

    album_id = Column(Integer, primary_key=True, autoincrement=True)
    artist_id = Column(Integer, ForeignKey('artists.artist_id'), nullable=False)
    title = Column(String(160), nullable=False)
    release_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

class Track(Base):
    """
    Catalog track. popularity is a derived counter that only the
    popularity maintainer writes.
    """
    __tablename__ = 'tracks'
    __table_args__ = (
        CheckConstraint('duration_sec > 0', name='ck_tracks_duration_positive'),
        CheckConstraint('popularity >= 0', name='ck_tracks_popularity_non_negative'),
    )

    track_id = Column(Integer, primary_key=True, autoincrement=True)
    album_id = Column(Integer, ForeignKey('albums.album_id'), nullable=False, index=True)
    title = Column(String(160), nullable=False)
    duration_sec = Column(Integer, nullable=False)
    explicit = Column(Boolean, nullable=False, default=False)
    popularity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

class TrackArtist(Base):
    __tablename__ = 'track_artists'

    track_id = Column(Integer, ForeignKey('tracks.track_id'), primary_key=True)
    artist_id = Column(Integer, ForeignKey('artists.artist_id'), primary_key=True)
    role = Column(Enum(ArtistRole, native_enum=False, length=16), nullable=False, default=ArtistRole.PRIMARY)

class Playlist(Base):
    __tablename__ = 'playlists'

    playlist_id = Column(Integer, primary_key=True, autoincrement=True)
    owner_user_id = Column(Integer, ForeignKey('users.user_id'), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    is_public = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

class PlaylistTrack(Base):
    __tablename__ = 'playlist_tracks'

    playlist_id = Column(Integer, ForeignKey('playlists.playlist_id'), primary_key=True)
    track_id = Column(Integer, ForeignKey('tracks.track_id'), primary_key=True)
    position = Column(Integer, nullable=False)
    added_at = Column(DateTime, nullable=False, default=_utcnow)

# Event log tables. Append-only.

class TrackLike(Base):
    """
    A user liking a track. The composite primary key is the uniqueness
    check that rejects a second like of the same track by the same user.
    """
    __tablename__ = 'likes_tracks'

    user_id = Column(Integer, ForeignKey('users.user_id'), primary_key=True)
    track_id = Column(Integer, ForeignKey('tracks.track_id'), primary_key=True, index=True)
    liked_at = Column(DateTime, nullable=False, default=_utcnow)

class ListeningHistory(Base):
    """
    Immutable fact row, one per playback. played_at is stored naive, in
    whatever clock the ingestion side uses.
    """
    __tablename__ = 'listening_history'
    __table_args__ = (
        CheckConstraint('ms_played >= 0', name='ck_listening_history_ms_played'),
        Index('ix_listening_history_user_played', 'user_id', 'played_at'),
        Index('ix_listening_history_track_played', 'track_id', 'played_at'),
    )

    # BigInteger does not autoincrement on SQLite, so fall back to INTEGER there
    listen_id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.user_id'), nullable=False)
    track_id = Column(Integer, ForeignKey('tracks.track_id'), nullable=False)
    played_at = Column(DateTime, nullable=False)
    source = Column(Enum(Source, native_enum=False, length=16), nullable=False)
    ms_played = Column(Integer, nullable=False)
    device = Column(Enum(Device, native_enum=False, length=16), nullable=False)

# Derived tables.

class TrackStatsDaily(Base):
    """Per-day per-track aggregate, replaced wholesale on every refresh of its day"""
    __tablename__ = 'track_stats_daily'

    track_id = Column(Integer, ForeignKey('tracks.track_id'), primary_key=True)
    play_date = Column(Date, primary_key=True)
    plays = Column(Integer, nullable=False)
    unique_listeners = Column(Integer, nullable=False)
