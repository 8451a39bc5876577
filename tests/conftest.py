"""
Shared fixtures: an in-memory SQLite database per test, seeded with a
small catalog, and an AnalyticsService bound to it.
"""
import datetime
import logging

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from listening_analytics.config import Settings
from listening_analytics.models.db import (
    Base, User, Artist, Album, Track, TrackArtist, Playlist, PlaylistTrack
)
from listening_analytics.models.events import ArtistRole, Device, Source
from listening_analytics.services.analytics import AnalyticsService

LOGGER = logging.getLogger(__name__)

DAY = datetime.date(2025, 8, 1)

def seed_catalog(session):
    """Users 1-6, three artists, tracks 1-6. Track 6 has no PRIMARY artist."""
    session.add_all([
        User(user_id=1, email="sravani@example.com", display_name="Sravani", country="US"),
        User(user_id=2, email="alex@example.com", display_name="Alex", country="US"),
        User(user_id=3, email="priya@example.com", display_name="Priya", country="IN"),
        User(user_id=4, email="diego@example.com", display_name="Diego", country="MX"),
        User(user_id=5, email="mia@example.com", display_name="Mia", country="US"),
        User(user_id=6, email="newbie@example.com", display_name="Newbie", country="US"),
        Artist(artist_id=1, name="The Quantum Keys"),
        Artist(artist_id=2, name="Neon Avenue"),
        Artist(artist_id=3, name="Desert Bloom"),
    ])
    session.flush()
    session.add_all([
        Album(album_id=1, artist_id=1, title="Entangled Dreams", release_date=datetime.date(2025, 1, 10)),
        Album(album_id=2, artist_id=2, title="City Lights", release_date=datetime.date(2024, 11, 5)),
        Album(album_id=3, artist_id=3, title="Cactus Flower", release_date=datetime.date(2024, 6, 20)),
    ])
    session.flush()
    session.add_all([
        Track(track_id=1, album_id=1, title="Superposition", duration_sec=212),
        Track(track_id=2, album_id=1, title="Quantum Waltz", duration_sec=189),
        Track(track_id=3, album_id=2, title="Midnight Drive", duration_sec=240),
        Track(track_id=4, album_id=2, title="Neon Skies", duration_sec=206),
        Track(track_id=5, album_id=3, title="Oasis", duration_sec=198),
        Track(track_id=6, album_id=3, title="Mirage", duration_sec=201),
    ])
    session.flush()
    session.add_all([
        TrackArtist(track_id=1, artist_id=1, role=ArtistRole.PRIMARY),
        TrackArtist(track_id=2, artist_id=1, role=ArtistRole.PRIMARY),
        TrackArtist(track_id=3, artist_id=2, role=ArtistRole.PRIMARY),
        TrackArtist(track_id=4, artist_id=2, role=ArtistRole.PRIMARY),
        TrackArtist(track_id=4, artist_id=3, role=ArtistRole.FEATURED),
        TrackArtist(track_id=5, artist_id=3, role=ArtistRole.PRIMARY),
        TrackArtist(track_id=6, artist_id=2, role=ArtistRole.FEATURED),
        Playlist(playlist_id=1, owner_user_id=1, name="Focus Mode"),
    ])
    session.flush()
    session.add_all([
        PlaylistTrack(playlist_id=1, track_id=2, position=2),
        PlaylistTrack(playlist_id=1, track_id=1, position=1),
    ])
    session.commit()

def make_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    return engine

@pytest.fixture
def analytics_settings():
    return Settings(RECOMMEND_TIMEOUT_SECONDS=0, DATABASE_URL="sqlite://")

@pytest.fixture
def make_service(analytics_settings):
    """Factory for independent seeded databases, each with its own service"""
    engines = []
    sessions = []

    def _make(config=None):
        engine = make_engine()
        session = sessionmaker(bind=engine)()
        seed_catalog(session)
        engines.append(engine)
        sessions.append(session)
        return AnalyticsService(session, config or analytics_settings)

    yield _make

    for session in sessions:
        session.close()
    for engine in engines:
        engine.dispose()

@pytest.fixture
def service(make_service):
    return make_service()

@pytest.fixture
def session(service):
    return service.session

@pytest.fixture
def play(service):
    """Record a play with sensible defaults; `minute` offsets from 09:00 on DAY"""
    def _play(user_id, track_id, day=DAY, minute=0, source=Source.PLAYLIST, device=Device.MOBILE, ms_played=200000):
        played_at = datetime.datetime.combine(day, datetime.time(9, 0)) + datetime.timedelta(minutes=minute)
        return service.record_play(user_id, track_id, played_at, source, ms_played, device)
    return _play
