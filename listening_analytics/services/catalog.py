"""Read access to the catalog store plus the popularity counter writes"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from listening_analytics.models.db import (
    User, Artist, Album, Track, TrackArtist, TrackLike, Playlist, PlaylistTrack
)
from listening_analytics.models.events import ArtistRole

logger = logging.getLogger(__name__)

class CatalogStore:
    """
    Catalog lookups by id. Entities are managed elsewhere; the only write
    this class performs is on Track.popularity.
    """

    def __init__(self, session: Session):
        self.session = session

    # Lookups

    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_track(self, track_id: int) -> Optional[Track]:
        return self.session.get(Track, track_id)

    def get_artist(self, artist_id: int) -> Optional[Artist]:
        return self.session.get(Artist, artist_id)

    def get_album(self, album_id: int) -> Optional[Album]:
        return self.session.get(Album, album_id)

    def get_playlist(self, playlist_id: int) -> Optional[Playlist]:
        return self.session.get(Playlist, playlist_id)

    def user_exists(self, user_id: int) -> bool:
        return self.session.query(User.user_id).filter_by(user_id=user_id).first() is not None

    def track_exists(self, track_id: int) -> bool:
        return self.session.query(Track.track_id).filter_by(track_id=track_id).first() is not None

    def playlist_track_ids(self, playlist_id: int) -> List[int]:
        """Track ids of a playlist in playlist order"""
        rows = (
            self.session.query(PlaylistTrack.track_id)
            .filter_by(playlist_id=playlist_id)
            .order_by(PlaylistTrack.position, PlaylistTrack.track_id)
            .all()
        )
        return [row.track_id for row in rows]

    # Presentation joins

    def track_titles(self, track_ids: Iterable[int]) -> Dict[int, Tuple[str, int]]:
        """Map track id to (title, popularity) for the ids that exist"""
        ids = list(set(track_ids))
        if not ids:
            return {}
        rows = (
            self.session.query(Track.track_id, Track.title, Track.popularity)
            .filter(Track.track_id.in_(ids))
            .all()
        )
        return {row.track_id: (row.title, row.popularity) for row in rows}

    def primary_artist_names(self, track_ids: Iterable[int]) -> Dict[int, str]:
        """
        Map track id to the name of its PRIMARY artist.

        Tracks without a PRIMARY artist are absent from the result. When a
        track lists several PRIMARY artists the lowest artist id wins.
        """
        ids = list(set(track_ids))
        if not ids:
            return {}
        rows = (
            self.session.query(TrackArtist.track_id, TrackArtist.artist_id, Artist.name)
            .join(Artist, Artist.artist_id == TrackArtist.artist_id)
            .filter(TrackArtist.track_id.in_(ids), TrackArtist.role == ArtistRole.PRIMARY)
            .order_by(TrackArtist.track_id, TrackArtist.artist_id)
            .all()
        )
        names: Dict[int, str] = {}
        for row in rows:
            names.setdefault(row.track_id, row.name)
        return names

    # Popularity counter

    def lock_track(self, track_id: int) -> Optional[Track]:
        """Load a track holding a row lock until the surrounding transaction ends"""
        return (
            self.session.query(Track)
            .filter_by(track_id=track_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def adjust_popularity(self, track_id: int, delta: int) -> int:
        """
        Add delta to popularity inside the current transaction, never going below zero.

        Returns the number of rows touched (0 when the track does not exist).
        """
        new_value = Track.popularity + delta
        if delta < 0:
            new_value = case((Track.popularity + delta < 0, 0), else_=Track.popularity + delta)
        return (
            self.session.query(Track)
            .filter(Track.track_id == track_id)
            .update({Track.popularity: new_value}, synchronize_session=False)
        )

    def lock_tracks(self, track_ids: Optional[Iterable[int]] = None) -> Dict[int, int]:
        """
        Lock track rows in track_id order (all tracks when none are given)
        and return their stored popularity.
        """
        query = self.session.query(Track.track_id, Track.popularity)
        if track_ids is not None:
            query = query.filter(Track.track_id.in_(list(track_ids)))
        rows = query.order_by(Track.track_id).with_for_update().all()
        return {track_id: popularity for track_id, popularity in rows}

    def recount_popularity(self, track_ids: Iterable[int]) -> Dict[int, int]:
        """
        Overwrite popularity with the number of like rows, counted in the
        same UPDATE statement. Returns the values written.
        """
        ids = list(track_ids)
        if not ids:
            return {}
        likes = (
            select(func.count(TrackLike.user_id))
            .where(TrackLike.track_id == Track.track_id)
            .correlate(Track)
            .scalar_subquery()
        )
        (
            self.session.query(Track)
            .filter(Track.track_id.in_(ids))
            .update({Track.popularity: likes}, synchronize_session=False)
        )
        rows = (
            self.session.query(Track.track_id, Track.popularity)
            .filter(Track.track_id.in_(ids))
            .all()
        )
        return {track_id: popularity for track_id, popularity in rows}
