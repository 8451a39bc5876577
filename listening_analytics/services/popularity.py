"""Keeps Track.popularity in step with like events"""
import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from listening_analytics.errors import ConsistencyError, ValidationError
from listening_analytics.models.db import Track, TrackLike
from listening_analytics.models.responses import PopularityDrift, ReconciliationReport
from listening_analytics.services.catalog import CatalogStore

logger = logging.getLogger(__name__)

class PopularityMaintainer:
    """
    Write-through maintenance of the popularity counter.

    on_like_added runs inside the caller's transaction and never commits, so
    the like row and the increment land or roll back together. reconcile is
    the out-of-band repair path and owns its own transaction.
    """

    def __init__(self, session: Session, catalog: CatalogStore):
        self.session = session
        self.catalog = catalog

    def on_like_added(self, track_id: int) -> None:
        """Increment popularity for track_id under a per-track row lock"""
        if self.catalog.lock_track(track_id) is None:
            raise ValidationError(f"Track {track_id} does not exist")
        self.catalog.adjust_popularity(track_id, 1)

    def on_like_removed(self, track_id: int) -> None:
        """Decrement popularity, floored at zero. For a future unlike path."""
        if self.catalog.lock_track(track_id) is None:
            raise ValidationError(f"Track {track_id} does not exist")
        self.catalog.adjust_popularity(track_id, -1)

    def like_counts(self, track_ids: Optional[Iterable[int]] = None) -> dict:
        """Map track id to its number of like events (tracks with no likes map to 0)"""
        query = (
            self.session.query(Track.track_id, func.count(TrackLike.user_id))
            .outerjoin(TrackLike, TrackLike.track_id == Track.track_id)
            .group_by(Track.track_id)
        )
        if track_ids is not None:
            query = query.filter(Track.track_id.in_(list(track_ids)))
        return {track_id: count for track_id, count in query.all()}

    def verify(self, track_id: int) -> None:
        """
        Compare the stored counter with the like count.

        Raises:
            ValidationError: If the track does not exist
            ConsistencyError: If the counter has drifted
        """
        track = self.catalog.get_track(track_id)
        if track is None:
            raise ValidationError(f"Track {track_id} does not exist")
        expected = self.like_counts([track_id]).get(track_id, 0)
        if track.popularity != expected:
            raise ConsistencyError(track_id, track.popularity, expected)

    def reconcile(self, track_ids: Optional[Iterable[int]] = None) -> ReconciliationReport:
        """
        Overwrite popularity with count(likes) for the given tracks, or for
        every track when none are given. Commits; safe to run repeatedly.

        The track rows are locked before anything is counted, so a like
        committing mid-run is either counted here or applies its increment
        after the repair.
        """
        ids = None if track_ids is None else sorted(set(track_ids))
        try:
            stored = self.catalog.lock_tracks(ids)
            if ids is not None:
                missing = set(ids) - set(stored)
                if missing:
                    raise ValidationError(f"Unknown track ids: {sorted(missing)}")

            expected_counts = self.like_counts(stored.keys())
            drifted = [
                track_id for track_id in sorted(stored)
                if stored[track_id] != expected_counts.get(track_id, 0)
            ]
            written = self.catalog.recount_popularity(drifted)

            report = ReconciliationReport(tracks_checked=len(stored))
            for track_id in drifted:
                error = ConsistencyError(track_id, stored[track_id], written[track_id])
                logger.warning(f"Repairing popularity drift: {error}")
                report.drifts.append(
                    PopularityDrift(track_id=track_id, stored=error.stored, expected=error.expected)
                )

            self.session.commit()
            logger.info(
                f"Popularity reconciliation checked {report.tracks_checked} tracks, "
                f"repaired {len(report.drifts)}"
            )
            return report
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error during popularity reconciliation: {e}")
            raise
        except ValidationError:
            self.session.rollback()
            raise
