"""Daily per-track statistics recomputed from the event log"""
import datetime
import logging
from typing import List, Optional, Union

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from listening_analytics.config import settings
from listening_analytics.errors import InvalidArgument, ValidationError
from listening_analytics.models.db import ListeningHistory, Track, TrackStatsDaily, User
from listening_analytics.models.events import DailyTrackStat, TimeRange
from listening_analytics.models.responses import RefreshResult, TopTrack

logger = logging.getLogger(__name__)

# Rows per multi-VALUES upsert statement
UPSERT_CHUNK_SIZE = 500

DayLike = Union[datetime.date, datetime.datetime]

def to_day(value: DayLike) -> datetime.date:
    """Truncate a datetime to its calendar date; dates pass through"""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    raise ValidationError(f"Expected a date, got {value!r}")

class StatsAggregator:
    """
    Recomputes track_stats_daily one day at a time.

    A refresh replaces the (track_id, day) row of every track played that
    day. Rows of tracks with no plays that day are left alone unless
    pruning is switched on, so a row can outlive the events it was built
    from until the next pruning refresh of its day.
    """

    def __init__(self, session: Session, prune_stale: Optional[bool] = None):
        self.session = session
        self.prune_stale = settings.STATS_PRUNE_STALE if prune_stale is None else prune_stale

    def compute(self, day: DayLike) -> List[DailyTrackStat]:
        """Aggregate the day's plays without writing anything"""
        day = to_day(day)
        day_range = TimeRange.for_day(day)
        rows = (
            self.session.query(
                ListeningHistory.track_id,
                func.count(ListeningHistory.listen_id).label('plays'),
                func.count(func.distinct(ListeningHistory.user_id)).label('unique_listeners')
            )
            .filter(
                ListeningHistory.played_at >= day_range.start,
                ListeningHistory.played_at < day_range.end
            )
            .group_by(ListeningHistory.track_id)
            .order_by(ListeningHistory.track_id)
            .all()
        )
        return [
            DailyTrackStat(
                track_id=row.track_id,
                play_date=day,
                plays=row.plays,
                unique_listeners=row.unique_listeners
            )
            for row in rows
        ]

    def _upsert(self, stats: List[DailyTrackStat]) -> None:
        dialect = self.session.get_bind().dialect.name
        values = [
            {
                'track_id': stat.track_id,
                'play_date': stat.play_date,
                'plays': stat.plays,
                'unique_listeners': stat.unique_listeners
            }
            for stat in stats
        ]
        if dialect in ('postgresql', 'sqlite'):
            insert = postgresql.insert if dialect == 'postgresql' else sqlite.insert
            for start in range(0, len(values), UPSERT_CHUNK_SIZE):
                stmt = insert(TrackStatsDaily).values(values[start:start + UPSERT_CHUNK_SIZE])
                stmt = stmt.on_conflict_do_update(
                    index_elements=[TrackStatsDaily.track_id, TrackStatsDaily.play_date],
                    set_={
                        'plays': stmt.excluded.plays,
                        'unique_listeners': stmt.excluded.unique_listeners
                    }
                )
                self.session.execute(stmt)
        else:
            for value in values:
                self.session.merge(TrackStatsDaily(**value))

    def _prune(self, day: datetime.date, keep_track_ids: List[int]) -> int:
        query = self.session.query(TrackStatsDaily).filter(TrackStatsDaily.play_date == day)
        if keep_track_ids:
            query = query.filter(TrackStatsDaily.track_id.notin_(keep_track_ids))
        return query.delete(synchronize_session=False)

    def refresh(self, day: DayLike, prune_stale: Optional[bool] = None) -> RefreshResult:
        """
        Replace the stored stats for `day` with freshly computed ones.

        Idempotent: a second call with no new events writes the same rows.
        """
        day = to_day(day)
        prune = self.prune_stale if prune_stale is None else prune_stale
        try:
            stats = self.compute(day)
            if stats:
                self._upsert(stats)
            pruned = self._prune(day, [stat.track_id for stat in stats]) if prune else 0
            self.session.commit()
            logger.info(f"Refreshed daily stats for {day}: {len(stats)} tracks updated, {pruned} stale rows pruned")
            return RefreshResult(day=day, tracks_updated=len(stats), rows_pruned=pruned)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error refreshing daily stats for {day}: {e}")
            raise

    def refresh_range(self, start_day: DayLike, end_day: DayLike,
                      prune_stale: Optional[bool] = None) -> List[RefreshResult]:
        """Refresh every day from start_day to end_day inclusive, one transaction per day"""
        start_day, end_day = to_day(start_day), to_day(end_day)
        if end_day < start_day:
            raise InvalidArgument(f"end_day {end_day} is before start_day {start_day}")
        results = []
        day = start_day
        while day <= end_day:
            results.append(self.refresh(day, prune_stale=prune_stale))
            day += datetime.timedelta(days=1)
        return results

    def daily_stats(self, track_id: int, start_day: Optional[DayLike] = None,
                    end_day: Optional[DayLike] = None) -> List[DailyTrackStat]:
        """Stored rows for a track, oldest first, optionally bounded inclusively"""
        query = self.session.query(
            TrackStatsDaily.track_id,
            TrackStatsDaily.play_date,
            TrackStatsDaily.plays,
            TrackStatsDaily.unique_listeners
        ).filter(TrackStatsDaily.track_id == track_id)
        if start_day is not None:
            query = query.filter(TrackStatsDaily.play_date >= to_day(start_day))
        if end_day is not None:
            query = query.filter(TrackStatsDaily.play_date <= to_day(end_day))
        return [
            DailyTrackStat(
                track_id=row.track_id,
                play_date=row.play_date,
                plays=row.plays,
                unique_listeners=row.unique_listeners
            )
            for row in query.order_by(TrackStatsDaily.play_date)
        ]

    def top_tracks_by_country(self, country: str, limit: int = 10) -> List[TopTrack]:
        """All-time plays per track among listeners whose profile country matches"""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidArgument(f"limit must be a positive integer, got {limit!r}")
        if not country or len(country) != 2:
            raise ValidationError(f"country must be a two-letter code, got {country!r}")
        country = country.upper()
        plays = func.count(ListeningHistory.listen_id).label('plays')
        rows = (
            self.session.query(Track.track_id, Track.title, plays)
            .join(ListeningHistory, ListeningHistory.track_id == Track.track_id)
            .join(User, User.user_id == ListeningHistory.user_id)
            .filter(User.country == country)
            .group_by(Track.track_id, Track.title)
            .order_by(plays.desc(), Track.track_id)
            .limit(limit)
            .all()
        )
        return [
            TopTrack(country=country, track_id=row.track_id, title=row.title, plays=row.plays)
            for row in rows
        ]
