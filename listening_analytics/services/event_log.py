"""Append-only storage of listening and like events"""
import datetime
import logging
from typing import Iterable, Iterator, Optional, Set, Tuple, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session, Query
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from listening_analytics.config import settings
from listening_analytics.errors import DuplicateError, ValidationError
from listening_analytics.models.db import ListeningHistory, TrackLike
from listening_analytics.models.events import (
    Device, EventFilter, LikeEvent, ListeningEvent, Source, TimeRange
)
from listening_analytics.services.catalog import CatalogStore
from listening_analytics.services.popularity import PopularityMaintainer

logger = logging.getLogger(__name__)

E = TypeVar('E', Source, Device)

# Max ids per IN (...) clause when streaming pairs for a user set
ID_CHUNK_SIZE = 500

def coerce_enum(enum_type: Type[E], value, field: str) -> E:
    """Accept an enum member or its name in any case, else raise ValidationError"""
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        try:
            return enum_type(value.strip().upper())
        except ValueError:
            pass
    allowed = ", ".join(member.value for member in enum_type)
    raise ValidationError(f"Invalid {field} {value!r}; expected one of {allowed}")

def _to_event(row: ListeningHistory) -> ListeningEvent:
    return ListeningEvent(
        listen_id=row.listen_id,
        user_id=row.user_id,
        track_id=row.track_id,
        played_at=row.played_at,
        source=row.source,
        ms_played=row.ms_played,
        device=row.device
    )

class EventQuery:
    """
    Lazy, finite, restartable sequence of listening events.

    Every iteration re-issues the same statement ordered by listen_id, so two
    passes over an unchanged log yield the same events in the same order.
    """

    def __init__(self, session: Session, event_filter: EventFilter, time_range: TimeRange, batch_size: int):
        self.session = session
        self.event_filter = event_filter
        self.time_range = time_range
        self.batch_size = batch_size

    def _query(self) -> Query:
        query = self.session.query(ListeningHistory)
        if self.event_filter.user_id is not None:
            query = query.filter(ListeningHistory.user_id == self.event_filter.user_id)
        if self.event_filter.track_id is not None:
            query = query.filter(ListeningHistory.track_id == self.event_filter.track_id)
        if self.time_range.start is not None:
            query = query.filter(ListeningHistory.played_at >= self.time_range.start)
        if self.time_range.end is not None:
            query = query.filter(ListeningHistory.played_at < self.time_range.end)
        return query

    def __iter__(self) -> Iterator[ListeningEvent]:
        rows = self._query().order_by(ListeningHistory.listen_id).yield_per(self.batch_size)
        for row in rows:
            yield _to_event(row)

    def count(self) -> int:
        return self._query().count()

class EventLog:
    """Handles all event log writes and reads"""

    def __init__(self, session: Session, catalog: CatalogStore,
                 popularity: Optional[PopularityMaintainer] = None,
                 duplicate_like_policy: Optional[str] = None,
                 batch_size: Optional[int] = None):
        self.session = session
        self.catalog = catalog
        self.popularity = popularity or PopularityMaintainer(session, catalog)
        self.duplicate_like_policy = duplicate_like_policy or settings.DUPLICATE_LIKE_POLICY
        self.batch_size = batch_size or settings.QUERY_BATCH_SIZE
        if self.duplicate_like_policy not in ("reject", "ignore"):
            raise ValueError(f"Unknown duplicate like policy {self.duplicate_like_policy!r}")

    def _check_references(self, user_id: int, track_id: int) -> None:
        if not self.catalog.user_exists(user_id):
            raise ValidationError(f"User {user_id} does not exist")
        if not self.catalog.track_exists(track_id):
            raise ValidationError(f"Track {track_id} does not exist")

    def _validate(self, event: ListeningEvent) -> ListeningEvent:
        if not isinstance(event.played_at, datetime.datetime):
            raise ValidationError(f"played_at must be a datetime, got {event.played_at!r}")
        if event.played_at.utcoffset() is not None:
            # Days are cut on the stored wall-clock value; nothing is converted
            raise ValidationError(f"played_at must be naive, got {event.played_at.isoformat()}")
        if isinstance(event.ms_played, bool) or not isinstance(event.ms_played, int):
            raise ValidationError(f"ms_played must be an integer, got {event.ms_played!r}")
        if event.ms_played < 0:
            raise ValidationError(f"ms_played must be >= 0, got {event.ms_played}")
        source = coerce_enum(Source, event.source, "source")
        device = coerce_enum(Device, event.device, "device")
        self._check_references(event.user_id, event.track_id)
        return ListeningEvent(
            user_id=event.user_id,
            track_id=event.track_id,
            played_at=event.played_at,
            source=source,
            ms_played=event.ms_played,
            device=device
        )

    def append(self, event: ListeningEvent) -> int:
        """
        Store one listening event and return its listen_id.

        Raises:
            ValidationError: On a negative ms_played, an unknown source or
                device, or a user/track missing from the catalog
        """
        event = self._validate(event)
        try:
            row = ListeningHistory(
                user_id=event.user_id,
                track_id=event.track_id,
                played_at=event.played_at,
                source=event.source,
                ms_played=event.ms_played,
                device=event.device
            )
            self.session.add(row)
            self.session.flush()
            listen_id = row.listen_id
            self.session.commit()
            logger.debug(f"Recorded play {listen_id}: user {event.user_id} track {event.track_id}")
            return listen_id
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error recording play for user {event.user_id}, track {event.track_id}: {e}")
            raise

    def record_play(self, user_id: int, track_id: int, played_at: datetime.datetime,
                    source, ms_played: int, device) -> int:
        return self.append(ListeningEvent(
            user_id=user_id,
            track_id=track_id,
            played_at=played_at,
            source=source,
            ms_played=ms_played,
            device=device
        ))

    def _duplicate_like(self, user_id: int, track_id: int) -> bool:
        if self.duplicate_like_policy == "ignore":
            logger.warning(f"Ignoring duplicate like of track {track_id} by user {user_id}")
            return False
        raise DuplicateError(user_id, track_id)

    def append_like(self, user_id: int, track_id: int,
                    liked_at: Optional[datetime.datetime] = None) -> bool:
        """
        Store a like and increment the track's popularity in one transaction.

        Returns True when the like was stored, False when it was a duplicate
        and the policy is 'ignore'.

        Raises:
            ValidationError: If the user or track does not exist
            DuplicateError: If the user already likes the track (policy 'reject')
        """
        self._check_references(user_id, track_id)
        try:
            if self.session.get(TrackLike, (user_id, track_id)) is not None:
                return self._duplicate_like(user_id, track_id)

            self.session.add(TrackLike(
                user_id=user_id,
                track_id=track_id,
                liked_at=liked_at or datetime.datetime.now(datetime.UTC).replace(tzinfo=None)
            ))
            self.session.flush()
            self.popularity.on_like_added(track_id)
            self.session.commit()
            logger.info(f"User {user_id} liked track {track_id}")
            return True
        except IntegrityError:
            # Lost a race with a concurrent like of the same pair
            self.session.rollback()
            return self._duplicate_like(user_id, track_id)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error recording like of track {track_id} by user {user_id}: {e}")
            raise
        except Exception:
            self.session.rollback()
            raise

    def query(self, event_filter: Optional[EventFilter] = None,
              time_range: Optional[TimeRange] = None) -> EventQuery:
        return EventQuery(
            self.session,
            event_filter or EventFilter(),
            time_range or TimeRange(),
            self.batch_size
        )

    def query_likes(self, event_filter: Optional[EventFilter] = None) -> Iterator[LikeEvent]:
        event_filter = event_filter or EventFilter()
        query = self.session.query(TrackLike)
        if event_filter.user_id is not None:
            query = query.filter(TrackLike.user_id == event_filter.user_id)
        if event_filter.track_id is not None:
            query = query.filter(TrackLike.track_id == event_filter.track_id)
        rows = query.order_by(TrackLike.liked_at, TrackLike.user_id, TrackLike.track_id)
        for row in rows.yield_per(self.batch_size):
            yield LikeEvent(user_id=row.user_id, track_id=row.track_id, liked_at=row.liked_at)

    def like_count(self, track_id: int) -> int:
        return (
            self.session.query(func.count(TrackLike.user_id))
            .filter(TrackLike.track_id == track_id)
            .scalar()
        ) or 0

    # Distinct user/track projections used by the recommendation engine

    def user_tracks(self, user_id: int) -> Set[int]:
        """Distinct track ids the user has at least one play of"""
        rows = (
            self.session.query(ListeningHistory.track_id)
            .filter(ListeningHistory.user_id == user_id)
            .distinct()
        )
        return {row.track_id for row in rows}

    def co_listener_pairs(self, user_id: int) -> Iterator[Tuple[int, int]]:
        """Distinct (other_user, track) pairs over the tracks user_id has played"""
        listened = select(ListeningHistory.track_id).where(ListeningHistory.user_id == user_id)
        rows = (
            self.session.query(ListeningHistory.user_id, ListeningHistory.track_id)
            .filter(ListeningHistory.track_id.in_(listened))
            .filter(ListeningHistory.user_id != user_id)
            .distinct()
            .order_by(ListeningHistory.user_id, ListeningHistory.track_id)
        )
        for row in rows.yield_per(self.batch_size):
            yield row.user_id, row.track_id

    def listener_pairs(self, user_ids: Iterable[int]) -> Iterator[Tuple[int, int]]:
        """Distinct (user, track) pairs for every play by the given users"""
        ids = sorted(set(user_ids))
        for start in range(0, len(ids), ID_CHUNK_SIZE):
            chunk = ids[start:start + ID_CHUNK_SIZE]
            rows = (
                self.session.query(ListeningHistory.user_id, ListeningHistory.track_id)
                .filter(ListeningHistory.user_id.in_(chunk))
                .distinct()
                .order_by(ListeningHistory.user_id, ListeningHistory.track_id)
            )
            for row in rows.yield_per(self.batch_size):
                yield row.user_id, row.track_id
