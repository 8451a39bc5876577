"""Domain models for listening and like events"""
import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

class Source(str, enum.Enum):
    """Where a playback was started from"""
    SEARCH = "SEARCH"
    PLAYLIST = "PLAYLIST"
    ALBUM = "ALBUM"
    RADIO = "RADIO"
    RECS = "RECS"

class Device(str, enum.Enum):
    """Device class a playback happened on"""
    MOBILE = "MOBILE"
    DESKTOP = "DESKTOP"
    WEB = "WEB"
    TV = "TV"

class ArtistRole(str, enum.Enum):
    PRIMARY = "PRIMARY"
    FEATURED = "FEATURED"

@dataclass(frozen=True)
class ListeningEvent:
    """
    One playback of a track by a user.

    listen_id is None until the event log has stored it.
    """
    user_id: int
    track_id: int
    played_at: datetime
    source: Source
    ms_played: int
    device: Device
    listen_id: Optional[int] = None

@dataclass(frozen=True)
class LikeEvent:
    """A user liking a track, unique per (user_id, track_id)"""
    user_id: int
    track_id: int
    liked_at: datetime

@dataclass(frozen=True)
class EventFilter:
    """Restricts an event query to a user and/or a track"""
    user_id: Optional[int] = None
    track_id: Optional[int] = None

@dataclass(frozen=True)
class TimeRange:
    """Half-open [start, end) interval over played_at; open ends are unbounded"""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @classmethod
    def for_day(cls, day: date) -> 'TimeRange':
        """Range covering a whole calendar day in the stored time representation"""
        start = datetime.combine(day, time.min)
        return cls(start=start, end=start + timedelta(days=1))

@dataclass(frozen=True)
class DailyTrackStat:
    """Per-day aggregate for a single track"""
    track_id: int
    play_date: date
    plays: int
    unique_listeners: int
