"""Entry points exposed to ingestion callers, schedulers and request handlers"""
import datetime
import logging
import threading
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from listening_analytics.config import Settings, settings as default_settings
from listening_analytics.models.responses import (
    Recommendation, ReconciliationReport, RefreshResult, TopTrack
)
from listening_analytics.services.catalog import CatalogStore
from listening_analytics.services.event_log import EventLog
from listening_analytics.services.popularity import PopularityMaintainer
from listening_analytics.services.recommendation import RecommendationEngine
from listening_analytics.services.stats import StatsAggregator
from listening_analytics.utils.deadline import Deadline

logger = logging.getLogger(__name__)

class AnalyticsService:
    """
    Wires the catalog, event log, popularity maintainer, stats aggregator
    and recommendation engine over a single session.
    """

    def __init__(self, session: Session, config: Settings = default_settings):
        self.session = session
        self.settings = config
        self.catalog = CatalogStore(session)
        self.popularity = PopularityMaintainer(session, self.catalog)
        self.event_log = EventLog(
            session,
            self.catalog,
            popularity=self.popularity,
            duplicate_like_policy=config.DUPLICATE_LIKE_POLICY,
            batch_size=config.QUERY_BATCH_SIZE
        )
        self.stats = StatsAggregator(session, prune_stale=config.STATS_PRUNE_STALE)
        self.recommender = RecommendationEngine(
            session,
            self.event_log,
            self.catalog,
            config.recommendation_settings
        )

    def record_play(self, user_id: int, track_id: int, played_at: datetime.datetime,
                    source, ms_played: int, device) -> int:
        """Append a listening event; returns its listen_id"""
        return self.event_log.record_play(user_id, track_id, played_at, source, ms_played, device)

    def record_like(self, user_id: int, track_id: int) -> bool:
        """Append a like and bump the track's popularity atomically"""
        return self.event_log.append_like(user_id, track_id)

    def refresh_daily_stats(self, day: Union[datetime.date, datetime.datetime],
                            prune_stale: Optional[bool] = None) -> RefreshResult:
        return self.stats.refresh(day, prune_stale=prune_stale)

    def recommend(self, user_id: int, limit: Optional[int] = None,
                  deadline: Union[Deadline, float, None] = None,
                  cancel_event: Optional[threading.Event] = None) -> List[Recommendation]:
        """
        Ranked recommendations. `deadline` may be a Deadline or a number of
        seconds; when omitted RECOMMEND_TIMEOUT_SECONDS applies. A cancel_event
        goes with seconds or nothing; a Deadline carries its own.
        """
        return self.recommender.recommend(
            user_id, limit, self.recommender.deadline_for(deadline, cancel_event)
        )

    def reconcile_popularity(self, track_ids: Optional[Iterable[int]] = None) -> ReconciliationReport:
        return self.popularity.reconcile(track_ids)

    def top_tracks_by_country(self, country: str, limit: int = 10) -> List[TopTrack]:
        return self.stats.top_tracks_by_country(country, limit)
