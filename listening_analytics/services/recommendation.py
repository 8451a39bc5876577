"""People-also-listen-to recommendations from co-listening overlap"""
import logging
import threading
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from listening_analytics.config import RecommendationSettings
from listening_analytics.errors import InvalidArgument
from listening_analytics.models.responses import Recommendation
from listening_analytics.scoring import CoListeningScorer, ScoringBreakdown
from listening_analytics.services.catalog import CatalogStore
from listening_analytics.services.event_log import EventLog
from listening_analytics.utils.deadline import Deadline

logger = logging.getLogger(__name__)

class RecommendationEngine:
    """
    Read-only recommender over the raw event log.

    Plays are always re-derived from listening events; the daily stats
    table is never consulted, so stale aggregates cannot skew a ranking.
    """

    def __init__(self, session: Session, event_log: EventLog, catalog: CatalogStore,
                 tuning: RecommendationSettings, scorer: Optional[CoListeningScorer] = None):
        self.session = session
        self.event_log = event_log
        self.catalog = catalog
        self.tuning = tuning
        self.scorer = scorer or CoListeningScorer(tuning.similarity_threshold)
        self.check_interval = tuning.check_interval

    def deadline_for(self, deadline: Union[Deadline, float, None] = None,
                     cancel_event: Optional[threading.Event] = None) -> Deadline:
        """
        Build the Deadline for one call from a Deadline, a number of seconds
        or nothing (the configured timeout, where 0 means unbounded).

        Raises:
            InvalidArgument: If both a Deadline and a cancel_event are given
        """
        if isinstance(deadline, Deadline):
            if cancel_event is not None:
                raise InvalidArgument("Pass cancel_event to the Deadline itself, not alongside it")
            return deadline
        seconds = deadline
        if seconds is None and self.tuning.timeout_seconds > 0:
            seconds = self.tuning.timeout_seconds
        return Deadline(seconds, cancel_event)

    def score(self, user_id: int, deadline: Optional[Deadline] = None) -> ScoringBreakdown:
        """Run the listened-set, similar-user and candidate phases for one user"""
        deadline = deadline or self.deadline_for()
        breakdown = ScoringBreakdown()

        breakdown.listened = self.scorer.listened_set(
            deadline.guard(self.event_log.user_tracks(user_id), "listened set", self.check_interval)
        )
        if not breakdown.listened:
            logger.info(f"User {user_id} has no listening history, nothing to recommend")
            return breakdown

        breakdown.similar_users = self.scorer.similar_users(
            breakdown.listened,
            deadline.guard(self.event_log.co_listener_pairs(user_id), "similar users", self.check_interval),
            exclude_user=user_id
        )
        if not breakdown.similar_users:
            logger.info(f"User {user_id} has no users sharing {self.scorer.threshold}+ tracks")
            return breakdown

        breakdown.candidate_scores = self.scorer.candidate_scores(
            breakdown.listened,
            breakdown.similar_users,
            deadline.guard(
                self.event_log.listener_pairs(breakdown.similar_users),
                "candidate scores",
                self.check_interval
            )
        )
        deadline.check("candidate scores")
        return breakdown

    def recommend(self, user_id: int, limit: Optional[int] = None,
                  deadline: Optional[Deadline] = None) -> List[Recommendation]:
        """
        Ranked recommendations for user_id.

        Raises:
            InvalidArgument: If limit <= 0
            RecommendationTimeout: If the deadline passes or is cancelled
        """
        if limit is None:
            limit = self.tuning.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidArgument(f"limit must be a positive integer, got {limit!r}")

        deadline = deadline or self.deadline_for()
        breakdown = self.score(user_id, deadline)
        if not breakdown.candidate_scores:
            return []

        candidates = breakdown.candidate_scores.keys()
        details = self.catalog.track_titles(candidates)
        artists = self.catalog.primary_artist_names(candidates)
        deadline.check("ranking")

        popularity = {track_id: pop for track_id, (_, pop) in details.items()}
        results: List[Recommendation] = []
        for candidate in self.scorer.rank(breakdown.candidate_scores, popularity):
            artist = artists.get(candidate.track_id)
            if candidate.track_id not in details or artist is None:
                logger.debug(f"Skipping track {candidate.track_id}: no PRIMARY artist")
                continue
            results.append(Recommendation(
                track_id=candidate.track_id,
                title=details[candidate.track_id][0],
                artist=artist,
                score=candidate.score
            ))
            if len(results) == limit:
                break

        logger.info(
            f"Recommended {len(results)} tracks for user {user_id} from "
            f"{len(breakdown.similar_users)} similar users in {deadline.elapsed():.3f}s"
        )
        return results
