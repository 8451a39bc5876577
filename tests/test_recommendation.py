"""Tests for the co-listening recommendation engine against a real session"""
import datetime
import threading

import pytest

from listening_analytics.errors import InvalidArgument, RecommendationTimeout
from listening_analytics.models.db import TrackStatsDaily
from listening_analytics.models.responses import Recommendation
from listening_analytics.config import RecommendationSettings
from listening_analytics.services.recommendation import RecommendationEngine
from listening_analytics.utils.deadline import Deadline

from conftest import DAY

# Listening history from the sample dataset
SAMPLE_PLAYS = [(1, 1), (1, 2), (1, 3), (2, 3), (2, 4), (3, 5), (4, 1), (5, 4), (5, 3)]

def record_all(service, plays):
    for minute, (user_id, track_id) in enumerate(plays):
        service.record_play(
            user_id, track_id,
            datetime.datetime(2025, 8, 1, 9) + datetime.timedelta(minutes=minute),
            "PLAYLIST", 1000, "MOBILE"
        )

def ids(recommendations):
    return [r.track_id for r in recommendations]

def test_sample_history_has_no_similar_users(service):
    record_all(service, SAMPLE_PLAYS)
    # Users 2, 4 and 5 each share a single track with user 1
    assert service.recommend(1, 5) == []

def test_second_shared_track_makes_a_user_similar(service, play):
    record_all(service, SAMPLE_PLAYS)
    play(2, 1, minute=120)

    results = service.recommend(1, 5)
    assert results == [Recommendation(track_id=4, title="Neon Skies", artist="Neon Avenue", score=2)]
    assert not {1, 2, 3} & set(ids(results))

def test_user_without_history_gets_empty_list(service, play):
    play(1, 1)
    play(1, 2)
    assert service.recommend(6, 5) == []

@pytest.mark.parametrize("limit", [0, -3])
def test_non_positive_limit_is_rejected(service, limit):
    with pytest.raises(InvalidArgument):
        service.recommend(6, limit)

def test_limit_is_checked_before_the_deadline(service):
    with pytest.raises(InvalidArgument):
        service.recommend(1, 0, Deadline(0))

def test_scores_are_additive_and_truncated(service, play):
    for track_id in (1, 2, 3):
        play(1, track_id)
    for track_id in (1, 2, 4):
        play(2, track_id)
    for track_id in (1, 2, 3, 5):
        play(4, track_id)

    results = service.recommend(1, 10)
    assert [(r.track_id, r.score) for r in results] == [(5, 3), (4, 2)]
    assert ids(service.recommend(1, 1)) == [5]

    play(4, 4)
    assert [(r.track_id, r.score) for r in service.recommend(1, 10)] == [(4, 5), (5, 3)]

def test_ties_are_broken_by_popularity_then_track_id(service, play):
    for track_id in (1, 2, 3):
        play(1, track_id)
    for track_id in (1, 2, 4):
        play(2, track_id)
    for track_id in (1, 2, 5):
        play(3, track_id)

    assert ids(service.recommend(1, 5)) == [4, 5]
    service.record_like(6, 5)
    assert ids(service.recommend(1, 5)) == [5, 4]

def test_tracks_without_primary_artist_are_excluded(service, play):
    for track_id in (1, 2, 3):
        play(1, track_id)
    for track_id in (1, 2, 4, 6):
        play(2, track_id)
    # Make the unattributable track rank first
    service.record_like(3, 6)

    results = service.recommend(1, 1)
    assert ids(results) == [4]
    assert results[0].artist == "Neon Avenue"

def test_daily_stats_table_is_not_consulted(service, session, play):
    for track_id in (1, 2, 3):
        play(1, track_id)
    for track_id in (1, 2, 4):
        play(2, track_id)
    before = service.recommend(1, 5)

    session.add(TrackStatsDaily(track_id=5, play_date=DAY, plays=10000, unique_listeners=500))
    session.commit()
    assert service.recommend(1, 5) == before

def test_results_do_not_depend_on_insertion_order(make_service):
    plays = [
        (1, 1), (1, 2), (1, 3),
        (2, 1), (2, 2), (2, 4), (2, 4),
        (3, 1), (3, 3), (3, 5),
        (4, 2), (4, 3), (4, 1), (4, 6), (4, 5),
        (5, 3), (5, 4),
    ]
    forward = make_service()
    backward = make_service()
    record_all(forward, plays)
    record_all(backward, list(reversed(plays)))

    assert forward.recommend(1, 10) == backward.recommend(1, 10)
    assert [(r.track_id, r.score) for r in forward.recommend(1, 10)] == [(5, 5), (4, 2)]

def test_expired_deadline_raises_instead_of_partial_results(service, play):
    for track_id in (1, 2, 3):
        play(1, track_id)
    for track_id in (1, 2, 4):
        play(2, track_id)

    with pytest.raises(RecommendationTimeout):
        service.recommend(1, 5, Deadline(0))
    with pytest.raises(TimeoutError):
        service.recommend(1, 5, 0.0)

def test_cancel_event_aborts_the_computation(service, play):
    play(1, 1)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RecommendationTimeout):
        service.recommend(1, 5, cancel_event=cancel)

def test_default_limit_comes_from_settings(service, play):
    for track_id in (1, 2):
        play(1, track_id)
    for track_id in (1, 2, 3, 4, 5):
        play(2, track_id)
    assert ids(service.recommend(1)) == [3, 4, 5]

def test_cancel_event_cannot_ride_alongside_a_deadline(service, play):
    play(1, 1)
    with pytest.raises(InvalidArgument):
        service.recommend(1, 5, Deadline(60), cancel_event=threading.Event())

def test_engine_uses_the_tuning_it_is_given(service, play):
    for track_id in (1, 2):
        play(1, track_id)
    for track_id in (1, 2, 3, 4):
        play(2, track_id)
    for track_id in (1, 2, 5):
        play(3, track_id)

    strict = RecommendationEngine(
        service.session,
        service.event_log,
        service.catalog,
        RecommendationSettings(similarity_threshold=2, default_limit=1, timeout_seconds=0, check_interval=1)
    )
    assert ids(strict.recommend(1)) == [3]
    assert strict.deadline_for().seconds is None
