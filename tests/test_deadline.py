"""Tests for the deadline / cancellation helper"""
import threading

import pytest

from listening_analytics.errors import InvalidArgument, RecommendationTimeout
from listening_analytics.utils.deadline import Deadline

def test_unbounded_deadline_never_expires():
    deadline = Deadline.none()
    deadline.check("anything")
    assert not deadline.expired()
    assert deadline.remaining() is None

def test_zero_budget_expires_immediately():
    deadline = Deadline(0)
    assert deadline.expired()
    assert deadline.remaining() == 0.0
    with pytest.raises(RecommendationTimeout, match="similar users"):
        deadline.check("similar users")

def test_negative_budget_is_rejected():
    with pytest.raises(InvalidArgument):
        Deadline(-1)

def test_guard_stops_streaming_once_cancelled():
    cancel = threading.Event()
    deadline = Deadline(cancel_event=cancel)
    seen = []

    def rows():
        for value in range(10):
            if value == 3:
                cancel.set()
            yield value

    with pytest.raises(RecommendationTimeout):
        for value in deadline.guard(rows(), "candidate scores", every=2):
            seen.append(value)
    # The check after the 4th row notices the cancel before yielding it
    assert seen == [0, 1, 2]

def test_guard_passes_rows_through_when_in_budget():
    deadline = Deadline(60)
    assert list(deadline.guard(iter([(1, 2), (3, 4)]), "pairs", every=1)) == [(1, 2), (3, 4)]
